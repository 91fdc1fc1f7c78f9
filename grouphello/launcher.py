#!/usr/bin/env python3
# grouphello/launcher.py
"""
Inicia cada membro de um grupo como um processo próprio, como o mpirun -np N faz.
"""

import argparse
import os
import subprocess
import sys
import threading

from grouphello.config import pod_name_for
from grouphello.logger import logger
from grouphello.protocol import Mode


class ProcessLauncher:
    def __init__(self, size: int, mode: Mode, env=None):
        self.size = size
        self.mode = Mode(mode)
        self.env = dict(os.environ if env is None else env)
        self.processes = []
        self.readers = []
        self.output_lock = threading.Lock()

    def member_env(self, identity: int):
        env = dict(self.env)
        env["POD_NAME"] = pod_name_for(identity)
        env["TOTAL_PROCESSES"] = str(self.size)
        return env

    def launch_process(self, identity: int):
        """Inicia um processo"""
        process = subprocess.Popen(
            [sys.executable, '-u', '-m', 'grouphello.main', self.mode.value],
            stdout=subprocess.PIPE,
            env=self.member_env(identity),
            text=True,
        )
        self.processes.append({'id': identity, 'process': process})
        logger.info(f"Processo {identity} iniciado (PID: {process.pid})")

        reader = threading.Thread(target=self.read_output, args=(identity, process), daemon=True)
        reader.start()
        self.readers.append(reader)

    def read_output(self, identity: int, process):
        for line in iter(process.stdout.readline, ''):
            with self.output_lock:
                print(f"[P{identity}] {line.rstrip()}", flush=True)

    def launch_all(self):
        for identity in range(self.size):
            self.launch_process(identity)

    def wait_all(self) -> int:
        """Espera todos os processos; o resultado é diferente de zero se algum falhou."""
        failed = []
        for p_info in self.processes:
            status = p_info['process'].wait()
            if status != 0:
                failed.append(p_info['id'])
        for reader in self.readers:
            reader.join()

        if failed:
            logger.error(f"Os processos {failed} terminaram com erro.")
            return 1
        logger.info(f"Todos os {self.size} processos terminaram.")
        return 0

    def shutdown_all(self):
        for p_info in self.processes:
            process = p_info['process']
            if process.poll() is None:
                process.terminate()
                try:
                    process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    logger.warning(f"Forçando o encerramento do processo {p_info['id']}")
                    process.kill()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Inicia um grupo de processos group-hello.")
    parser.add_argument("-n", "--np", dest="size", type=int, default=4, help="número de processos")
    parser.add_argument("mode", nargs="?", default=Mode.ANNOUNCE.value, choices=[mode.value for mode in Mode])
    args = parser.parse_args(argv)
    if args.size < 1:
        parser.error("um grupo precisa de pelo menos um processo")

    launcher = ProcessLauncher(args.size, args.mode)
    try:
        launcher.launch_all()
        return launcher.wait_all()
    except KeyboardInterrupt:
        launcher.shutdown_all()
        return 130


if __name__ == "__main__":
    sys.exit(main())
