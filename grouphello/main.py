# grouphello/main.py
import argparse
import sys

from grouphello.config import GroupSettings
from grouphello.logger import logger
from grouphello.protocol import Mode, run
from grouphello.runtime import GroupFormationError, HttpGroupRuntime


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Um processo de um grupo group-hello.")
    parser.add_argument(
        "mode",
        nargs="?",
        default=Mode.ANNOUNCE.value,
        choices=[mode.value for mode in Mode],
        help="protocolo a executar (padrão: announce)",
    )
    return parser.parse_args(argv)


def start(argv=None) -> int:
    """Executa este processo; identidade e tamanho do grupo vêm do ambiente."""
    args = parse_args(argv)
    settings = GroupSettings.from_env()
    logger.info(f"Iniciando {settings.pod_name} ({args.mode}) em um grupo de {settings.total_processes}")

    try:
        run(Mode(args.mode), HttpGroupRuntime(settings))
    except GroupFormationError as e:
        logger.critical(f"Falha na formação do grupo: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(start())
