import subprocess
import sys
import threading
import os
from pathlib import Path

import pytest

from grouphello.config import GroupSettings, pod_name_for
from grouphello.main import start
from grouphello.models import EventKind
from grouphello.protocol import Mode, run
from grouphello.runtime import GroupFormationError, HttpGroupRuntime

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def settings_for(identity, size, base_port, **overrides):
    return GroupSettings(
        pod_name=pod_name_for(identity),
        total_processes=size,
        peer_port=base_port,
        formation_timeout=overrides.pop("formation_timeout", 10.0),
        receive_timeout=overrides.pop("receive_timeout", 10.0),
        **overrides,
    )


def run_http_group(size, mode, base_port):
    """Every member in its own thread, each with its own server and port."""
    results, errors = {}, []

    def member(identity):
        try:
            results[identity] = run(mode, HttpGroupRuntime(settings_for(identity, size, base_port)))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=member, args=(i,)) for i in range(size)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    assert not errors, errors
    return results


def test_exchange_over_http(port_block):
    results = run_http_group(3, Mode.EXCHANGE, port_block(3))

    root = [(e.kind, e.peer) for e in results[0]]
    assert root == [
        (EventKind.RECEIVE, 1), (EventKind.SEND, 1),
        (EventKind.RECEIVE, 2), (EventKind.SEND, 2),
    ]
    for identity in (1, 2):
        assert results[identity][-1].payload == f"Acknowledgment from process 0 to process {identity}"


def test_collect_over_http(port_block):
    results = run_http_group(3, Mode.COLLECT, port_block(3))

    assert [e.payload for e in results[0]] == ["Hello from process 1 of 3!", "Hello from process 2 of 3!"]


def test_member_without_root_fails_formation(port_block):
    runtime = HttpGroupRuntime(settings_for(1, 2, port_block(2), formation_timeout=0.5))

    with pytest.raises(GroupFormationError):
        run(Mode.COLLECT, runtime)
    assert runtime.torn_down


def test_invalid_identity_fails_formation(port_block):
    runtime = HttpGroupRuntime(settings_for(3, 2, port_block(4)))

    with pytest.raises(GroupFormationError):
        runtime.initialize()
    runtime.teardown()


def run_members_in_threads(runtimes):
    """Runs collect on every runtime and returns whatever each one raised."""
    outcomes = {}

    def member(identity, runtime):
        try:
            run(Mode.COLLECT, runtime)
            outcomes[identity] = None
        except Exception as e:
            outcomes[identity] = e

    threads = [threading.Thread(target=member, args=item) for item in runtimes.items()]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return outcomes


def test_join_rejected_by_root_fails_formation(port_block):
    # Member 3 thinks the group has 4 processes, root knows only 2
    base = port_block(4)
    root = HttpGroupRuntime(settings_for(0, 2, base, formation_timeout=2.0))
    member = HttpGroupRuntime(settings_for(3, 4, base, formation_timeout=2.0))

    outcomes = run_members_in_threads({0: root, 3: member})

    assert isinstance(outcomes[3], GroupFormationError)
    assert isinstance(outcomes[0], GroupFormationError)
    assert root.torn_down and member.torn_down


def test_ready_rejected_by_member_fails_formation(port_block):
    # Root announces a group of 2 to a member expecting 3
    base = port_block(3)
    root = HttpGroupRuntime(settings_for(0, 2, base, formation_timeout=2.0))
    member = HttpGroupRuntime(settings_for(1, 3, base, formation_timeout=2.0))

    outcomes = run_members_in_threads({0: root, 1: member})

    assert isinstance(outcomes[0], GroupFormationError)
    assert isinstance(outcomes[1], GroupFormationError)


# --- Process entry point ---


def test_start_single_member(monkeypatch, port_block):
    monkeypatch.setenv("POD_NAME", "hello-group-0")
    monkeypatch.setenv("TOTAL_PROCESSES", "1")
    monkeypatch.setenv("PEER_PORT", str(port_block(1)))

    assert start(["exchange"]) == 0


def test_start_reports_formation_failure(monkeypatch, port_block):
    monkeypatch.setenv("POD_NAME", "hello-group-1")
    monkeypatch.setenv("TOTAL_PROCESSES", "2")
    monkeypatch.setenv("PEER_PORT", str(port_block(2)))
    monkeypatch.setenv("FORMATION_TIMEOUT", "0.5")

    assert start(["collect"]) == 1


def launch_group(size, mode, base_port):
    env = dict(os.environ, PEER_PORT=str(base_port), RECEIVE_TIMEOUT="20")
    return subprocess.run(
        [sys.executable, "-m", "grouphello.launcher", "-n", str(size), mode],
        cwd=str(PROJECT_ROOT),
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.DEVNULL,
        text=True,
        timeout=60,
    )


def test_launcher_runs_announce_group(port_block):
    proc = launch_group(3, "announce", port_block(3))
    assert proc.returncode == 0

    lines = {line for line in proc.stdout.splitlines() if "Hello World" in line}
    assert lines == {f"[P{k}] Hello World from process {k} of 3" for k in range(3)}


def test_launcher_runs_collect_group(port_block):
    proc = launch_group(3, "collect", port_block(3))
    assert proc.returncode == 0

    root_lines = [line for line in proc.stdout.splitlines() if line.startswith("[P0] ")]
    assert root_lines == [
        '[P0] (Process 0) Received message: "Hello from process 1 of 3!" from process 1',
        '[P0] (Process 0) Received message: "Hello from process 2 of 3!" from process 2',
    ]
    for identity in (1, 2):
        assert (
            f'[P{identity}] (Process {identity}) Sending message: '
            f'"Hello from process {identity} of 3!" to process 0.'
        ) in proc.stdout


def test_launcher_runs_exchange_group(port_block):
    proc = launch_group(4, "exchange", port_block(4))
    assert proc.returncode == 0

    root_lines = [line for line in proc.stdout.splitlines() if line.startswith("[P0] ")]
    assert root_lines == [
        '[P0] (Process 0) Received message: "Hello from process 1 of 4!" from process 1',
        '[P0] (Process 0) Sending message: "Acknowledgment from process 0 to process 1" to process 1',
        '[P0] (Process 0) Received message: "Hello from process 2 of 4!" from process 2',
        '[P0] (Process 0) Sending message: "Acknowledgment from process 0 to process 2" to process 2',
        '[P0] (Process 0) Received message: "Hello from process 3 of 4!" from process 3',
        '[P0] (Process 0) Sending message: "Acknowledgment from process 0 to process 3" to process 3',
    ]
    for identity in (1, 2, 3):
        assert (
            f'[P{identity}] (Process {identity}) Received response: '
            f'"Acknowledgment from process 0 to process {identity}" from process 0.'
        ) in proc.stdout
