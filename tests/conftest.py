import socket
import random

import pytest


def ports_free(base, count):
    for port in range(base, base + count):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.bind(("0.0.0.0", port))
        except OSError:
            return False
        finally:
            sock.close()
    return True


def find_port_block(count):
    """Base of `count` consecutive free TCP ports (members listen on base + identity)."""
    for _ in range(100):
        base = random.randint(20000, 60000)
        if ports_free(base, count):
            return base
    raise RuntimeError("no free port block found")


@pytest.fixture
def port_block():
    return find_port_block
