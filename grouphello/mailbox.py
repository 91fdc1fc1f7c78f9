# grouphello/mailbox.py
import queue
import threading
import time
from typing import Dict, Optional, Set, Tuple

from grouphello.models import Envelope, Message


class ReceiveTimeout(TimeoutError):
    """Lançada apenas quando um timeout de recebimento está configurado e expira."""


class Mailbox:
    """
    Envelopes recebidos por um processo, uma fila FIFO por canal (remetente, tag).
    """

    def __init__(self, identity: int):
        self.identity = identity
        self._channels: Dict[Tuple[int, int], "queue.Queue[Message]"] = {}
        self._lock = threading.Lock()

    def _channel(self, sender: int, tag: int) -> "queue.Queue[Message]":
        with self._lock:
            channel = self._channels.get((sender, tag))
            if channel is None:
                channel = queue.Queue()
                self._channels[(sender, tag)] = channel
            return channel

    def deliver(self, envelope: Envelope):
        if envelope.receiver != self.identity:
            raise ValueError(
                f"envelope para o processo {envelope.receiver} entregue ao processo {self.identity}"
            )
        self._channel(envelope.sender, envelope.tag).put(envelope.body)

    def take(self, sender: int, tag: int, timeout: Optional[float] = None) -> Message:
        """Bloqueia até chegar a próxima mensagem de `sender` com `tag`."""
        try:
            return self._channel(sender, tag).get(timeout=timeout)
        except queue.Empty:
            raise ReceiveTimeout(
                f"processo {self.identity} esperou {timeout}s pelo processo {sender} (tag {tag})"
            ) from None

    def pending(self) -> int:
        with self._lock:
            return sum(channel.qsize() for channel in self._channels.values())


class Roster:
    """
    Controle de formação e encerramento: quem entrou (JOIN), se a raiz
    declarou o grupo pronto (READY) e quem já saiu (LEAVE).
    """

    def __init__(self):
        self._joined: Set[int] = set()
        self._left: Set[int] = set()
        self._ready = threading.Event()
        self._changed = threading.Condition()

    def mark_joined(self, identity: int):
        with self._changed:
            self._joined.add(identity)
            self._changed.notify_all()

    def mark_left(self, identity: int):
        with self._changed:
            self._left.add(identity)
            self._changed.notify_all()

    def mark_ready(self):
        self._ready.set()

    def is_ready(self) -> bool:
        return self._ready.is_set()

    def joined(self) -> Set[int]:
        with self._changed:
            return set(self._joined)

    def wait_joined(self, count: int, timeout: float) -> bool:
        return self._wait_for(self._joined, count, timeout)

    def wait_left(self, count: int, timeout: float) -> bool:
        return self._wait_for(self._left, count, timeout)

    def wait_ready(self, timeout: float) -> bool:
        return self._ready.wait(timeout)

    def _wait_for(self, members: Set[int], count: int, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        with self._changed:
            while len(members) < count:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._changed.wait(remaining)
            return True
