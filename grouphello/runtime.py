# grouphello/runtime.py
import threading
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional

import httpx
import uvicorn
from pydantic import ValidationError

from grouphello.api import create_app
from grouphello.communication import post_envelope, post_join, post_leave, post_ready
from grouphello.config import ROOT_IDENTITY, GroupSettings
from grouphello.logger import logger, member_logger
from grouphello.mailbox import Mailbox, Roster
from grouphello.models import Envelope, GroupContext, Message


class GroupFormationError(RuntimeError):
    """O transporte do grupo não pôde ser estabelecido. Fatal para o processo."""


class GroupRuntime(ABC):
    """
    Descoberta de identidade mais entrega ponto a ponto bloqueante para um processo.
    """

    context: Optional[GroupContext] = None

    @abstractmethod
    def initialize(self) -> GroupContext:
        """Forma o grupo e devolve o contexto deste processo."""

    @abstractmethod
    def send(self, receiver: int, tag: int, body: Message):
        """Bloqueia até `body` ser entregue ao transporte para `receiver`."""

    @abstractmethod
    def receive(self, sender: int, tag: int) -> Message:
        """Bloqueia até chegar a próxima mensagem de `sender` com `tag`."""

    @abstractmethod
    def teardown(self):
        """Libera o transporte. Pode ser chamado mais de uma vez."""

    def _check_receiver(self, receiver: int):
        if self.context is None:
            raise RuntimeError("runtime usado antes de initialize()")
        if not 0 <= receiver < self.context.size:
            raise ValueError(f"processo {receiver} não pertence a um grupo de {self.context.size}")


# --- Grupo em Memória (processos são threads de um único processo) ---


class LocalGroup:
    """Um grupo inteiro dentro de um processo; cada membro tem sua própria caixa de entrada."""

    def __init__(self, size: int, receive_timeout: Optional[float] = None):
        if size < 1:
            raise ValueError("um grupo precisa de pelo menos um processo")
        self.size = size
        self.receive_timeout = receive_timeout
        self.mailboxes: Dict[int, Mailbox] = {identity: Mailbox(identity) for identity in range(size)}

    def runtime(self, identity: int) -> "LocalRuntime":
        return LocalRuntime(self, identity)


class LocalRuntime(GroupRuntime):

    def __init__(self, group: LocalGroup, identity: int):
        self.group = group
        self.identity = identity
        self.torn_down = False

    def initialize(self) -> GroupContext:
        self.context = GroupContext(identity=self.identity, size=self.group.size)
        return self.context

    def send(self, receiver: int, tag: int, body: Message):
        self._check_receiver(receiver)
        envelope = Envelope(sender=self.identity, receiver=receiver, tag=tag, body=body)
        self.group.mailboxes[receiver].deliver(envelope)

    def receive(self, sender: int, tag: int) -> Message:
        return self.group.mailboxes[self.identity].take(sender, tag, self.group.receive_timeout)

    def teardown(self):
        self.torn_down = True


# --- Grupo HTTP (um processo por membro) ---


class HttpGroupRuntime(GroupRuntime):
    """
    Cada processo serve seus endpoints com uvicorn em uma thread de fundo e
    alcança os pares com httpx. A raiz coordena a formação (JOIN/READY) e
    sobrevive aos demais no encerramento (LEAVE).
    """

    def __init__(self, settings: GroupSettings):
        self.settings = settings
        self.mailbox: Optional[Mailbox] = None
        self.roster = Roster()
        self.client: Optional[httpx.Client] = None
        self.server: Optional[uvicorn.Server] = None
        self.server_thread: Optional[threading.Thread] = None
        self.torn_down = False
        self.log = logger

    def initialize(self) -> GroupContext:
        try:
            self.context = GroupContext(identity=self.settings.identity, size=self.settings.total_processes)
        except (ValidationError, ValueError) as e:
            raise GroupFormationError(f"identidade inválida para {self.settings.pod_name}: {e}") from e

        context = self.context
        self.log = member_logger(context.identity)
        self.mailbox = Mailbox(context.identity)
        # Os pares são acessados diretamente, nunca por um proxy do ambiente
        self.client = httpx.Client(trust_env=False)
        deadline = time.monotonic() + self.settings.formation_timeout

        self._start_server(deadline)
        try:
            if context.is_root:
                self._gather_members(deadline)
            else:
                self._join_root(deadline)
        except httpx.HTTPError as e:
            raise GroupFormationError(f"falha na formação do grupo: {e}") from e

        self.log.info(f"Grupo de {context.size} processos formado.")
        return context

    def _gather_members(self, deadline: float):
        others = range(1, self.context.size)
        if not self.roster.wait_joined(self.context.size - 1, self._remaining(deadline)):
            missing = sorted(set(others) - self.roster.joined())
            raise GroupFormationError(f"os processos {missing} nunca enviaram JOIN")
        for identity in others:
            post_ready(self.client, self.settings.peer_address(identity), self.context.size)
        self.roster.mark_ready()

    def _join_root(self, deadline: float):
        root_address = self.settings.peer_address(ROOT_IDENTITY)
        if not post_join(self.client, root_address, self.context.identity, deadline):
            raise GroupFormationError(f"raiz inacessível em {root_address}")
        if not self.roster.wait_ready(self._remaining(deadline)):
            raise GroupFormationError("a raiz nunca declarou o grupo pronto")

    def _start_server(self, deadline: float):
        app = create_app(self.context, self.mailbox, self.roster)
        config = uvicorn.Config(app, host="0.0.0.0", port=self.settings.bind_port(), log_level="warning", lifespan="off")
        self.server = uvicorn.Server(config)
        self.server_thread = threading.Thread(target=self.server.run, name=f"server-P{self.context.identity}", daemon=True)
        self.server_thread.start()
        while not self.server.started:
            if not self.server_thread.is_alive():
                raise GroupFormationError(f"servidor na porta {self.settings.bind_port()} não iniciou")
            if time.monotonic() >= deadline:
                raise GroupFormationError("servidor não iniciou a tempo")
            time.sleep(0.01)

    @staticmethod
    def _remaining(deadline: float) -> float:
        return max(0.0, deadline - time.monotonic())

    def send(self, receiver: int, tag: int, body: Message):
        self._check_receiver(receiver)
        envelope = Envelope(sender=self.context.identity, receiver=receiver, tag=tag, body=body)
        post_envelope(self.client, self.settings.peer_address(receiver), envelope)

    def receive(self, sender: int, tag: int) -> Message:
        return self.mailbox.take(sender, tag, self.settings.receive_timeout)

    def teardown(self):
        if self.torn_down:
            return
        self.torn_down = True

        context = self.context
        if context is not None and self.client is not None and self.roster.is_ready():
            if context.is_root:
                # Pares ainda podem estar enviando para a raiz; espera todos saírem
                if not self.roster.wait_left(context.size - 1, self.settings.formation_timeout):
                    self.log.warning("Nem todos os processos enviaram LEAVE antes do encerramento.")
            else:
                post_leave(self.client, self.settings.peer_address(ROOT_IDENTITY), context.identity)

        if self.server is not None:
            self.server.should_exit = True
            if self.server_thread is not None:
                self.server_thread.join()
        if self.client is not None:
            self.client.close()
        self.log.info("Transporte liberado.")
