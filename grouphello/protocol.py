# grouphello/protocol.py
import threading
from enum import Enum
from typing import Callable, Dict, List

from grouphello.config import MESSAGE_TAG, ROOT_IDENTITY
from grouphello.logger import member_logger
from grouphello.models import Event, EventKind, GroupContext, Message
from grouphello.runtime import GroupRuntime, LocalGroup


class Mode(str, Enum):
    ANNOUNCE = "announce"
    COLLECT = "collect"
    EXCHANGE = "exchange"


def greeting(context: GroupContext) -> Message:
    return Message(payload=f"Hello from process {context.identity} of {context.size}!")


def acknowledgment(root: int, member: int) -> Message:
    return Message(payload=f"Acknowledgment from process {root} to process {member}")


def report(context: GroupContext, events: List[Event], kind: EventKind, peer=None, payload=None):
    """Registra um evento do protocolo e o escreve como uma linha de saída."""
    event = Event(kind=kind, member=context.identity, size=context.size, peer=peer, payload=payload)
    events.append(event)
    member_logger(context.identity).bind(event=True).info(event.render())
    return event


# --- Announce ---

def announce(context: GroupContext, runtime: GroupRuntime) -> List[Event]:
    """Cada processo reporta (identidade, tamanho). Sem troca de mensagens."""
    events: List[Event] = []
    report(context, events, EventKind.ANNOUNCE)
    return events


# --- Collect (fan-in) ---

def collect(context: GroupContext, runtime: GroupRuntime) -> List[Event]:
    events: List[Event] = []

    if not context.is_root:
        message = greeting(context)
        report(context, events, EventKind.SEND, peer=ROOT_IDENTITY, payload=message.payload)
        runtime.send(ROOT_IDENTITY, MESSAGE_TAG, message)
        return events

    # A raiz atende os remetentes em ordem crescente de identidade, não de chegada
    for sender in range(1, context.size):
        message = runtime.receive(sender, MESSAGE_TAG)
        report(context, events, EventKind.RECEIVE, peer=sender, payload=message.payload)
    return events


# --- Exchange (fan-in + fan-out) ---

def exchange(context: GroupContext, runtime: GroupRuntime) -> List[Event]:
    """
    Processos não-raiz enviam uma saudação e bloqueiam esperando o ACK da raiz.
    A raiz atende uma ida e volta por vez: não recebe de `i + 1` antes de
    ter recebido de `i` e respondido a ele.
    """
    events: List[Event] = []

    if not context.is_root:
        message = greeting(context)
        report(context, events, EventKind.SEND, peer=ROOT_IDENTITY, payload=message.payload)
        runtime.send(ROOT_IDENTITY, MESSAGE_TAG, message)

        response = runtime.receive(ROOT_IDENTITY, MESSAGE_TAG)
        report(context, events, EventKind.RECEIVE, peer=ROOT_IDENTITY, payload=response.payload)
        return events

    for sender in range(1, context.size):
        message = runtime.receive(sender, MESSAGE_TAG)
        report(context, events, EventKind.RECEIVE, peer=sender, payload=message.payload)

        response = acknowledgment(context.identity, sender)
        report(context, events, EventKind.SEND, peer=sender, payload=response.payload)
        runtime.send(sender, MESSAGE_TAG, response)
    return events


MODES: Dict[Mode, Callable[[GroupContext, GroupRuntime], List[Event]]] = {
    Mode.ANNOUNCE: announce,
    Mode.COLLECT: collect,
    Mode.EXCHANGE: exchange,
}


def run(mode: Mode, runtime: GroupRuntime) -> List[Event]:
    """Inicializa, executa um modo e encerra o transporte em qualquer caminho de saída."""
    try:
        context = runtime.initialize()
        return MODES[Mode(mode)](context, runtime)
    finally:
        runtime.teardown()


def run_local(size: int, mode: Mode, group: LocalGroup = None) -> Dict[int, List[Event]]:
    """
    Executa um grupo inteiro neste processo, uma thread por membro, e devolve
    os eventos de cada um. O primeiro erro de um membro é relançado.
    """
    group = group or LocalGroup(size)
    results: Dict[int, List[Event]] = {}
    errors: List[BaseException] = []

    def member(identity: int):
        try:
            results[identity] = run(mode, group.runtime(identity))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=member, args=(identity,), name=f"P{identity}") for identity in range(size)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    if errors:
        raise errors[0]
    return results
