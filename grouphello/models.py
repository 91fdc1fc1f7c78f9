# grouphello/models.py
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from grouphello.config import MESSAGE_CAPACITY, MESSAGE_TAG, ROOT_IDENTITY


class GroupContext(BaseModel):
    """
    Identidade do processo e tamanho do grupo, fixados quando o grupo é formado.
    """
    model_config = ConfigDict(frozen=True)

    identity: int = Field(ge=0)
    size: int = Field(ge=1)

    @model_validator(mode="after")
    def identity_within_group(self):
        if self.identity >= self.size:
            raise ValueError(f"identidade {self.identity} fora de um grupo de {self.size}")
        return self

    @property
    def is_root(self) -> bool:
        return self.identity == ROOT_IDENTITY


class Message(BaseModel):
    """Quadro de texto de capacidade fixa; o payload deve deixar espaço para o terminador."""
    payload: str = Field(max_length=MESSAGE_CAPACITY - 1)


class Envelope(BaseModel):
    """
    Metadados de endereçamento mais o corpo, como enviados de um processo a outro.
    """
    sender: int = Field(ge=0)
    receiver: int = Field(ge=0)
    tag: int = MESSAGE_TAG
    body: Message


class EventKind(str, Enum):
    ANNOUNCE = "announce"
    SEND = "send"
    RECEIVE = "receive"


class Event(BaseModel):
    """Um passo observável do protocolo em um processo."""
    kind: EventKind
    member: int
    size: int
    peer: Optional[int] = None
    payload: Optional[str] = None

    def render(self) -> str:
        if self.kind == EventKind.ANNOUNCE:
            return f"Hello World from process {self.member} of {self.size}"
        if self.kind == EventKind.SEND:
            # Envios dos não-raiz terminam com ponto; as respostas da raiz, não
            suffix = "." if self.member != ROOT_IDENTITY else ""
            return f'(Process {self.member}) Sending message: "{self.payload}" to process {self.peer}{suffix}'
        if self.member == ROOT_IDENTITY:
            return f'(Process {self.member}) Received message: "{self.payload}" from process {self.peer}'
        return f'(Process {self.member}) Received response: "{self.payload}" from process {self.peer}.'


# --- Mensagens de Formação do Grupo ---

class Join(BaseModel):
    identity: int = Field(ge=0)


class Ready(BaseModel):
    size: int = Field(ge=1)


class Leave(BaseModel):
    identity: int = Field(ge=0)
