# grouphello/config.py
import os
from typing import Optional

from pydantic import BaseModel

# --- Constantes do Protocolo ---

# Tag usada por toda saudação e confirmação (ACK).
MESSAGE_TAG = 0

# Capacidade fixa do quadro; o payload precisa deixar espaço para o terminador.
MESSAGE_CAPACITY = 100

# Identidade do processo coordenador (raiz).
ROOT_IDENTITY = 0

# --- Configurações de Ambiente e Identificação ---

# A identidade é o sufixo numérico de POD_NAME, injetado pelo StatefulSet ou
# pelo launcher. Ex: 'hello-group-2' se torna a identidade 2.
DEFAULT_POD_NAME = "hello-group-0"

# Cada processo escuta em PEER_PORT + identidade, a menos que o template
# de endereço fixe a porta (Kubernetes, um pod por processo).
DEFAULT_PEER_PORT = 8080
DEFAULT_ADDRESS_TEMPLATE = "127.0.0.1:{port}"

# Segundos permitidos para JOIN/READY/LEAVE na formação e no encerramento do grupo.
DEFAULT_FORMATION_TIMEOUT = 30.0


class GroupSettings(BaseModel):
    """Tudo o que um processo descobre a partir do ambiente de execução."""
    pod_name: str = DEFAULT_POD_NAME
    total_processes: int = 1
    peer_port: int = DEFAULT_PEER_PORT
    address_template: str = DEFAULT_ADDRESS_TEMPLATE
    formation_timeout: float = DEFAULT_FORMATION_TIMEOUT
    receive_timeout: Optional[float] = None

    @property
    def identity(self) -> int:
        return identity_from_pod_name(self.pod_name)

    def peer_address(self, identity: int) -> str:
        """host:porta do processo com a identidade informada."""
        return self.address_template.format(identity=identity, port=self.peer_port + identity)

    def bind_port(self) -> int:
        """Porta em que o servidor deste processo escuta."""
        address = self.peer_address(self.identity)
        return int(address.rsplit(":", 1)[-1])

    @classmethod
    def from_env(cls) -> "GroupSettings":
        receive_timeout = os.getenv("RECEIVE_TIMEOUT")
        return cls(
            pod_name=os.getenv("POD_NAME", DEFAULT_POD_NAME),
            total_processes=int(os.getenv("TOTAL_PROCESSES", 1)),
            peer_port=int(os.getenv("PEER_PORT", DEFAULT_PEER_PORT)),
            address_template=os.getenv("PEER_ADDRESS_TEMPLATE", DEFAULT_ADDRESS_TEMPLATE),
            formation_timeout=float(os.getenv("FORMATION_TIMEOUT", DEFAULT_FORMATION_TIMEOUT)),
            receive_timeout=float(receive_timeout) if receive_timeout else None,
        )


def identity_from_pod_name(pod_name: str) -> int:
    """Extrai a identidade do final do nome do pod ('hello-group-3' -> 3)."""
    return int(pod_name.split('-')[-1])


def pod_name_for(identity: int) -> str:
    return f"hello-group-{identity}"
