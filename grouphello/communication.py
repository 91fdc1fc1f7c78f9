# grouphello/communication.py
import time

import httpx

from grouphello.logger import logger
from grouphello.models import Envelope, Join, Leave, Ready

REQUEST_TIMEOUT = 5.0
JOIN_RETRY_INTERVAL = 0.1

# --- Mensagens Ponto a Ponto ---


def post_envelope(client: httpx.Client, address: str, envelope: Envelope):
    """Entrega um envelope ao destinatário. Enviado uma única vez; erros sobem ao chamador."""
    response = client.post(f"http://{address}/envelope", json=envelope.model_dump(), timeout=REQUEST_TIMEOUT)
    response.raise_for_status()


# --- Formação do Grupo ---


def post_join(client: httpx.Client, address: str, identity: int, deadline: float) -> bool:
    """
    Anuncia um processo à raiz. A raiz pode ainda não estar no ar, então
    falhas de conexão são repetidas até `deadline` (um valor de time.monotonic()).
    Uma resposta de erro da raiz sobe como httpx.HTTPStatusError.
    """
    url = f"http://{address}/join"
    payload = Join(identity=identity).model_dump()
    while time.monotonic() < deadline:
        try:
            response = client.post(url, json=payload, timeout=REQUEST_TIMEOUT)
        except httpx.TransportError as e:
            logger.debug(f"Raiz ainda inacessível em {address}: {e}")
            time.sleep(JOIN_RETRY_INTERVAL)
            continue
        response.raise_for_status()
        return True
    return False


def post_ready(client: httpx.Client, address: str, size: int):
    response = client.post(f"http://{address}/ready", json=Ready(size=size).model_dump(), timeout=REQUEST_TIMEOUT)
    response.raise_for_status()


def post_leave(client: httpx.Client, address: str, identity: int):
    """Avisa a raiz de que este processo terminou."""
    url = f"http://{address}/leave"
    try:
        response = client.post(url, json=Leave(identity=identity).model_dump(), timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(f"Falha ao enviar LEAVE para {address}: {e}")
