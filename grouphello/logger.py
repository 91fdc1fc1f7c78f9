# grouphello/logger.py
import sys
import os
from loguru import logger

# Remove o handler padrão para garantir que apenas nossa configuração seja usada
logger.remove()

# Formato dos diagnósticos: hora, nível, processo e mensagem.
log_format = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[process_name]: <12}</cyan> | "
    "<level>{message}</level>"
)


def _is_event(record) -> bool:
    return record["extra"].get("event", False)


def _is_diagnostic(record) -> bool:
    return not _is_event(record)


# Diagnósticos vão para o stderr, coloridos
logger.add(
    sys.stderr,
    format=log_format,
    level="INFO",
    colorize=True,
    filter=_is_diagnostic,
)

# Eventos do protocolo são a saída do programa: uma linha simples cada, no stdout
logger.add(
    sys.stdout,
    format="{message}",
    level="INFO",
    colorize=False,
    filter=_is_event,
)


def process_name_for(identity) -> str:
    return f"Process-{identity}"


def patch_logger_with_process_name():
    try:
        # Identidade a partir do nome do pod (ex: 'hello-group-0' -> 0)
        process_id = int(os.environ.get('POD_NAME').split('-')[-1])
        process_name = process_name_for(process_id)
    except (ValueError, AttributeError):
        # Fora de um grupo lançado (launcher, testes)
        process_name = "Local"

    # Todo registro carrega 'process_name', a menos que um logger vinculado o substitua
    logger.configure(extra={"process_name": process_name})


def member_logger(identity: int):
    """Logger vinculado a um processo, para quando vários membros rodam no mesmo processo."""
    return logger.bind(process_name=process_name_for(identity))


patch_logger_with_process_name()

__all__ = ["logger", "member_logger"]
