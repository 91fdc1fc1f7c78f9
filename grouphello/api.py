# grouphello/api.py
from fastapi import FastAPI, HTTPException

from grouphello.config import ROOT_IDENTITY
from grouphello.logger import member_logger
from grouphello.mailbox import Mailbox, Roster
from grouphello.models import Envelope, GroupContext, Join, Leave, Ready


def create_app(context: GroupContext, mailbox: Mailbox, roster: Roster) -> FastAPI:
    """Cria os endpoints HTTP pelos quais os pares alcançam um processo."""
    log = member_logger(context.identity)
    app = FastAPI(title=f"Processo P{context.identity} - Group Hello")

    def require_member(identity: int, what: str):
        if not 0 <= identity < context.size:
            raise HTTPException(status_code=400, detail=f"{what} {identity} não pertence a um grupo de {context.size}")

    def require_root(what: str):
        if not context.is_root:
            raise HTTPException(status_code=400, detail=f"{what} deve ser enviado ao processo 0")

    def require_non_root_member(identity: int, what: str):
        # A raiz nunca entra nem sai do próprio grupo via HTTP
        require_member(identity, what)
        if identity == ROOT_IDENTITY:
            raise HTTPException(status_code=400, detail=f"{what} {identity} é a raiz")

    # --- Status ---

    @app.get("/")
    def read_root():
        """Endpoint de status para verificar se o processo está no ar."""
        return {
            "process_id": context.identity,
            "size": context.size,
            "ready": roster.is_ready(),
            "pending": mailbox.pending(),
            "status": "Running",
        }

    # --- Mensagens Ponto a Ponto ---

    @app.post("/envelope", status_code=202)
    def receive_envelope_endpoint(envelope: Envelope):
        require_member(envelope.sender, "remetente")
        if envelope.receiver != context.identity:
            raise HTTPException(
                status_code=400,
                detail=f"envelope para o processo {envelope.receiver} chegou ao processo {context.identity}",
            )
        log.debug(f"Envelope de P{envelope.sender} (tag {envelope.tag}) enfileirado.")
        mailbox.deliver(envelope)
        return {"status": "Envelope enfileirado."}

    # --- Formação do Grupo ---

    @app.post("/join", status_code=202)
    def join_endpoint(join: Join):
        require_root("JOIN")
        require_non_root_member(join.identity, "membro")
        log.info(f"Recebido JOIN de P{join.identity}.")
        roster.mark_joined(join.identity)
        return {"status": "Joined."}

    @app.post("/ready", status_code=202)
    def ready_endpoint(ready: Ready):
        if ready.size != context.size:
            raise HTTPException(
                status_code=400,
                detail=f"tamanho de grupo divergente: {ready.size} != {context.size}",
            )
        log.info("Recebido READY de P0.")
        roster.mark_ready()
        return {"status": "Ready."}

    @app.post("/leave", status_code=202)
    def leave_endpoint(leave: Leave):
        require_root("LEAVE")
        require_non_root_member(leave.identity, "membro")
        log.info(f"Recebido LEAVE de P{leave.identity}.")
        roster.mark_left(leave.identity)
        return {"status": "Left."}

    return app
