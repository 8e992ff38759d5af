from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, List, Optional

import nacl.exceptions
import nacl.signing
import requests
from fastapi import BackgroundTasks, FastAPI, HTTPException, Request

from bot_dispatch import (
    Author,
    BotContext,
    GENERIC_FAILURE,
    Dispatcher,
    Reply,
    ReplyKind,
    build_context,
    render_embed,
)
from config import Settings, setup_logging
from faucet_models import ClaimOut, HealthOut, InteractionIn
from status_watcher import StatusWatcher

log = logging.getLogger(__name__)

# Discord interaction types / callback types
INTERACTION_PING = 1
INTERACTION_APPLICATION_COMMAND = 2
CALLBACK_PONG = 1
CALLBACK_CHANNEL_MESSAGE = 4
CALLBACK_DEFERRED_CHANNEL_MESSAGE = 5

# answered inline; everything else talks to the node and is deferred
INLINE_COMMANDS = ("help", "address")


def now_unix() -> int:
    return int(time.time())


# ---------------------------
# Discord request verification
# ---------------------------
def verify_discord_signature(public_key_hex: str, signature_hex: str, timestamp: str, body: bytes) -> bool:
    if not public_key_hex or not signature_hex or not timestamp:
        return False
    try:
        verify_key = nacl.signing.VerifyKey(bytes.fromhex(public_key_hex))
        verify_key.verify(timestamp.encode() + body, bytes.fromhex(signature_hex))
        return True
    except (ValueError, nacl.exceptions.BadSignatureError):
        return False


def send_followup(settings: Settings, application_id: str, token: str, reply: Reply) -> None:
    """Replace the deferred "thinking..." message with the final reply."""
    url = f"{settings.discord_api_base}/webhooks/{application_id}/{token}/messages/@original"
    try:
        r = requests.patch(url, json={"embeds": [render_embed(reply)]}, timeout=15)
    except requests.RequestException as e:
        log.error("[discord] follow-up failed: %s", e)
        return
    if r.status_code >= 400:
        log.error("[discord] follow-up http %s: %s", r.status_code, (r.text or "").strip()[:300])


def _command_options(data: Optional[Any]) -> Dict[str, Any]:
    if not data:
        return {}
    return {opt.name: opt.value for opt in data.options}


def create_app(ctx: Optional[BotContext] = None) -> FastAPI:
    if ctx is None:
        ctx = build_context(Settings.from_env())
    settings = ctx.settings
    dispatcher = Dispatcher(ctx)
    watcher: Optional[StatusWatcher] = None
    if settings.status_webhook_url:
        watcher = StatusWatcher(ctx.node_factory, settings.status_webhook_url, settings.status_interval_sec)

    app = FastAPI(title="Pactus faucet bot")
    app.state.ctx = ctx
    app.state.watcher = watcher

    @app.on_event("startup")
    def _startup():
        ctx.store.init_db()
        if watcher:
            watcher.start()

    @app.on_event("shutdown")
    def _shutdown():
        if watcher:
            watcher.stop()

    def run_deferred(application_id: str, token: str, name: str, options: Dict[str, Any], author: Author) -> None:
        try:
            reply = dispatcher.handle_command(name, options, author)
        except Exception:
            log.exception("[discord] /%s failed", name)
            reply = Reply(ReplyKind.FAILURE, name.capitalize() or "Error", GENERIC_FAILURE)
        send_followup(settings, application_id, token, reply)

    @app.post("/interactions")
    async def interactions(req: Request, background: BackgroundTasks):
        body = await req.body()
        signature = req.headers.get("x-signature-ed25519", "")
        timestamp = req.headers.get("x-signature-timestamp", "")
        if not verify_discord_signature(settings.discord_public_key, signature, timestamp, body):
            raise HTTPException(status_code=401, detail="invalid request signature")

        try:
            interaction = InteractionIn.model_validate_json(body)
        except ValueError:
            raise HTTPException(status_code=400, detail="bad interaction payload")

        if interaction.type == INTERACTION_PING:
            return {"type": CALLBACK_PONG}
        if interaction.type != INTERACTION_APPLICATION_COMMAND or not interaction.data:
            raise HTTPException(status_code=400, detail="unsupported interaction type")

        user = interaction.author()
        if user is None:
            raise HTTPException(status_code=400, detail="interaction has no user")
        author = Author(id=user.id, username=user.username)
        name = interaction.data.name.strip().lower()
        options = _command_options(interaction.data)

        if name in INLINE_COMMANDS:
            reply = dispatcher.handle_command(name, options, author)
            return {"type": CALLBACK_CHANNEL_MESSAGE, "data": {"embeds": [render_embed(reply)]}}

        application_id = interaction.application_id or settings.discord_application_id
        background.add_task(run_deferred, application_id, interaction.token, name, options, author)
        return {"type": CALLBACK_DEFERRED_CHANNEL_MESSAGE}

    def require_admin(req: Request) -> None:
        if not settings.admin_token:
            raise HTTPException(status_code=403, detail="admin api disabled")
        if req.headers.get("x-admin-token", "") != settings.admin_token:
            raise HTTPException(status_code=401, detail="bad admin token")

    @app.get("/claims", response_model=List[ClaimOut])
    def list_claims(req: Request, limit: int = 50, offset: int = 0):
        """Recent faucet claims, newest first."""
        require_admin(req)
        return [ClaimOut(**c.as_dict()) for c in ctx.store.list_claims(limit=limit, offset=offset)]

    @app.get("/healthz", response_model=HealthOut)
    def healthz():
        return HealthOut(ok=True, claims=ctx.store.count_claims(), server_time=now_unix())

    return app


def main() -> None:
    import uvicorn

    settings = Settings.from_env()
    setup_logging(settings.log_level)
    uvicorn.run(
        create_app(build_context(settings)),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8200")),
    )


if __name__ == "__main__":
    main()
