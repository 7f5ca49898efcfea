# app.py
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import Settings, load_settings
from core.dispatcher import AlertDispatcher
from core.errors import StorageUnavailable
from core.registrar import StreamRegistrar
from core.store import SubscriptionStore
from core.telegram_client import TelegramClient
from providers.moralis_streams import MoralisStreamsClient

logger = logging.getLogger(__name__)


def log_task_failure(task: asyncio.Task) -> None:
    """Done-callback for background tasks nobody awaits."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background task %s failed: %r", task.get_name(), exc)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SubscriptionStore] = None,
    dispatcher: Optional[AlertDispatcher] = None,
    registrar: Optional[StreamRegistrar] = None,
) -> FastAPI:
    """
    Webhook receiver for the stream provider. Components are built from
    settings unless given (tests pass their own).
    """
    settings = settings or load_settings()
    if dispatcher is None:
        settings.validate()
        store = store or SubscriptionStore(settings.database_path)
        telegram = TelegramClient(settings.telegram_bot_token, timeout=settings.telegram_timeout)
        dispatcher = AlertDispatcher(store, telegram, settings.moralis_webhook_secret)
        if registrar is None:
            client = MoralisStreamsClient(settings.moralis_api_key, timeout=settings.provider_timeout)
            registrar = StreamRegistrar(store, client)
    store = store or dispatcher.store

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await store.init()
        reconcile_task = None
        if registrar is not None:
            # streams left pending by provider failures get another try
            reconcile_task = asyncio.create_task(
                registrar.reconcile_pending(settings.webhook_url), name="reconcile-pending-streams"
            )
            reconcile_task.add_done_callback(log_task_failure)
        logger.info("Webhook service ready on %s", settings.webhook_path)
        try:
            yield
        finally:
            if reconcile_task is not None:
                reconcile_task.cancel()

    app = FastAPI(lifespan=lifespan)

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/")
    def root_get():
        return {
            "service": "Wallet Tracker Webhook Service",
            "status": "running",
            "webhook_endpoint": settings.webhook_path,
        }

    # Optional root handler: a stream pointed at "/" still passes the provider's probe
    @app.post("/")
    async def root_post(request: Request):
        if not request.headers.get("x-signature"):
            return {"success": True, "message": f"Service is running. Please use {settings.webhook_path} for events."}
        return JSONResponse(
            status_code=400,
            content={"error": f"Please use {settings.webhook_path} endpoint for webhook events"},
        )

    @app.post(settings.webhook_path)
    async def provider_webhook(request: Request):
        body = await request.body()
        try:
            outcome = await dispatcher.handle(body, request.headers.get("x-signature"))
        except StorageUnavailable:
            # non-2xx so the provider retries later
            return JSONResponse(status_code=503, content={"error": "Storage unavailable"})

        if outcome.status == "probe":
            return {"success": True, "message": "Webhook endpoint is working. Ready to receive events."}
        if outcome.status == "rejected":
            if outcome.reason == "signature":
                return JSONResponse(status_code=401, content={"error": "Invalid signature"})
            return JSONResponse(status_code=400, content={"error": "Malformed payload"})
        return {"status": "ok", "processed": outcome.processed}

    return app


if __name__ == "__main__":
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
