from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from linerelay.app.api.readiness import build_readiness_report
from linerelay.app.context.service import build_context_strategy
from linerelay.app.conversation.service import build_conversation_store
from linerelay.app.conversation.store import ConversationStore
from linerelay.app.llm.providers import CompletionClient, build_completion_client
from linerelay.app.messaging.reply import ReplyDispatcher, build_reply_dispatcher
from linerelay.app.queue.service import RelayQueue
from linerelay.app.relay.contracts import FailurePolicy
from linerelay.app.relay.service import RelayOrchestrator
from linerelay.app.webhook.service import extract_work_item
from linerelay.core.config import AppConfig, load_app_config
from linerelay.core.errors import ValidationError

LOGGER = logging.getLogger(__name__)

WEBHOOK_PATH = "/api/webhook"
PATH_ERROR = "path error"
BODY_ERROR = "body error"


def create_app(
    config: AppConfig | None = None,
    *,
    store: ConversationStore | None = None,
    completion_client: CompletionClient | None = None,
    reply_dispatcher: ReplyDispatcher | None = None,
) -> FastAPI:
    config = config or load_app_config()
    conversation_store = store or build_conversation_store(config)
    orchestrator = RelayOrchestrator(
        store=conversation_store,
        completion_client=completion_client or build_completion_client(config),
        reply_dispatcher=reply_dispatcher or build_reply_dispatcher(config),
        context_strategy=build_context_strategy(config),
        failure_policy=FailurePolicy(config.failure_policy),
    )
    relay_queue = RelayQueue(
        handler=orchestrator.process_batch,
        max_batch_size=config.queue_max_batch_size,
        max_attempts=config.queue_max_attempts,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        await relay_queue.start()
        try:
            yield
        finally:
            await relay_queue.stop()
            close = getattr(conversation_store, "close", None)
            if callable(close):
                close()

    app = FastAPI(
        title=config.app_name,
        version=config.app_version,
        lifespan=lifespan,
        redirect_slashes=False,
    )
    app.state.config = config
    app.state.conversation_store = conversation_store
    app.state.orchestrator = orchestrator
    app.state.relay_queue = relay_queue

    @app.exception_handler(StarletteHTTPException)
    async def path_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code in {404, 405}:
            return PlainTextResponse(PATH_ERROR, status_code=400)
        return await http_exception_handler(request, exc)

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/ready")
    async def ready() -> JSONResponse:
        report = build_readiness_report(config)
        report["queue_running"] = relay_queue.running
        status_code = 200 if bool(report.get("ready")) else 503
        return JSONResponse(content=report, status_code=status_code)

    @app.post(WEBHOOK_PATH)
    async def webhook(request: Request) -> PlainTextResponse:
        try:
            payload = await request.json()
        except ValueError:
            return PlainTextResponse(BODY_ERROR, status_code=400)

        try:
            item = extract_work_item(payload)
        except ValidationError as exc:
            LOGGER.info("rejected webhook delivery: %s", exc)
            return PlainTextResponse(str(exc), status_code=400)

        message = await relay_queue.send(item)
        LOGGER.debug("queued message %s for user %s", message.id, item.user_id)
        return PlainTextResponse("Success!")

    return app
