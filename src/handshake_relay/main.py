"""FastAPI app entrypoint for handshake-relay.

Routes map one-to-one onto the handshake phases:
- POST /v1/send/request: initiate (returns the new request id).
- POST /v1/receive/secret/{request_id}: webhook delivery of part2.
- POST /v1/check/{request_id}: combine both halves and verify.
- GET /v1/secrets[/{request_id}]: inspect stored records.

Run with `uvicorn handshake_relay.main:app`.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any
from urllib import parse

from fastapi import Body, FastAPI, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse

from handshake_relay.app.engine import HandshakeEngine
from handshake_relay.app.errors import HandshakeError, UpstreamError
from handshake_relay.app.models import ErrorResponse, InitiateRequest, record_payload
from handshake_relay.app.ui import render_admin_page
from handshake_relay.app.verifier_client import VerificationClient, VerifierClient
from handshake_relay.config.settings import Settings, get_settings
from handshake_relay.storage import SecretStore, build_secret_store

logger = logging.getLogger(__name__)


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    storage_override: SecretStore | None,
    client_override: VerifierClient | None,
) -> None:
    if not hasattr(app.state, "engine"):
        store = storage_override or build_secret_store(settings)
        store.migrate()
        client = client_override or VerificationClient(
            base_url=settings.verifier_url,
            timeout_s=settings.verifier_timeout_s,
        )
        app.state.engine = HandshakeEngine(
            store=store,
            client=client,
            default_message=settings.default_message,
            webhook_base_url=settings.webhook_base_url,
            callback_token=settings.callback_token,
            receive_requires_known_id=settings.receive_requires_known_id,
        )
        logger.info(
            "startup storage_backend=%s verifier_url=%s",
            type(store).__name__,
            settings.verifier_url,
        )

    if not hasattr(app.state, "settings"):
        app.state.settings = settings


def create_app(
    *,
    storage: SecretStore | None = None,
    client: VerifierClient | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    logging.getLogger("handshake_relay").setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(
            app,
            settings=settings,
            storage_override=storage,
            client_override=client,
        )
        yield

    app_lifespan = lifespan if storage is None else None
    app = FastAPI(title=settings.app_name, lifespan=app_lifespan)

    # Injected storage means a test; build state now so no lifespan is needed.
    if storage is not None:
        _ensure_runtime_state(
            app,
            settings=settings,
            storage_override=storage,
            client_override=client,
        )

    def _get_engine(request: Request) -> HandshakeEngine:
        if not hasattr(request.app.state, "engine"):
            _ensure_runtime_state(
                request.app,
                settings=settings,
                storage_override=storage,
                client_override=client,
            )
        return request.app.state.engine

    @app.exception_handler(HandshakeError)
    async def handshake_error_handler(_: Request, exc: HandshakeError) -> JSONResponse:
        body = ErrorResponse(
            error=exc.error,
            message=exc.message,
            request_id=exc.request_id,
            upstream=exc.body if isinstance(exc, UpstreamError) else None,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=body.model_dump(mode="json", exclude_none=True),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        body = ErrorResponse(
            error="invalid_request",
            message="Request body or parameters are invalid",
            details=jsonable_encoder(exc.errors()),
        )
        return JSONResponse(status_code=422, content=body.model_dump(mode="json", exclude_none=True))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled error method=%s path=%s", request.method, request.url.path, exc_info=exc
        )
        body = ErrorResponse(error="internal_error", message="Internal server error")
        return JSONResponse(
            status_code=500,
            content=body.model_dump(mode="json", exclude_none=True),
        )

    @app.get("/", response_class=HTMLResponse)
    def home() -> str:
        return render_admin_page(app_name=settings.app_name)

    @app.get("/health")
    @app.get("/healthz")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.post("/v1/send/request")
    def send_request(
        request: Request,
        payload: InitiateRequest | None = Body(default=None),
    ) -> dict[str, Any]:
        engine = _get_engine(request)
        result = engine.initiate(
            payload.message if payload else None,
            base_url=str(request.base_url),
        )
        return {
            "success": True,
            "message": "Request was sent successfully",
            "request_id": result.request_id,
            "webhook_url": result.webhook_url,
        }

    # The misspelled path is what earlier deployments handed out as callback URLs.
    @app.post("/v1/receive/secret/{request_id}", status_code=204)
    @app.post("/v1/recieve/secret/{request_id}", status_code=204, include_in_schema=False)
    async def receive_secret(
        request_id: str,
        request: Request,
        token: str | None = Query(default=None),
    ) -> Response:
        engine = _get_engine(request)
        payload = await _read_callback_body(request)
        await run_in_threadpool(engine.receive, request_id, payload, token=token)
        return Response(status_code=204)

    @app.get("/v1/secrets")
    def list_secrets(request: Request) -> dict[str, Any]:
        records = _get_engine(request).list_records()
        return {
            "success": True,
            "data": {request_id: record_payload(record) for request_id, record in records.items()},
        }

    @app.get("/v1/secrets/{request_id}")
    def get_secret(request_id: str, request: Request) -> dict[str, Any]:
        record = _get_engine(request).get(request_id)
        return {"success": True, "data": record_payload(record)}

    @app.post("/v1/check/{request_id}")
    def check_request(request_id: str, request: Request) -> dict[str, Any]:
        result = _get_engine(request).check(request_id)
        return {
            "success": True,
            "combined_code": result.combined_code,
            "data": result.response,
            "checked_at": result.checked_at.isoformat(),
        }

    return app


async def _read_callback_body(request: Request) -> Any:
    """Decode a webhook body: JSON, urlencoded form, or plain text as-is."""
    raw = await request.body()
    if not raw:
        return {}
    text = raw.decode("utf-8", errors="replace")
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/x-www-form-urlencoded"):
        return dict(parse.parse_qsl(text, keep_blank_values=True))
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


app = create_app()
