"""FastAPI application wiring for the chat proxy endpoint."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Callable

import requests
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from .audit import AuditEvent, AuditLogger, conversation_fingerprint, now_ms
from .config import Settings, load_settings
from .errors import InputValidationError, MethodError, ProxyError, UpstreamStatusError
from .models import ErrorResponse
from .normalizer import ChatNormalizer, NormalizedRequest, build_normalizer
from .upstream_anthropic import AnthropicUpstream

logger = logging.getLogger(__name__)

ROUTED_METHODS = ["GET", "POST", "OPTIONS", "PUT", "PATCH", "DELETE"]


def anthropic_factory(
    settings: Settings,
    session: requests.Session | None = None,
) -> Callable[[str], AnthropicUpstream]:
    """Build upstream clients from settings; all of them share one connection pool."""
    http = session or requests.Session()

    def make(api_key: str) -> AnthropicUpstream:
        return AnthropicUpstream(
            api_key=api_key,
            url=settings.anthropic_api_url,
            version=settings.anthropic_version,
            timeout_s=settings.upstream_timeout_s,
            session=http,
        )

    return make


def create_app(
    settings: Settings | None = None,
    *,
    upstream_factory: Callable[[str], Any] | None = None,
) -> FastAPI:
    """Create the proxy app for one configured normalizer variant."""
    settings = settings or load_settings()
    http: requests.Session | None = None
    if upstream_factory is None:
        http = requests.Session()
        upstream_factory = anthropic_factory(settings, http)
    normalizer: ChatNormalizer = build_normalizer(settings, upstream_factory)
    audit = AuditLogger(settings.audit_log_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if http is not None:
            http.close()

    app = FastAPI(title="LLM Chat Proxy", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.normalizer = normalizer
    app.state.audit = audit

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=list(normalizer.cors_methods),
        allow_headers=list(normalizer.cors_headers),
    )

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
        headers = None
        if isinstance(exc, MethodError):
            headers = {"Allow": ", ".join(normalizer.cors_methods)}
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.message, details=exc.details or None).model_dump(
                exclude_none=True
            ),
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=str(exc.detail)).model_dump(exclude_none=True),
            headers=getattr(exc, "headers", None),
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        """Return a lightweight readiness signal for probes and monitors."""
        return {"status": "ok"}

    def record(
        *,
        request_id: str,
        path: str,
        t0: float,
        status_code: int,
        req: NormalizedRequest | None,
        exc: ProxyError | None = None,
    ) -> None:
        audit.write(
            AuditEvent(
                request_id=request_id,
                ts_ms=now_ms(),
                path=path,
                variant=normalizer.name,
                status_code=status_code,
                latency_ms=int((time.time() - t0) * 1000),
                message_count=len(req.messages) if req else 0,
                ping=bool(req and req.is_ping),
                conversation_sha256=conversation_fingerprint(req.messages) if req else None,
                upstream_status=exc.upstream_status
                if isinstance(exc, UpstreamStatusError)
                else None,
                error=exc.message if exc else None,
            )
        )

    @app.api_route(settings.chat_path, methods=ROUTED_METHODS)
    async def chat(request: Request):
        """Validate, forward, and reshape one chat turn."""
        if request.method == "OPTIONS":
            return Response(status_code=200)
        if request.method == "GET" and "GET" in normalizer.cors_methods:
            return {"status": "ok", "variant": normalizer.name}
        if request.method != "POST":
            raise MethodError("Method not allowed")

        t0 = time.time()
        request_id = audit.new_request_id()
        req: NormalizedRequest | None = None
        try:
            try:
                payload = await request.json()
            except ValueError as e:
                raise InputValidationError("Request body must be valid JSON") from e
            req = normalizer.validate(payload)
            out = await run_in_threadpool(normalizer.respond, req)
        except ProxyError as e:
            logger.info("chat request %s failed: %s", request_id, e.message)
            await run_in_threadpool(
                record,
                request_id=request_id,
                path=str(request.url.path),
                t0=t0,
                status_code=e.status_code,
                req=req,
                exc=e,
            )
            raise

        await run_in_threadpool(
            record,
            request_id=request_id,
            path=str(request.url.path),
            t0=t0,
            status_code=200,
            req=req,
        )
        return out

    return app


app = create_app()
