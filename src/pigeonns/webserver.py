"""HTTP gateway for PigeonNS.

Browsers cannot send multicast DNS themselves, so this module exposes the
resolver over a tiny read-only FastAPI application:

  - GET /resolve?name=<hostname>&type=<A|AAAA>
  - GET /health
  - GET /

Every handler returns JSON. Errors use the shape {"error": str, "statusCode": int}.
"""

from __future__ import annotations

import asyncio
import importlib.metadata as importlib_metadata
import logging
from concurrent.futures import Future
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import ServerConfig
from .errors import ResolverError
from .resolver import MdnsResolver, normalize_type

try:
    PIGEONNS_VERSION = importlib_metadata.version("pigeonns")
except Exception:  # pragma: no cover - running from a source checkout
    PIGEONNS_VERSION = "unknown"

logger = logging.getLogger("pigeonns.webserver")

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class _Suppress2xxAccessFilter(logging.Filter):
    """Logging filter that drops uvicorn access records for HTTP 2xx responses.

    Inputs:
      - record: logging.LogRecord instance from uvicorn.access.

    Outputs:
      - bool: False for records that clearly correspond to HTTP 2xx status codes,
        True otherwise (including when no status code can be determined).
    """

    def filter(self, record: logging.LogRecord) -> bool:
        status = getattr(record, "status_code", None)
        if status is None:
            args = getattr(record, "args", None)
            if isinstance(args, dict):
                status = args.get("status_code") or args.get("status")
            elif isinstance(args, (tuple, list)) and args:
                # uvicorn passes the status code as the last positional arg
                status = args[-1]
        try:
            code = int(status)
        except (TypeError, ValueError):
            return True
        return not (200 <= code <= 299)


def install_uvicorn_2xx_suppression() -> None:
    """Attach _Suppress2xxAccessFilter to the uvicorn.access logger once."""

    access_logger = logging.getLogger("uvicorn.access")
    for f in access_logger.filters:
        if isinstance(f, _Suppress2xxAccessFilter):
            return
    access_logger.addFilter(_Suppress2xxAccessFilter())


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "statusCode": status_code},
    )


def _copy_outcome(source: Future, waiter: "asyncio.Future[Any]") -> None:
    if waiter.done():
        return
    if source.cancelled():
        waiter.cancel()
        return
    exc = source.exception()
    if exc is not None:
        waiter.set_exception(exc)
    else:
        waiter.set_result(source.result())


async def await_shared(future: Future) -> Any:
    """Brief: Await a resolver future without letting this caller cancel it.

    Inputs:
      - future: concurrent.futures.Future shared by every caller joined on a key.

    Outputs:
      - The future's result; raises its exception.

    Notes:
      - asyncio.wrap_future() would propagate cancellation of a disconnected
        HTTP client to the shared future and fail every other joined caller.
        A private asyncio future is relayed instead.
    """

    loop = asyncio.get_running_loop()
    waiter: "asyncio.Future[Any]" = loop.create_future()

    def _relay(src: Future) -> None:
        try:
            loop.call_soon_threadsafe(_copy_outcome, src, waiter)
        except RuntimeError:
            logger.debug("event loop closed before resolver outcome was delivered")

    future.add_done_callback(_relay)
    return await waiter


def _api_info() -> Dict[str, Any]:
    return {
        "name": "PigeonNS mDNS Resolution API",
        "version": PIGEONNS_VERSION,
        "endpoints": {
            "/resolve": "Resolve a .local hostname. Params: name (required), type (default: A)",
            "/health": "Health check and cache status",
        },
        "examples": [
            "/resolve?name=abc123.local",
            "/resolve?name=device&type=AAAA",
            "/health",
        ],
    }


def create_app(
    resolver: MdnsResolver,
    *,
    cors: bool = True,
    manage_resolver: bool = False,
) -> FastAPI:
    """Create the FastAPI app exposing the resolver over HTTP.

    Inputs:
      - resolver: MdnsResolver answering /resolve and /health.
      - cors: When True (default) every response carries open CORS headers.
      - manage_resolver: When True the app's lifespan starts the resolver on
        startup and stops it on shutdown.

    Outputs:
      - Configured FastAPI application.

    Example:
      >>> from pigeonns.resolver import MdnsResolver
      >>> app = create_app(MdnsResolver(), manage_resolver=True)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        install_uvicorn_2xx_suppression()
        if manage_resolver and not resolver.running:
            resolver.start()
        try:
            yield
        finally:
            if manage_resolver:
                resolver.stop()

    app = FastAPI(
        title="PigeonNS mDNS Resolution API",
        version=PIGEONNS_VERSION,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.resolver = resolver

    @app.middleware("http")
    async def only_get(request: Request, call_next):
        """Answer preflights with 204, reject non-GET methods, add CORS headers."""

        if request.method == "OPTIONS":
            response: Response = Response(status_code=204)
        elif request.method != "GET":
            response = _error_response(405, "Method not allowed")
        else:
            response = await call_next(request)
        if cors:
            for header, value in _CORS_HEADERS.items():
                response.headers[header] = value
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = "Not found" if exc.status_code == 404 else str(exc.detail)
        return _error_response(exc.status_code, message)

    @app.get("/")
    async def index() -> Dict[str, Any]:
        return _api_info()

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        """Return liveness plus the cache size and a diagnostic snapshot."""

        return {
            "status": "ok",
            "cache": {
                "size": resolver.cache_size(),
                "entries": resolver.cache_snapshot(),
            },
        }

    @app.get("/resolve")
    async def resolve(
        name: Optional[str] = None,
        hostname: Optional[str] = None,
        rtype: str = Query("A", alias="type"),
    ):
        """Brief: Resolve a hostname and return its address.

        Inputs:
          - name (or hostname): hostname with or without `.local`.
          - type: "A" (default) or "AAAA".

        Outputs:
          - 200 {hostname, type, address} on success.
          - 400 when the name is missing or the type is unsupported.
          - 404 {error, statusCode} when resolution fails for any reason,
            including timeouts.
        """

        host = name or hostname
        if not host or not host.strip():
            return _error_response(400, "Missing required parameter: name or hostname")

        try:
            qtype = normalize_type(rtype)
            normalized = resolver.normalize(host)
        except ValueError as exc:
            return _error_response(400, str(exc))

        try:
            address = await await_shared(resolver.resolve_future(normalized, qtype))
        except ResolverError as exc:
            logger.info("resolve %s %s failed: %s", qtype, normalized, exc)
            return _error_response(404, str(exc))

        return {"hostname": normalized, "type": qtype, "address": address}

    return app


def serve(resolver: MdnsResolver, server_cfg: ServerConfig, log_level: str = "info") -> None:
    """Brief: Run the gateway with uvicorn in the foreground until interrupted.

    Inputs:
      - resolver: Started MdnsResolver; the caller owns its lifecycle.
      - server_cfg: Listen host/port and CORS switch.
      - log_level: uvicorn log level name.

    Outputs:
      - None once uvicorn exits.
    """

    app = create_app(resolver, cors=server_cfg.cors)
    config = uvicorn.Config(
        app,
        host=server_cfg.host,
        port=server_cfg.port,
        log_level=log_level,
        # Keep the handlers installed by init_logging().
        log_config=None,
    )
    server = uvicorn.Server(config)
    logger.info("Starting HTTP gateway on http://%s:%d", server_cfg.host, server_cfg.port)
    server.run()
