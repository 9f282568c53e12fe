"""Entry point for the LocalTransfer file server."""

import asyncio
import errno
import socket
import sys
import time
import uuid
from typing import Optional, Tuple

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from uvicorn.protocols.http.h11_impl import H11Protocol

from common.constants import PORT_FALLBACK_ATTEMPTS, SHUTDOWN_GRACE_SECONDS
from common.logging_config import setup_logging
from fileserver import config
from fileserver.context import TransferContext
from fileserver.exceptions import (
    TransferException,
    AccessDeniedError,
    PathNotFoundError,
    BadRequestError,
    PartialFailureError,
    StreamError,
    InternalError
)
from fileserver.pairing import get_local_ip, print_terminal_qr
from fileserver.routes import file_router, system_router
from fileserver.schemas import ErrorResponse

logger = setup_logging(
    'localtransfer',
    mask_root=config.SHARED_ROOT if config.MASK_PATHS else None
)

# Endpoints whose errors are plain text; listing, upload and info answer JSON.
PLAIN_TEXT_PATHS = ("/api/download", "/api/download-zip", "/api/shutdown")


class NoDelayH11Protocol(H11Protocol):
    """
    uvicorn HTTP protocol that disables Nagle's algorithm on each connection.
    """

    def connection_made(self, transport) -> None:
        sock = transport.get_extra_info("socket")
        if sock is not None and sock.family in (socket.AF_INET, socket.AF_INET6):
            try:
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            except OSError as e:
                logger.debug(f"Could not set TCP_NODELAY: {e}")
        super().connection_made(transport)


class RequestLoggingMiddleware:
    """
    ASGI middleware logging each HTTP request with an id and its duration.

    Written against the raw ASGI interface so streamed downloads pass
    through unbuffered and keep their backpressure.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = str(uuid.uuid4())
        scope.setdefault("state", {})["request_id"] = request_id
        method = scope["method"]
        path = scope["path"]
        start_time = time.time()
        status_code = None

        logger.info(f"Request started: {method} {path} [request_id={request_id}]")

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                message.setdefault("headers", [])
                message["headers"] = list(message["headers"]) + [
                    (b"x-request-id", request_id.encode())
                ]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration = time.time() - start_time
            logger.info(
                f"Request completed: {method} {path} "
                f"status={status_code} duration={duration:.3f}s [request_id={request_id}]"
            )


def _wants_plain_text(request: Request) -> bool:
    return request.url.path in PLAIN_TEXT_PATHS or request.method == "DELETE"


def _error_response(request: Request, exc: Exception, status_code: int, code: str):
    if _wants_plain_text(request):
        return PlainTextResponse(str(exc), status_code=status_code)
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(detail=str(exc), code=code).model_dump()
    )


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    logger.error(
        f"Unhandled error in event loop: {context.get('message')}",
        exc_info=context.get("exception")
    )


def create_app(shared_root: Optional[str] = None, upload_temp: Optional[str] = None) -> FastAPI:
    """
    Build the FastAPI application around one TransferContext.

    Args:
        shared_root: Directory to share (defaults to LT_SHARED_ROOT)
        upload_temp: Upload staging directory (defaults to LT_UPLOAD_TEMP)

    Returns:
        Configured FastAPI app; the context is on app.state.context
    """
    app = FastAPI(
        title="LocalTransfer",
        description="Share a local folder with devices on the same network",
        version="1.0.0"
    )

    app.state.context = TransferContext(
        shared_root=shared_root or config.SHARED_ROOT,
        upload_temp=upload_temp or config.UPLOAD_TEMP
    )
    app.state.server = None
    app.state.port = None

    app.add_middleware(RequestLoggingMiddleware)

    @app.on_event("startup")
    async def startup_event():
        """
        Create the shared and staging directories and install the loop error logger.
        """
        logger.info("LocalTransfer starting up...")
        app.state.context.ensure_directories()
        asyncio.get_running_loop().set_exception_handler(_log_loop_exception)

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info(
            f"LocalTransfer shutting down (active transfers: {app.state.context.counter.active})"
        )

    @app.exception_handler(AccessDeniedError)
    async def access_denied_handler(request: Request, exc: AccessDeniedError):
        logger.warning(f"Access denied: {request.method} {request.url.path}")
        return _error_response(request, exc, status.HTTP_403_FORBIDDEN, "ACCESS_DENIED")

    @app.exception_handler(PathNotFoundError)
    async def not_found_handler(request: Request, exc: PathNotFoundError):
        logger.warning(f"Not found: {exc} path={request.url.path}")
        return _error_response(request, exc, status.HTTP_404_NOT_FOUND, "NOT_FOUND")

    @app.exception_handler(BadRequestError)
    async def bad_request_handler(request: Request, exc: BadRequestError):
        logger.warning(f"Bad request: {exc} path={request.url.path}")
        return _error_response(request, exc, status.HTTP_400_BAD_REQUEST, "BAD_REQUEST")

    @app.exception_handler(PartialFailureError)
    async def partial_failure_handler(request: Request, exc: PartialFailureError):
        logger.error(f"Upload processing error: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Error processing uploads",
                "code": "PARTIAL_FAILURE",
                "failed": [
                    outcome.relative_path for outcome in exc.outcomes
                    if outcome.error is not None
                ]
            }
        )

    @app.exception_handler(StreamError)
    async def stream_error_handler(request: Request, exc: StreamError):
        logger.error(f"Stream error: {exc} path={request.url.path}")
        return _error_response(request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "STREAM_ERROR")

    @app.exception_handler(InternalError)
    async def internal_error_handler(request: Request, exc: InternalError):
        logger.error(f"Internal error: {exc} path={request.url.path}")
        return _error_response(request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR")

    @app.exception_handler(TransferException)
    async def transfer_exception_handler(request: Request, exc: TransferException):
        logger.error(f"Transfer exception: {exc} path={request.url.path}", exc_info=True)
        return _error_response(request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR")

    app.include_router(file_router)
    app.include_router(system_router)

    return app


def bind_socket(host: str, port: int, attempts: int = PORT_FALLBACK_ATTEMPTS) -> Tuple[socket.socket, int]:
    """
    Bind a listening socket, moving to the next port while the port is taken.

    Args:
        host: Interface to bind
        port: First port to try
        attempts: How many consecutive ports to try

    Returns:
        (bound socket, port actually bound)

    Raises:
        OSError: If no port could be bound
    """
    last_error = None
    for candidate in range(port, port + attempts):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, candidate))
        except OSError as e:
            sock.close()
            if e.errno != errno.EADDRINUSE:
                raise
            logger.info(f"Port {candidate} is in use, trying {candidate + 1}...")
            last_error = e
            continue
        sock.set_inheritable(True)
        return sock, candidate

    raise OSError(errno.EADDRINUSE, f"No free port in {port}-{port + attempts - 1}") from last_error


def build_server(app: FastAPI) -> uvicorn.Server:
    """
    uvicorn server for the app, attached to app.state for /api/shutdown.

    Open streams get SHUTDOWN_GRACE_SECONDS to finish once shutdown starts,
    then their tasks are cancelled.
    """
    server = uvicorn.Server(uvicorn.Config(
        app,
        http=NoDelayH11Protocol,
        log_config=None,
        timeout_graceful_shutdown=SHUTDOWN_GRACE_SECONDS
    ))
    app.state.server = server
    return server


def run_server(app: FastAPI, host: str = config.SERVER_HOST, port: int = config.SERVER_PORT) -> None:
    """
    Serve the app with uvicorn until /api/shutdown or Ctrl+C.
    """
    sock, bound_port = bind_socket(host, port)
    server = build_server(app)
    app.state.port = bound_port

    url = f"http://{get_local_ip()}:{bound_port}"
    logger.info("---------------------------------------------------")
    logger.info("Server started!")
    logger.info("Scan this QR Code to connect:")
    print_terminal_qr(url)
    logger.info(f"Or visit: {url}")
    logger.info(f"Local: http://localhost:{bound_port}")
    logger.info(f"Shared Folder: {app.state.context.shared_root}")
    logger.info("---------------------------------------------------")

    server.run(sockets=[sock])


def main() -> None:
    """
    Start the file server with settings from the environment.
    """
    if '--debug' in sys.argv:
        setup_logging('localtransfer', log_level='DEBUG')
        logger.info("Debug logging enabled")

    app = create_app()
    try:
        run_server(app)
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    main()
