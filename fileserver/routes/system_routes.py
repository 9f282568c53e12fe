"""Server control, pairing and health routes."""

import asyncio
import logging

from fastapi import APIRouter, FastAPI, Request

from common.constants import SHUTDOWN_GRACE_SECONDS
from fileserver.exceptions import InternalError
from fileserver.pairing import build_connection_info
from fileserver.schemas.system import ConnectionInfoResponse, ShutdownResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["System"])


def request_exit(app: FastAPI) -> None:
    """
    Stop the running uvicorn server without waiting for open transfers.
    """
    server = getattr(app.state, "server", None)
    if server is None:
        logger.warning("Shutdown requested but no server is attached")
        return
    logger.info("Shutting down now.")
    server.should_exit = True
    server.force_exit = True


@router.post("/api/shutdown", response_model=ShutdownResponse)
async def shutdown(request: Request):
    """
    Stop the server after a short grace delay so this response gets flushed.
    """
    logger.info("Received shutdown signal from client.")
    asyncio.get_running_loop().call_later(SHUTDOWN_GRACE_SECONDS, request_exit, request.app)
    return ShutdownResponse(message="Server is shutting down...")


@router.get("/api/info", response_model=ConnectionInfoResponse)
async def connection_info(request: Request):
    """
    Connection URL, IP, port and a QR code for pairing another device.

    Raises:
        - 500: QR code generation failed
    """
    port = getattr(request.app.state, "port", None)
    if port is None:
        server = request.scope.get("server") or (None, 80)
        port = server[1] or 80

    try:
        info = await asyncio.to_thread(build_connection_info, port)
    except Exception as e:
        logger.error(f"Failed to generate QR code: {e}", exc_info=True)
        raise InternalError("Failed to generate QR code")

    return ConnectionInfoResponse(**info)


@router.get("/health")
async def health_check(request: Request):
    """
    Liveness check; also reports how many transfers are streaming.
    """
    context = request.app.state.context
    return {"status": "healthy", "service": "localtransfer", "activeTransfers": context.counter.active}
