"""Streaming response that holds a transfer slot while it is being sent."""

import logging

from starlette.requests import ClientDisconnect
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from fileserver.transfer_counter import TransferCounter

logger = logging.getLogger(__name__)


class TransferStreamingResponse(StreamingResponse):
    """
    StreamingResponse over a FileStream or ArchiveStream.

    The transfer counter is acquired when the response starts and released
    exactly once however it ends: completion, read error, or client
    disconnect. The stream's close() runs on the same paths. A disconnect is
    a normal end of transfer and is not re-raised.
    """

    def __init__(self, stream, counter: TransferCounter, media_type: str = "application/octet-stream"):
        super().__init__(stream.chunks(), media_type=media_type, headers=stream.headers)
        self.stream = stream
        self.counter = counter

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        async with self.counter.track():
            try:
                await super().__call__(scope, receive, send)
            except ClientDisconnect:
                logger.info(
                    f"Client disconnected from {self.stream.filename} "
                    f"after {self.stream.bytes_sent} bytes"
                )
            finally:
                await self.stream.close()
