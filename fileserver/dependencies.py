"""FastAPI dependencies for the file routes."""

from fastapi import Request

from fileserver.context import TransferContext


def get_context(request: Request) -> TransferContext:
    return request.app.state.context
