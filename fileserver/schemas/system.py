"""Pydantic schemas for server control and pairing endpoints."""

from pydantic import BaseModel


class ShutdownResponse(BaseModel):
    """Response model for shutdown requests."""
    message: str


class ConnectionInfoResponse(BaseModel):
    """Connection details a second device needs to reach this server."""
    url: str
    ip: str
    port: int
    qrCode: str
