"""Shared Pydantic schemas for hubsync."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "hubsync"


class ErrorResponse(BaseModel):
    error: str
    code: str
    status: int