"""Pydantic schemas for the inbound email webhook"""

from typing import Literal

from pydantic import BaseModel, Field


class WebhookResponse(BaseModel):
    """Outcome of one inbound email."""
    status: Literal["ok", "duplicate"] = Field(..., description="'duplicate' when the Message-Id was already processed")
    redirect: str = Field(..., description="Path of the page showing the result")


class ErrorResponse(BaseModel):
    error: str
    message: str
