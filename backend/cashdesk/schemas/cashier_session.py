"""Cashier session schemas - request bodies for session and supervisor endpoints.

Clients send camelCase keys; snake_case is accepted as well.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CheckInRequest(_CamelModel):
    """Open (or resume) today's entry."""
    cashier_id: Optional[int] = Field(default=None, alias="cashierId")


class CheckOutRequest(_CamelModel):
    """Close today's open entry. ``reason`` is one of the checkout reason values."""
    cashier_id: Optional[int] = Field(default=None, alias="cashierId")
    reason: Optional[str] = Field(default=None, max_length=50)
    reason_details: Optional[str] = Field(default=None, alias="reasonDetails", max_length=500)


class ScreenShareStatusUpdate(_CamelModel):
    is_sharing: bool = Field(..., alias="isSharing")
    peer_id: Optional[str] = Field(default=None, alias="peerId", max_length=200)


class ForceCheckoutRequest(_CamelModel):
    reason: Optional[str] = Field(default=None, max_length=50)
    reason_details: Optional[str] = Field(default=None, alias="reasonDetails", max_length=500)
