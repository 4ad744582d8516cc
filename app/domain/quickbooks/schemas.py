"""QuickBooks domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, field_validator


class OAuthCallbackRequest(BaseModel):
    code: str
    realmId: str
    state: Optional[str] = None


class NextNumberRequest(BaseModel):
    type: str

    @field_validator("type")
    @classmethod
    def normalize_type(cls, v):
        # "purchase-order" and "Purchase_Order" both mean purchase_order
        return v.strip().lower().replace("-", "_")


class VendorSyncRequest(BaseModel):
    vendorId: int


class PurchaseOrderSyncRequest(BaseModel):
    purchaseOrderId: int


class BillAttachmentRequest(BaseModel):
    billId: int


class QuickBooksStatusResponse(BaseModel):
    connected: bool
    realmId: Optional[str] = None
    companyName: Optional[str] = None
    connectedAt: Optional[datetime] = None
    lastSyncAt: Optional[datetime] = None
    tokenExpiresAt: Optional[datetime] = None


class SyncLogResponse(BaseModel):
    id: int
    entity_type: str
    entity_id: Optional[int] = None
    quickbooks_id: Optional[str] = None
    action: str
    status: str
    error_message: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
