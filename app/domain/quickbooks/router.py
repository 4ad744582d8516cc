"""QuickBooks router - FastAPI endpoints for connection and sync operations"""

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import require_sync_api_key
from ...database import get_db
from ...utils.file_storage import AttachmentStorage
from .attachments import AttachmentPuller
from .exceptions import NotConnected
from .exporters import PurchaseOrderExporter, VendorExporter
from .importers import EstimateImporter, InvoiceImporter
from .numbering import DocumentNumberService, UnknownDocumentType, get_document_type
from .references import CustomerImporter, ProductImporter
from .repository import QuickBooksRepository
from .schemas import (
    BillAttachmentRequest,
    NextNumberRequest,
    OAuthCallbackRequest,
    PurchaseOrderSyncRequest,
    QuickBooksStatusResponse,
    SyncLogResponse,
    VendorSyncRequest,
)
from .tokens import TokenManager

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/quickbooks", tags=["QuickBooks"], dependencies=[Depends(require_sync_api_key)]
)


def get_http_client() -> Optional[httpx.AsyncClient]:
    """Shared HTTP client; None opens a short-lived client per request"""
    return None


def get_token_manager(
    db: Session = Depends(get_db),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
) -> TokenManager:
    """Dependency injection for TokenManager"""
    return TokenManager(db, http_client=http_client)


def get_attachment_storage() -> AttachmentStorage:
    return AttachmentStorage()


# ============================================================================
# CONNECTION
# ============================================================================


@router.get("/status", response_model=QuickBooksStatusResponse)
async def get_status(tokens: TokenManager = Depends(get_token_manager)):
    """Check whether QuickBooks is connected"""
    return tokens.status()


@router.post("/oauth/initiate")
async def initiate_oauth(tokens: TokenManager = Depends(get_token_manager)):
    """Build the Intuit authorization URL"""
    return tokens.get_authorization_url()


@router.post("/oauth/callback")
async def oauth_callback(
    data: OAuthCallbackRequest, tokens: TokenManager = Depends(get_token_manager)
):
    """Complete the OAuth flow after Intuit redirects back with a code"""
    return await tokens.exchange_code(data.code, data.realmId)


@router.post("/disconnect")
async def disconnect(tokens: TokenManager = Depends(get_token_manager)):
    return await tokens.disconnect()


# ============================================================================
# NUMBERING
# ============================================================================


@router.post("/next-number")
async def get_next_number(
    data: NextNumberRequest,
    db: Session = Depends(get_db),
    tokens: TokenManager = Depends(get_token_manager),
):
    """Next document number that collides with neither QuickBooks nor local records"""
    try:
        get_document_type(data.type)
    except UnknownDocumentType as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    try:
        client = await tokens.get_client()
    except NotConnected:
        logger.info("ℹ️ QuickBooks not connected, numbering from local records only")
        client = None

    return await DocumentNumberService(db, client).get_next_number(data.type)


# ============================================================================
# IMPORT
# ============================================================================


@router.post("/import/customers")
async def import_customers(
    db: Session = Depends(get_db), tokens: TokenManager = Depends(get_token_manager)
):
    """Pull QuickBooks customers; run before importing invoices or estimates"""
    client = await tokens.get_client()
    result = await CustomerImporter(db, client).import_all()
    return result.to_dict()


@router.post("/import/products")
async def import_products(
    db: Session = Depends(get_db), tokens: TokenManager = Depends(get_token_manager)
):
    client = await tokens.get_client()
    result = await ProductImporter(db, client).import_all()
    return result.to_dict()


@router.post("/import/invoices")
async def import_invoices(
    db: Session = Depends(get_db), tokens: TokenManager = Depends(get_token_manager)
):
    client = await tokens.get_client()
    result = await InvoiceImporter(db, client).import_all()
    return result.to_dict()


@router.post("/import/estimates")
async def import_estimates(
    db: Session = Depends(get_db), tokens: TokenManager = Depends(get_token_manager)
):
    client = await tokens.get_client()
    result = await EstimateImporter(db, client).import_all()
    return result.to_dict()


# ============================================================================
# EXPORT
# ============================================================================


@router.post("/vendors/sync")
async def sync_vendor(
    data: VendorSyncRequest,
    db: Session = Depends(get_db),
    tokens: TokenManager = Depends(get_token_manager),
):
    client = await tokens.get_client()
    return await VendorExporter(db, client).create(data.vendorId)


@router.post("/vendors/update")
async def update_vendor(
    data: VendorSyncRequest,
    db: Session = Depends(get_db),
    tokens: TokenManager = Depends(get_token_manager),
):
    client = await tokens.get_client()
    return await VendorExporter(db, client).update(data.vendorId)


@router.post("/purchase-orders/sync")
async def sync_purchase_order(
    data: PurchaseOrderSyncRequest,
    db: Session = Depends(get_db),
    tokens: TokenManager = Depends(get_token_manager),
):
    client = await tokens.get_client()
    return await PurchaseOrderExporter(db, client).create(data.purchaseOrderId)


# ============================================================================
# ATTACHMENTS & AUDIT
# ============================================================================


@router.post("/bills/pull-attachments")
async def pull_bill_attachments(
    data: BillAttachmentRequest,
    db: Session = Depends(get_db),
    tokens: TokenManager = Depends(get_token_manager),
    storage: AttachmentStorage = Depends(get_attachment_storage),
):
    """Download QuickBooks attachments for a bill into the file store"""
    client = await tokens.get_client()
    result = await AttachmentPuller(db, client, storage).pull(data.billId)
    return result.to_dict()


@router.get("/sync-log", response_model=list[SyncLogResponse])
async def get_sync_log(
    entity_type: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Most recent sync attempts, newest first"""
    return QuickBooksRepository.get_sync_log(db, entity_type=entity_type, limit=limit)
