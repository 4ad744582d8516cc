"""
QuickBooks Integration Models
Database models for the QuickBooks connection, id mappings and sync audit log
"""
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base


class QuickBooksConfig(Base):
    """Singleton row holding the QuickBooks OAuth tokens and company"""
    __tablename__ = "quickbooks_config"

    id = Column(Integer, primary_key=True, index=True)

    # OAuth tokens (encrypted when QUICKBOOKS_ENCRYPTION_KEY is set)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    token_expires_at = Column(DateTime, nullable=False)

    # QuickBooks company info
    realm_id = Column(String(255), nullable=False)  # QuickBooks company ID
    company_name = Column(String(255), nullable=True)

    is_connected = Column(Boolean, default=True, nullable=False)
    connected_at = Column(DateTime, nullable=True)
    last_sync_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class MappingMixin:
    """Local row id <-> QuickBooks id, one row per local entity"""

    id = Column(Integer, primary_key=True, index=True)
    quickbooks_id = Column(String(255), nullable=False, unique=True, index=True)
    quickbooks_doc_number = Column(String(100), nullable=True)

    sync_status = Column(String(50), default="synced")  # synced, pending, error, voided
    sync_direction = Column(String(20), nullable=True)  # import, export
    error_message = Column(Text, nullable=True)
    last_synced_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class QuickBooksCustomerMapping(MappingMixin, Base):
    __tablename__ = "quickbooks_customer_mappings"

    entity_id = Column(Integer, ForeignKey("customers.id"), nullable=False, unique=True)


class QuickBooksVendorMapping(MappingMixin, Base):
    __tablename__ = "quickbooks_vendor_mappings"

    entity_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, unique=True)


class QuickBooksProductMapping(MappingMixin, Base):
    __tablename__ = "quickbooks_product_mappings"

    entity_id = Column(Integer, ForeignKey("products.id"), nullable=False, unique=True)


class QuickBooksInvoiceMapping(MappingMixin, Base):
    __tablename__ = "quickbooks_invoice_mappings"

    entity_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, unique=True)


class QuickBooksEstimateMapping(MappingMixin, Base):
    __tablename__ = "quickbooks_estimate_mappings"

    entity_id = Column(Integer, ForeignKey("estimates.id"), nullable=False, unique=True)


class QuickBooksBillMapping(MappingMixin, Base):
    __tablename__ = "quickbooks_bill_mappings"

    entity_id = Column(Integer, ForeignKey("vendor_bills.id"), nullable=False, unique=True)


class QuickBooksPurchaseOrderMapping(MappingMixin, Base):
    __tablename__ = "quickbooks_po_mappings"

    entity_id = Column(Integer, ForeignKey("purchase_orders.id"), nullable=False, unique=True)


class QuickBooksSyncLog(Base):
    """Append-only record of each sync attempt"""
    __tablename__ = "quickbooks_sync_log"

    id = Column(Integer, primary_key=True, index=True)

    entity_type = Column(String(50), nullable=False)  # invoice, estimate, vendor, bill_attachment
    entity_id = Column(Integer, nullable=True)
    quickbooks_id = Column(String(255), nullable=True)

    action = Column(String(50), nullable=False)  # import, create, update, webhook_update, pull
    status = Column(String(50), nullable=False)  # success, partial, error

    error_message = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
