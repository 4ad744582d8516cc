from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    company = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    company = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)

    # Billing address
    address = Column(String(500), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    zip = Column(String(20), nullable=True)

    specialty = Column(String(255), nullable=True)
    account_number = Column(String(100), nullable=True)
    license_number = Column(String(100), nullable=True)
    tax_id = Column(String(50), nullable=True)
    track_1099 = Column(Boolean, default=False)
    billing_rate = Column(Float, nullable=True)
    website = Column(String(500), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    unit_price = Column(Float, default=0)
    is_taxable = Column(Boolean, default=True)

    created_at = Column(DateTime, server_default=func.now())


class Estimate(Base):
    """Customer-facing estimate (quote)"""

    __tablename__ = "estimates"

    id = Column(Integer, primary_key=True, index=True)
    number = Column(String(50), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    customer_name = Column(String(255), nullable=True)

    status = Column(String(50), default="draft")  # draft, pending, sent, approved, closed
    subtotal = Column(Float, default=0)
    tax_rate = Column(Float, default=0)
    tax_amount = Column(Float, default=0)
    total = Column(Float, default=0)
    valid_until = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    jobsite_address = Column(String(500), nullable=True)

    # Soft delete; voided in QuickBooks keeps the local row
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer")
    line_items = relationship(
        "EstimateLineItem",
        back_populates="estimate",
        cascade="all, delete-orphan",
        order_by="EstimateLineItem.sort_order",
    )


class EstimateLineItem(Base):
    __tablename__ = "estimate_line_items"

    id = Column(Integer, primary_key=True, index=True)
    estimate_id = Column(Integer, ForeignKey("estimates.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    product_name = Column(String(255), nullable=True)  # QuickBooks item name when unmapped
    description = Column(Text, nullable=True)
    quantity = Column(Float, default=1)
    unit_price = Column(Float, default=0)
    markup = Column(Float, default=0)
    total = Column(Float, default=0)
    is_taxable = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)

    estimate = relationship("Estimate", back_populates="line_items")


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id = Column(Integer, primary_key=True, index=True)
    number = Column(String(50), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False)
    vendor_name = Column(String(255), nullable=True)

    status = Column(String(50), default="draft")  # draft, sent, received, closed
    subtotal = Column(Float, default=0)
    total = Column(Float, default=0)
    due_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    vendor = relationship("Vendor")
    line_items = relationship(
        "PurchaseOrderLineItem", back_populates="purchase_order", cascade="all, delete-orphan"
    )


class PurchaseOrderLineItem(Base):
    __tablename__ = "po_line_items"

    id = Column(Integer, primary_key=True, index=True)
    purchase_order_id = Column(
        Integer, ForeignKey("purchase_orders.id"), nullable=False, index=True
    )
    description = Column(Text, nullable=True)
    quantity = Column(Float, default=1)
    unit_price = Column(Float, default=0)
    markup = Column(Float, default=0)  # percent
    total = Column(Float, default=0)

    purchase_order = relationship("PurchaseOrder", back_populates="line_items")


class VendorBill(Base):
    __tablename__ = "vendor_bills"

    id = Column(Integer, primary_key=True, index=True)
    number = Column(String(50), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False)
    vendor_name = Column(String(255), nullable=True)

    status = Column(String(50), default="open")  # open, partially_paid, paid, void
    total = Column(Float, default=0)
    paid_amount = Column(Float, default=0)
    remaining_amount = Column(Float, default=0)
    due_date = Column(Date, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    vendor = relationship("Vendor")
    attachments = relationship(
        "VendorBillAttachment", back_populates="bill", cascade="all, delete-orphan"
    )


class VendorBillAttachment(Base):
    __tablename__ = "vendor_bill_attachments"

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(Integer, ForeignKey("vendor_bills.id"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)  # R2 key
    file_type = Column(String(100), nullable=True)
    file_size = Column(Integer, nullable=True)
    uploaded_by = Column(String(255), nullable=True)  # null when pulled from QuickBooks

    created_at = Column(DateTime, server_default=func.now())

    bill = relationship("VendorBill", back_populates="attachments")
