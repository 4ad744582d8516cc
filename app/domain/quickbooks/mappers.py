"""Translation of QuickBooks payloads into local column values"""

from datetime import date, datetime, timezone
from typing import Any, Optional

# QuickBooks TxnStatus -> local estimate status
ESTIMATE_STATUS_MAP = {
    "Accepted": "approved",
    "Closed": "approved",
    "Rejected": "draft",
}
DEFAULT_ESTIMATE_STATUS = "pending"


def to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def parse_qb_date(value: Optional[str]) -> Optional[date]:
    """QuickBooks dates are 'YYYY-MM-DD'"""
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def parse_qb_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse a MetaData timestamp into naive UTC"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def map_estimate_status(txn_status: Optional[str]) -> str:
    return ESTIMATE_STATUS_MAP.get(txn_status or "", DEFAULT_ESTIMATE_STATUS)


def map_invoice_status(total: float, balance: float) -> str:
    """Balance-derived invoice status"""
    paid = total - balance
    if balance == 0 and total > 0:
        return "paid"
    if 0 < paid < total:
        return "partially_paid"
    return "sent"


def format_address(address: Optional[dict]) -> Optional[str]:
    if not address:
        return None
    parts = [
        address.get("Line1"),
        address.get("City"),
        address.get("CountrySubDivisionCode"),
        address.get("PostalCode"),
    ]
    text = " ".join(p for p in parts if p).strip()
    return text or None


def _totals(record: dict) -> tuple[float, float, float, float]:
    total = to_float(record.get("TotalAmt"))
    tax_amount = to_float((record.get("TxnTaxDetail") or {}).get("TotalTax"))
    subtotal = total - tax_amount
    tax_rate = round(tax_amount / subtotal * 100, 2) if subtotal > 0 else 0.0
    return subtotal, tax_amount, tax_rate, total


def estimate_fields(record: dict) -> dict:
    """Mutable estimate columns taken from a QuickBooks Estimate"""
    subtotal, tax_amount, tax_rate, total = _totals(record)
    return {
        "status": map_estimate_status(record.get("TxnStatus")),
        "subtotal": subtotal,
        "tax_rate": tax_rate,
        "tax_amount": tax_amount,
        "total": total,
        "notes": (record.get("CustomerMemo") or {}).get("value"),
        "valid_until": parse_qb_date(record.get("ExpirationDate")),
        "jobsite_address": format_address(record.get("ShipAddr")),
    }


def invoice_fields(record: dict) -> dict:
    """Mutable invoice columns taken from a QuickBooks Invoice"""
    subtotal, tax_amount, tax_rate, total = _totals(record)
    balance = to_float(record.get("Balance"))
    return {
        "status": map_invoice_status(total, balance),
        "subtotal": subtotal,
        "tax_rate": tax_rate,
        "tax_amount": tax_amount,
        "total": total,
        "paid_amount": total - balance,
        "remaining_amount": balance,
        "due_date": parse_qb_date(record.get("DueDate") or record.get("TxnDate")),
    }


def sales_lines(record: dict, product_index: dict[str, int]) -> list[dict]:
    """
    Line item values for every SalesItemLineDetail line.

    Subtotal, discount and tax lines are not stored locally. Items with no
    product mapping keep the QuickBooks item name in product_name.
    """
    lines = []
    for line in record.get("Line") or []:
        if line.get("DetailType") != "SalesItemLineDetail":
            continue
        detail = line.get("SalesItemLineDetail") or {}
        item_ref = detail.get("ItemRef") or {}
        item_id = item_ref.get("value")
        amount = to_float(line.get("Amount"))

        lines.append(
            {
                "product_id": product_index.get(str(item_id)) if item_id else None,
                "product_name": item_ref.get("name"),
                "description": line.get("Description") or item_ref.get("name") or "Item",
                "quantity": to_float(detail.get("Qty")) or 1,
                "unit_price": to_float(detail.get("UnitPrice")) or amount,
                "markup": 0,
                "total": amount,
                "is_taxable": (detail.get("TaxCodeRef") or {}).get("value") != "NON",
            }
        )
    return lines


def estimate_line_values(record: dict, product_index: dict[str, int]) -> list[dict]:
    return [
        {**line, "sort_order": index + 1}
        for index, line in enumerate(sales_lines(record, product_index))
    ]


def invoice_line_values(record: dict, product_index: dict[str, int]) -> list[dict]:
    return [
        {k: v for k, v in line.items() if k != "is_taxable"}
        for line in sales_lines(record, product_index)
    ]


def customer_fields(record: dict) -> dict:
    return {
        "name": (record.get("DisplayName") or "").strip() or f"QuickBooks customer {record.get('Id')}",
        "company": record.get("CompanyName") or None,
        "email": (record.get("PrimaryEmailAddr") or {}).get("Address"),
        "phone": (record.get("PrimaryPhone") or {}).get("FreeFormNumber"),
        "address": format_address(record.get("BillAddr")),
    }


def product_fields(record: dict) -> dict:
    return {
        "name": (record.get("Name") or "").strip() or f"QuickBooks item {record.get('Id')}",
        "description": record.get("Description") or record.get("PurchaseDesc"),
        "unit_price": to_float(record.get("UnitPrice")),
        "is_taxable": bool(record.get("Taxable")),
    }
