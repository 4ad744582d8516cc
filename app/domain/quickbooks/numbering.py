"""Document number reconciliation between QuickBooks and the local database"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Estimate, PurchaseOrder, VendorBill
from ...models_invoice import Invoice
from .client import QuickBooksClient

logger = logging.getLogger(__name__)

TRAILING_DIGITS = re.compile(r"([0-9]+)$")
ALTERNATE_PREFIX = re.compile(r"^([A-Za-z-]+)([0-9]+)$")
DIGITS_ONLY = re.compile(r"^[0-9]+$")

REMOTE_LIMIT = 100
LOCAL_LIMIT = 200


def extract_next_number(candidates: list[str], prefix: str) -> str:
    """
    Compute the next document number that collides with none of the candidates.

    The result copies the style of the highest-numbered candidate:
        1. "<prefix><digits>"           -> same prefix, same width
        2. "<digits>"                   -> same width, no prefix added
        3. "<letters-and-dashes><digits>" -> that prefix, same width
        4. anything else                -> prefix + 4 digits

    Ties on the numeric value keep the first candidate seen, so callers pass
    remote numbers before local ones.
    """
    winner: Optional[str] = None
    winner_digits = ""
    max_value = 0

    for raw in candidates:
        if raw is None:
            continue
        candidate = str(raw).strip()
        match = TRAILING_DIGITS.search(candidate)
        if not match:
            continue
        value = int(match.group(1))
        if value == 0:
            continue
        if value > max_value:
            max_value = value
            winner = candidate
            winner_digits = match.group(1)

    if winner is None:
        return f"{prefix}0001"

    next_num = max_value + 1
    width = len(winner_digits)

    if winner.startswith(prefix) and DIGITS_ONLY.match(winner[len(prefix):]):
        return f"{prefix}{next_num:0{width}d}"

    if DIGITS_ONLY.match(winner):
        return f"{next_num:0{width}d}"

    alternate = ALTERNATE_PREFIX.match(winner)
    if alternate:
        return f"{alternate.group(1)}{next_num:0{len(alternate.group(2))}d}"

    return f"{prefix}{next_num:04d}"


@dataclass(frozen=True)
class DocumentType:
    prefix: str
    remote_entity: str
    model: type


DOCUMENT_TYPES = {
    "invoice": DocumentType("INV-", "Invoice", Invoice),
    "estimate": DocumentType("EST-", "Estimate", Estimate),
    "purchase_order": DocumentType("PO-", "PurchaseOrder", PurchaseOrder),
    "bill": DocumentType("BILL-", "Bill", VendorBill),
}


class UnknownDocumentType(ValueError):
    pass


def get_document_type(doc_type: str) -> DocumentType:
    try:
        return DOCUMENT_TYPES[doc_type]
    except KeyError:
        raise UnknownDocumentType(
            f"Unknown document type '{doc_type}'. Expected one of: {', '.join(DOCUMENT_TYPES)}"
        ) from None


class DocumentNumberService:
    """
    Next safe sequential number across both systems of record.

    There is no reservation: two callers computing concurrently can receive the
    same number before either persists it.
    """

    def __init__(self, db: Session, client: Optional[QuickBooksClient] = None):
        self.db = db
        self.client = client

    def local_numbers(self, doc_type: str) -> list[str]:
        model = get_document_type(doc_type).model
        rows = (
            self.db.query(model.number)
            .order_by(model.created_at.desc(), model.id.desc())
            .limit(LOCAL_LIMIT)
            .all()
        )
        return [row[0] for row in rows if row[0]]

    async def remote_numbers(self, doc_type: str) -> list[str]:
        if self.client is None:
            return []
        entity = get_document_type(doc_type).remote_entity
        records = await self.client.query_entities(
            entity,
            f"SELECT DocNumber FROM {entity} ORDERBY MetaData.CreateTime DESC MAXRESULTS {REMOTE_LIMIT}",
        )
        return [r["DocNumber"] for r in records if r.get("DocNumber")]

    def next_local_number(self, doc_type: str) -> str:
        """Next number using local rows only"""
        return extract_next_number(self.local_numbers(doc_type), get_document_type(doc_type).prefix)

    async def get_next_number(self, doc_type: str) -> dict:
        document = get_document_type(doc_type)

        remote = await self.remote_numbers(doc_type)
        source = "combined" if self.client is not None else "local"
        local = self.local_numbers(doc_type)
        next_number = extract_next_number(remote + local, document.prefix)

        logger.info(
            f"🔢 Next {doc_type} number: {next_number} "
            f"(remote={len(remote)}, local={len(local)})"
        )
        return {
            "success": True,
            "nextNumber": next_number,
            "source": source,
            "remoteCount": len(remote),
            "localCount": len(local),
        }
