import re

import pytest

from app.domain.quickbooks.numbering import (
    DocumentNumberService,
    UnknownDocumentType,
    extract_next_number,
)
from app.models import PurchaseOrder
from app.models_invoice import Invoice


def trailing_value(number: str) -> int:
    return int(re.search(r"(\d+)$", number).group(1))


class TestExtractNextNumber:
    def test_empty_list_starts_at_one(self):
        assert extract_next_number([], "INV-") == "INV-0001"

    def test_pure_numeric_style_is_preserved(self):
        assert extract_next_number(["42"], "INV-") == "43"

    def test_pure_numeric_keeps_zero_padding(self):
        assert extract_next_number(["00099"], "INV-") == "00100"

    def test_max_wins_and_padding_preserved(self):
        assert extract_next_number(["PO-0099", "PO-0050"], "PO-") == "PO-0100"

    def test_colliding_inputs_do_not_collide_with_result(self):
        assert extract_next_number(["INV-0001", "INV-0001"], "INV-") == "INV-0002"

    def test_alternate_house_style_is_reused(self):
        assert extract_next_number(["Invoice00042"], "INV-") == "Invoice00043"

    def test_unrecognised_style_falls_back_to_prefix(self):
        assert extract_next_number(["INV 7"], "INV-") == "INV-0008"

    def test_zero_and_non_numeric_candidates_are_discarded(self):
        assert extract_next_number(["0", "draft", "INV-0000", ""], "INV-") == "INV-0001"

    def test_tie_keeps_first_seen_style(self):
        # Remote numbers come first, so the remote style wins a tie
        assert extract_next_number(["1005", "INV-1005"], "INV-") == "1006"
        assert extract_next_number(["INV-1005", "1005"], "INV-") == "INV-1006"

    def test_width_grows_past_padding(self):
        assert extract_next_number(["INV-9999"], "INV-") == "INV-10000"

    def test_exact_prefix_takes_precedence_over_alternate_prefix(self):
        # "EST-0012" also matches the letters-and-dashes pattern
        assert extract_next_number(["EST-0012"], "EST-") == "EST-0013"

    def test_surrounding_whitespace_is_ignored(self):
        assert extract_next_number(["  BILL-0007 "], "BILL-") == "BILL-0008"

    @pytest.mark.parametrize(
        "candidates",
        [
            ["INV-0003", "17", "Invoice00009"],
            ["PO-0100", "PO-0099", "PO-0101"],
            ["A-5", "B-50", "C-500", "nothing"],
            ["1", "2", "3"],
        ],
    )
    def test_result_exceeds_every_numeric_suffix(self, candidates):
        result = extract_next_number(candidates, "INV-")
        suffixes = [trailing_value(c) for c in candidates if re.search(r"\d+$", c)]
        assert trailing_value(result) > max(suffixes)
        assert result not in candidates


class TestDocumentNumberService:
    async def test_local_only_when_not_connected(self, db_session, customer):
        for number in ("INV-0001", "INV-0003", "INV-0002"):
            db_session.add(Invoice(number=number, customer_id=customer.id))
        db_session.commit()

        result = await DocumentNumberService(db_session).get_next_number("invoice")

        assert result["nextNumber"] == "INV-0004"
        assert result["source"] == "local"
        assert result["remoteCount"] == 0

    async def test_remote_numbers_are_combined_with_local(self, db_session, qb_client, fake_qb, vendor):
        fake_qb.query_results["PurchaseOrder"] = [{"DocNumber": "1050"}, {"DocNumber": "1049"}]
        db_session.add(PurchaseOrder(number="PO-0007", vendor_id=vendor.id))
        db_session.commit()

        result = await DocumentNumberService(db_session, qb_client).get_next_number("purchase_order")

        assert result["nextNumber"] == "1051"
        assert result["source"] == "combined"
        assert result["remoteCount"] == 2
        assert result["localCount"] == 1
        assert fake_qb.queries() == [
            "SELECT DocNumber FROM PurchaseOrder ORDERBY MetaData.CreateTime DESC MAXRESULTS 100"
        ]

    async def test_local_number_wins_when_higher(self, db_session, qb_client, fake_qb, customer):
        fake_qb.query_results["Invoice"] = [{"DocNumber": "INV-0010"}]
        db_session.add(Invoice(number="INV-0020", customer_id=customer.id))
        db_session.commit()

        result = await DocumentNumberService(db_session, qb_client).get_next_number("invoice")

        assert result["nextNumber"] == "INV-0021"

    async def test_unknown_type_is_rejected(self, db_session):
        with pytest.raises(UnknownDocumentType):
            await DocumentNumberService(db_session).get_next_number("timesheet")
