"""
Tests for settle_debt: authorization, history records and remaining balances.
"""
import pytest
from decimal import Decimal

from splitledger.errors import AuthorizationError, InvalidAmountError, NotFoundError
from splitledger.models.settlements import Settlement
from splitledger.services import debt_ledger
from splitledger.services.settlement_service import settle_debt, get_group_settlements
from splitledger.tests.conftest import debt_map


@pytest.fixture
def indebted(db, group):
    """B owes A 40."""
    debt_ledger.apply_split(db, group.id, "B", "A", Decimal("40"))
    db.commit()
    return group


@pytest.mark.integration
class TestSettleDebt:
    """Test settle_debt."""

    def test_partial_settlement_records_history(self, db, indebted):
        remaining = settle_debt(db, indebted.id, "B", "A", Decimal("15"), requester_id="B")
        assert remaining == Decimal("25")
        assert debt_map(db, indebted.id) == {("B", "A"): Decimal("25.00")}

        history = get_group_settlements(db, indebted.id)
        assert len(history) == 1
        assert (history[0].from_user_id, history[0].to_user_id) == ("B", "A")
        assert history[0].amount == Decimal("15")

    def test_full_settlement_returns_zero(self, db, indebted):
        remaining = settle_debt(db, indebted.id, "B", "A", Decimal("40"), requester_id="B")
        assert remaining == Decimal("0")
        assert debt_map(db, indebted.id) == {}

    def test_history_caps_overpayment_within_epsilon(self, db, indebted):
        settle_debt(db, indebted.id, "B", "A", Decimal("40.01"), requester_id="B")
        assert get_group_settlements(db, indebted.id)[0].amount == Decimal("40.00")

    def test_only_debtor_may_settle(self, db, indebted):
        with pytest.raises(AuthorizationError):
            settle_debt(db, indebted.id, "B", "A", Decimal("10"), requester_id="A")
        assert debt_map(db, indebted.id) == {("B", "A"): Decimal("40.00")}

    def test_non_member_not_authorized(self, db, indebted):
        with pytest.raises(AuthorizationError):
            settle_debt(db, indebted.id, "Z", "A", Decimal("10"), requester_id="Z")

    def test_unknown_debt_not_found(self, db, indebted):
        with pytest.raises(NotFoundError):
            settle_debt(db, indebted.id, "C", "A", Decimal("10"), requester_id="C")
        assert db.query(Settlement).count() == 0

    def test_excess_amount_rejected_without_history(self, db, indebted):
        with pytest.raises(InvalidAmountError):
            settle_debt(db, indebted.id, "B", "A", Decimal("41"), requester_id="B")
        assert db.query(Settlement).count() == 0
        assert debt_map(db, indebted.id) == {("B", "A"): Decimal("40.00")}

    def test_sub_cent_amount_rejected_without_history(self, db, indebted):
        """0.004 rounds to nothing, so it is not a repayment."""
        with pytest.raises(InvalidAmountError):
            settle_debt(db, indebted.id, "B", "A", Decimal("0.004"), requester_id="B")
        assert db.query(Settlement).count() == 0
        assert debt_map(db, indebted.id) == {("B", "A"): Decimal("40.00")}

    def test_history_records_rounded_amount(self, db, indebted):
        remaining = settle_debt(db, indebted.id, "B", "A", Decimal("10.004"), requester_id="B")
        assert remaining == Decimal("30.00")
        assert get_group_settlements(db, indebted.id)[0].amount == Decimal("10.00")
