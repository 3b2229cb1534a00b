"""
Unit tests for the debt ledger netting rules.

Tests cover:
- New, accumulated, reduced, cancelled and flipped debts
- Reversal of applied splits
- Settlement boundaries around the 0.01 tolerance
- Pair lock keys
"""
import pytest
from decimal import Decimal

from splitledger.errors import InvalidAmountError, NotFoundError
from splitledger.services import debt_ledger
from splitledger.tests.conftest import assert_debt_invariants, debt_map


def apply(db, group, debtor, creditor, amount):
    result = debt_ledger.apply_split(db, group.id, debtor, creditor, Decimal(amount))
    db.commit()
    return result


@pytest.mark.unit
class TestApplySplit:
    """Test apply_split netting."""

    def test_creates_forward_debt(self, db, group):
        apply(db, group, "B", "A", "30")
        assert debt_map(db, group.id) == {("B", "A"): Decimal("30.00")}

    def test_accumulates_existing_forward_debt(self, db, group):
        apply(db, group, "B", "A", "30")
        apply(db, group, "B", "A", "12.50")
        assert debt_map(db, group.id) == {("B", "A"): Decimal("42.50")}

    def test_reduces_larger_reverse_debt(self, db, group):
        apply(db, group, "B", "A", "30")
        apply(db, group, "A", "B", "20")
        assert debt_map(db, group.id) == {("B", "A"): Decimal("10.00")}

    def test_equal_opposite_debts_cancel(self, db, group):
        """A owes B 30, then B owes A 30: nothing is left between them."""
        apply(db, group, "A", "B", "30")
        result = apply(db, group, "B", "A", "30")
        assert result is None
        assert debt_map(db, group.id) == {}

    def test_flips_smaller_reverse_debt(self, db, group):
        apply(db, group, "B", "A", "10")
        result = apply(db, group, "A", "B", "25")
        assert result.debtor_id == "A"
        assert debt_map(db, group.id) == {("A", "B"): Decimal("15.00")}

    def test_self_debt_is_noop(self, db, group):
        assert apply(db, group, "A", "A", "50") is None
        assert debt_map(db, group.id) == {}

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_non_positive_delta_rejected(self, db, group, amount):
        with pytest.raises(InvalidAmountError):
            debt_ledger.apply_split(db, group.id, "B", "A", Decimal(amount))

    def test_residue_within_epsilon_is_not_persisted(self, db, group):
        apply(db, group, "B", "A", "30.00")
        apply(db, group, "A", "B", "29.99")
        assert debt_map(db, group.id) == {}

    def test_pairs_are_scoped_to_group(self, db, group):
        from splitledger.tests.conftest import make_group
        other = make_group(db, "A", ["B"], name="Flat")
        apply(db, group, "B", "A", "30")
        apply(db, other, "A", "B", "30")
        assert debt_map(db, group.id) == {("B", "A"): Decimal("30.00")}
        assert debt_map(db, other.id) == {("A", "B"): Decimal("30.00")}

    def test_invariants_hold_after_mixed_deltas(self, db, group):
        deltas = [
            ("B", "A", "30"), ("C", "A", "30"), ("A", "B", "20"), ("C", "B", "20"),
            ("A", "C", "45"), ("B", "C", "5.55"), ("A", "B", "10"), ("C", "A", "0.02"),
        ]
        for debtor, creditor, amount in deltas:
            apply(db, group, debtor, creditor, amount)
            assert_debt_invariants(db, group.id)


@pytest.mark.unit
class TestReverseSplit:
    """Test reverse_split undoes apply_split."""

    def test_reverse_removes_debt(self, db, group):
        apply(db, group, "B", "A", "30")
        debt_ledger.reverse_split(db, group.id, "B", "A", Decimal("30"))
        db.commit()
        assert debt_map(db, group.id) == {}

    def test_reverse_after_intervening_flip(self, db, group):
        """B owed A 30, then A came to owe B 10; removing B's 30 leaves A owing B 40."""
        apply(db, group, "B", "A", "30")
        apply(db, group, "A", "B", "40")
        debt_ledger.reverse_split(db, group.id, "B", "A", Decimal("30"))
        db.commit()
        assert debt_map(db, group.id) == {("A", "B"): Decimal("40.00")}


@pytest.mark.unit
class TestSettle:
    """Test settlement boundaries."""

    @pytest.fixture
    def forty(self, db, group):
        apply(db, group, "A", "B", "40")
        return group

    def test_full_settlement_deletes_row(self, db, forty):
        remaining = debt_ledger.settle(db, forty.id, "A", "B", Decimal("40"))
        db.commit()
        assert remaining == Decimal("0")
        assert debt_map(db, forty.id) == {}

    def test_overpayment_within_epsilon_fully_settles(self, db, forty):
        remaining = debt_ledger.settle(db, forty.id, "A", "B", Decimal("40.005"))
        db.commit()
        assert remaining == Decimal("0")
        assert debt_map(db, forty.id) == {}

    def test_overpayment_beyond_epsilon_rejected(self, db, forty):
        with pytest.raises(InvalidAmountError):
            debt_ledger.settle(db, forty.id, "A", "B", Decimal("41"))
        db.rollback()
        assert debt_map(db, forty.id) == {("A", "B"): Decimal("40.00")}

    def test_partial_settlement(self, db, forty):
        remaining = debt_ledger.settle(db, forty.id, "A", "B", Decimal("15.25"))
        db.commit()
        assert remaining == Decimal("24.75")
        assert debt_map(db, forty.id) == {("A", "B"): Decimal("24.75")}

    def test_settling_to_within_epsilon_deletes_row(self, db, forty):
        remaining = debt_ledger.settle(db, forty.id, "A", "B", Decimal("39.99"))
        db.commit()
        assert remaining == Decimal("0")
        assert debt_map(db, forty.id) == {}

    def test_wrong_direction_not_found(self, db, forty):
        with pytest.raises(NotFoundError):
            debt_ledger.settle(db, forty.id, "B", "A", Decimal("10"))

    @pytest.mark.parametrize("amount", ["0", "-1", "0.004"])
    def test_non_positive_amount_rejected(self, db, forty, amount):
        with pytest.raises(InvalidAmountError):
            debt_ledger.settle(db, forty.id, "A", "B", Decimal(amount))
        db.rollback()
        assert debt_map(db, forty.id) == {("A", "B"): Decimal("40.00")}

    def test_sub_cent_part_is_rounded_off(self, db, forty):
        remaining = debt_ledger.settle(db, forty.id, "A", "B", Decimal("10.004"))
        db.commit()
        assert remaining == Decimal("30.00")

    def test_amount_beyond_column_limit_rejected(self, db, forty):
        with pytest.raises(InvalidAmountError):
            debt_ledger.settle(db, forty.id, "A", "B", Decimal("1e30"))



@pytest.mark.unit
class TestPairLockKey:
    """Test advisory lock keys."""

    def test_key_ignores_direction(self):
        assert debt_ledger._pair_lock_key("g", "A", "B") == debt_ledger._pair_lock_key("g", "B", "A")

    def test_key_depends_on_group_and_pair(self):
        key = debt_ledger._pair_lock_key("g", "A", "B")
        assert key != debt_ledger._pair_lock_key("h", "A", "B")
        assert key != debt_ledger._pair_lock_key("g", "A", "C")

    def test_key_fits_bigint(self):
        key = debt_ledger._pair_lock_key("group", "alice", "bob")
        assert -(2 ** 63) <= key < 2 ** 63
