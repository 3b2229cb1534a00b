"""
Debt Ledger

Owns every write to the debts table. For each ordered pair (debtor, creditor)
in a group there is at most one row, its amount is always above EPSILON, and
at most one direction of a pair exists at any time: opposing obligations are
netted into a single directional row as they arrive.

The functions here run inside the caller's transaction (see
db.database.ledger_transaction) and only flush. Before reading a pair they
lock it, so two transactions touching the same pair serialize while disjoint
pairs can proceed in parallel.
"""
import hashlib
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, text
from sqlalchemy.orm import Session

from splitledger.errors import InvalidAmountError, NotFoundError
from splitledger.models.debts import Debt
from splitledger.utils.money import EPSILON, MAX_AMOUNT, ZERO, round_decimal, to_decimal


def _pair_lock_key(group_id: str, user_a: str, user_b: str) -> int:
    """Stable signed 64-bit key for the unordered pair {user_a, user_b} in a group"""
    low, high = sorted((user_a, user_b))
    digest = hashlib.blake2b(f"{group_id}:{low}:{high}".encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


def lock_pair(db: Session, group_id: str, user_a: str, user_b: str) -> None:
    """
    Take an exclusive, transaction-scoped lock on a debtor/creditor pair.

    On PostgreSQL this is an advisory lock, which also covers the case where
    neither directional row exists yet. SQLite transactions already hold the
    database write lock (BEGIN IMMEDIATE), so nothing more is needed there.
    """
    if db.get_bind().dialect.name == "postgresql":
        db.execute(
            text("SELECT pg_advisory_xact_lock(:key)"),
            {"key": _pair_lock_key(group_id, user_a, user_b)},
        )


def get_debt(db: Session, group_id: str, debtor_id: str, creditor_id: str, for_update: bool = True) -> Optional[Debt]:
    """Get the debtor->creditor row, row-locked by default"""
    query = db.query(Debt).filter(
        and_(
            Debt.group_id == group_id,
            Debt.debtor_id == debtor_id,
            Debt.creditor_id == creditor_id,
        )
    )
    if for_update:
        query = query.with_for_update()
    return query.first()


def _set_amount_or_delete(db: Session, debt: Debt, amount: Decimal) -> Optional[Debt]:
    if amount <= EPSILON:
        db.delete(debt)
        return None
    debt.amount = round_decimal(amount)
    return debt


def apply_split(db: Session, group_id: str, debtor_id: str, creditor_id: str, amount) -> Optional[Debt]:
    """
    Record that debtor now additionally owes creditor `amount`.

    Returns the directional row left for the pair afterwards (which may point
    the other way if the reverse debt was larger), or None when the pair nets
    to nothing.
    """
    if debtor_id == creditor_id:
        return None

    amount = round_decimal(amount)
    if amount <= ZERO:
        raise InvalidAmountError(f"Debt delta must be positive, got {amount}")

    lock_pair(db, group_id, debtor_id, creditor_id)

    forward = get_debt(db, group_id, debtor_id, creditor_id)
    if forward is not None:
        forward.amount = round_decimal(to_decimal(forward.amount) + amount)
        db.flush()
        return forward

    reverse = get_debt(db, group_id, creditor_id, debtor_id)
    if reverse is None:
        result = None
        if amount > EPSILON:
            result = Debt(group_id=group_id, debtor_id=debtor_id, creditor_id=creditor_id, amount=amount)
            db.add(result)
        db.flush()
        return result

    reverse_amount = to_decimal(reverse.amount)
    if reverse_amount > amount:
        # Still owed the other way, just less
        result = _set_amount_or_delete(db, reverse, reverse_amount - amount)
        db.flush()
        return result

    db.delete(reverse)
    db.flush()
    remainder = amount - reverse_amount
    result = None
    if remainder > EPSILON:
        result = Debt(group_id=group_id, debtor_id=debtor_id, creditor_id=creditor_id, amount=round_decimal(remainder))
        db.add(result)
        db.flush()
    return result


def reverse_split(db: Session, group_id: str, debtor_id: str, creditor_id: str, amount) -> Optional[Debt]:
    """
    Undo the effect of apply_split(debtor, creditor, amount).

    Reducing what debtor owes is the same as charging creditor the same
    amount in the opposite direction; the netting in apply_split resolves it,
    including when intervening operations have flipped the pair.
    """
    return apply_split(db, group_id, creditor_id, debtor_id, amount)


def settle(db: Session, group_id: str, debtor_id: str, creditor_id: str, amount) -> Decimal:
    """
    Repay part or all of what debtor owes creditor.

    An amount up to EPSILON above the outstanding debt is accepted as a full
    repayment. Returns the remaining balance, Decimal('0.00') once the debt is
    cleared and its row deleted.
    """
    amount = to_decimal(amount)
    if amount > MAX_AMOUNT:
        raise InvalidAmountError(f"Settlement amount {amount} exceeds outstanding debt")
    # Sub-cent amounts would change nothing once stored
    amount = round_decimal(amount)
    if amount <= ZERO:
        raise InvalidAmountError("Settlement amount must be positive")

    lock_pair(db, group_id, debtor_id, creditor_id)

    debt = get_debt(db, group_id, debtor_id, creditor_id)
    if debt is None:
        raise NotFoundError("Debt not found")

    current = to_decimal(debt.amount)
    if amount - current > EPSILON:
        raise InvalidAmountError(f"Settlement amount {amount} exceeds outstanding debt {current}")

    remaining = _set_amount_or_delete(db, debt, current - amount)
    db.flush()
    if remaining is None:
        return ZERO
    return to_decimal(remaining.amount)
