from sqlalchemy.orm import Session
from sqlalchemy import and_
from decimal import Decimal
from typing import List, Optional, Tuple
from datetime import datetime, timezone
from splitledger.db.database import ledger_transaction
from splitledger.errors import AuthorizationError, NotFoundError, ValidationError
from splitledger.models.expenses import Expense, ExpenseSplit
from splitledger.schemas.expense_schema import ExpenseCreate
from splitledger.services import debt_ledger
from splitledger.services.membership import MembershipOracle, SqlMembershipOracle
from splitledger.utils.money import EPSILON, MAX_AMOUNT, ZERO, round_decimal, to_decimal


def _stored_amount(value, label: str) -> Decimal:
    value = to_decimal(value)
    if abs(value) > MAX_AMOUNT:
        raise ValidationError(f"{label} exceeds the maximum of {MAX_AMOUNT}")
    return round_decimal(value)


def _validate_expense(
    group_id: str, expense_data: ExpenseCreate, membership: MembershipOracle
) -> Tuple[Decimal, List[Tuple[str, Decimal]]]:
    """
    Reject inconsistent expenses before anything is written.

    Every check runs on the amounts as they will be stored, rounded to cents.
    Returns the rounded amount and (user_id, share) pairs.
    """
    amount = _stored_amount(expense_data.amount, "Amount")
    if amount <= ZERO:
        raise ValidationError("Amount must be greater than 0")

    if not expense_data.splits:
        raise ValidationError("At least one split required")

    shares = []
    seen = set()
    for split in expense_data.splits:
        share = _stored_amount(split.amount, f"Split amount for user {split.user_id}")
        if share < ZERO:
            raise ValidationError(f"Split amount for user {split.user_id} cannot be negative")
        if split.user_id in seen:
            raise ValidationError(f"User {split.user_id} appears more than once in splits")
        seen.add(split.user_id)
        shares.append((split.user_id, share))

    total_split = sum((share for _, share in shares), ZERO)
    if abs(total_split - amount) > EPSILON:
        raise ValidationError("Splits must sum to total amount")

    for user_id, _ in shares:
        if not membership.is_member(group_id, user_id):
            raise ValidationError(f"User {user_id} is not a member of this group")

    return amount, shares



def post_expense(
    db: Session,
    group_id: str,
    paid_by: str,
    expense_data: ExpenseCreate,
    membership: Optional[MembershipOracle] = None,
) -> Expense:
    """
    Create an expense with its splits and charge every non-payer share to the
    debt ledger, all in one transaction.
    """
    membership = membership or SqlMembershipOracle(db)

    with ledger_transaction(db):
        if not membership.is_member(group_id, paid_by):
            raise AuthorizationError("Only group members can create expenses")

        amount, shares = _validate_expense(group_id, expense_data, membership)

        expense = Expense(
            group_id=group_id,
            paid_by=paid_by,
            amount=amount,
            description=expense_data.description,
            category_id=expense_data.category_id,
            expense_date=expense_data.expense_date or datetime.now(timezone.utc),
        )
        expense.splits = [
            ExpenseSplit(user_id=user_id, amount=share) for user_id, share in shares
        ]
        db.add(expense)
        db.flush()

        # Same lock order for every posting
        for split in sorted(expense.splits, key=lambda s: s.user_id):
            if split.user_id == paid_by or to_decimal(split.amount) <= ZERO:
                continue
            debt_ledger.apply_split(db, group_id, split.user_id, paid_by, split.amount)

    return expense


def get_expense(db: Session, group_id: str, expense_id: str, for_update: bool = False) -> Optional[Expense]:
    """Get an expense by ID within a group"""
    query = db.query(Expense).filter(and_(Expense.id == expense_id, Expense.group_id == group_id))
    if for_update:
        query = query.with_for_update()
    return query.first()


def get_group_expenses(db: Session, group_id: str) -> List[Expense]:
    """Get all expenses for a group, newest first"""
    return db.query(Expense).filter(Expense.group_id == group_id)\
        .order_by(Expense.expense_date.desc(), Expense.created_at.desc()).all()


def delete_expense(
    db: Session,
    group_id: str,
    expense_id: str,
    requester_id: str,
    membership: Optional[MembershipOracle] = None,
) -> None:
    """Delete an expense (payer or admin only) and reverse the debts it created"""
    membership = membership or SqlMembershipOracle(db)

    with ledger_transaction(db):
        # Locked so two concurrent deletions cannot both reverse the splits
        expense = get_expense(db, group_id, expense_id, for_update=True)
        if not expense:
            raise NotFoundError("Expense not found")

        if expense.paid_by != requester_id and not membership.is_admin(group_id, requester_id):
            raise AuthorizationError("Only expense creator or group admin can delete expense")

        paid_by = expense.paid_by
        for split in sorted(expense.splits, key=lambda s: s.user_id):
            if split.user_id == paid_by or to_decimal(split.amount) <= ZERO:
                continue
            debt_ledger.reverse_split(db, group_id, split.user_id, paid_by, split.amount)

        db.delete(expense)
