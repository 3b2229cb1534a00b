from sqlalchemy.orm import Session
from decimal import Decimal
from typing import List, Optional
from splitledger.db.database import ledger_transaction
from splitledger.errors import AuthorizationError
from splitledger.models.settlements import Settlement
from splitledger.services import debt_ledger
from splitledger.services.membership import MembershipOracle, SqlMembershipOracle
from splitledger.utils.money import round_decimal, to_decimal


def settle_debt(
    db: Session,
    group_id: str,
    debtor_id: str,
    creditor_id: str,
    amount: Decimal,
    requester_id: str,
    membership: Optional[MembershipOracle] = None,
) -> Decimal:
    """
    Repay what the requester owes one creditor and record it in the settlement
    history. Returns the remaining balance.
    """
    membership = membership or SqlMembershipOracle(db)

    # Users can only settle their own debts
    if requester_id != debtor_id:
        raise AuthorizationError("You can only settle your own debts")

    with ledger_transaction(db):
        if not membership.is_member(group_id, debtor_id):
            raise AuthorizationError("Not a member of this group")

        debt_ledger.lock_pair(db, group_id, debtor_id, creditor_id)
        outstanding = debt_ledger.get_debt(db, group_id, debtor_id, creditor_id)
        previous = to_decimal(outstanding.amount) if outstanding is not None else None

        remaining = debt_ledger.settle(db, group_id, debtor_id, creditor_id, amount)

        # Never record more than was actually owed
        applied = min(round_decimal(amount), previous)
        db.add(Settlement(
            group_id=group_id,
            from_user_id=debtor_id,
            to_user_id=creditor_id,
            amount=round_decimal(applied),
        ))

    return remaining


def get_group_settlements(db: Session, group_id: str) -> List[Settlement]:
    """Get all settlements for a group, newest first"""
    return db.query(Settlement).filter(Settlement.group_id == group_id)\
        .order_by(Settlement.settled_at.desc()).all()
