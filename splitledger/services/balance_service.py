"""
Read-only views over the debts table: what a member owes and is owed, per
group and across groups, and suggested transfers to clear a group.

These queries run at the store's default isolation and take no locks. They
are fine for dashboards; settlement re-reads its debt under lock.
"""
from sqlalchemy.orm import Session
from sqlalchemy import and_, func
from decimal import Decimal
from typing import List
from splitledger.errors import NotFoundError
from splitledger.models.debts import Debt
from splitledger.models.groups import Group, GroupMember
from splitledger.schemas.debt_schema import NetPosition, AggregateNetPosition
from splitledger.schemas.settlement_schema import SuggestedSettlement
from splitledger.utils.min_cash_flow import balances_from_debts, min_cash_flow
from splitledger.utils.money import EPSILON, ZERO, round_decimal


def _require_group(db: Session, group_id: str) -> Group:
    group = db.query(Group).filter(Group.id == group_id).first()
    if not group:
        raise NotFoundError("Group not found")
    return group


def list_debts(db: Session, group_id: str) -> List[Debt]:
    """Get outstanding debts of a group, largest first"""
    _require_group(db, group_id)
    return db.query(Debt).filter(and_(Debt.group_id == group_id, Debt.amount > EPSILON))\
        .order_by(Debt.amount.desc(), Debt.debtor_id, Debt.creditor_id).all()


def _sum_debts(db: Session, *criteria) -> Decimal:
    total = db.query(func.coalesce(func.sum(Debt.amount), 0)).filter(and_(*criteria)).scalar()
    return round_decimal(total or ZERO)


def net_position(db: Session, group_id: str, user_id: str) -> NetPosition:
    """What user owes (owed) and is owed (owed_to) inside a group"""
    owed = _sum_debts(db, Debt.group_id == group_id, Debt.debtor_id == user_id)
    owed_to = _sum_debts(db, Debt.group_id == group_id, Debt.creditor_id == user_id)
    return NetPosition(
        group_id=group_id,
        user_id=user_id,
        owed=owed,
        owed_to=owed_to,
        net=owed_to - owed,
    )


def aggregate_net_position(db: Session, user_id: str) -> AggregateNetPosition:
    """Net position summed over every group the user belongs to"""
    group_ids = [
        row.group_id
        for row in db.query(GroupMember.group_id).filter(GroupMember.user_id == user_id)
        .order_by(GroupMember.joined_at, GroupMember.group_id).all()
    ]
    groups = [net_position(db, group_id, user_id) for group_id in group_ids]

    owed = sum((position.owed for position in groups), ZERO)
    owed_to = sum((position.owed_to for position in groups), ZERO)
    return AggregateNetPosition(
        user_id=user_id,
        owed=owed,
        owed_to=owed_to,
        net=owed_to - owed,
        groups=groups,
    )


def suggest_settlements(db: Session, group_id: str) -> List[SuggestedSettlement]:
    """
    Suggest the fewest transfers that would clear every debt in a group.

    Purely advisory: nothing is written, and each suggested transfer still
    has to be settled pair by pair.
    """
    balances = balances_from_debts(list_debts(db, group_id))
    return [
        SuggestedSettlement(from_user_id=s["from"], to_user_id=s["to"], amount=s["amount"])
        for s in min_cash_flow(balances)
    ]
