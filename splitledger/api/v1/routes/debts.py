from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from splitledger.api.v1.deps import (
    get_current_user_id, get_event_publisher, get_group_or_404, require_member, with_contention_retry
)
from splitledger.db.database import get_db
from splitledger.events.publisher import EventPublisher, DEBT_SETTLED
from splitledger.models.groups import Group
from splitledger.services.balance_service import (
    list_debts, net_position, aggregate_net_position, suggest_settlements
)
from splitledger.services.settlement_service import settle_debt, get_group_settlements
from splitledger.schemas.debt_schema import DebtOut, NetPosition, AggregateNetPosition
from splitledger.schemas.settlement_schema import (
    SettleDebtRequest, SettleDebtResult, SettlementOut, SuggestedSettlement
)

router = APIRouter(tags=["debts"])


@router.get("/groups/{group_id}/debts", response_model=List[DebtOut])
def get_group_debts(
    group: Group = Depends(get_group_or_404),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get outstanding debts for a group"""
    require_member(db, group.id, user_id)
    return list_debts(db, group.id)


@router.get("/groups/{group_id}/debts/position", response_model=NetPosition)
def get_my_position(
    group: Group = Depends(get_group_or_404),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """What the current user owes and is owed in a group"""
    require_member(db, group.id, user_id)
    return net_position(db, group.id, user_id)


@router.get("/groups/{group_id}/debts/suggestions", response_model=List[SuggestedSettlement])
def get_suggested_settlements(
    group: Group = Depends(get_group_or_404),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get the fewest transfers that would clear the group"""
    require_member(db, group.id, user_id)
    return suggest_settlements(db, group.id)


@router.post("/groups/{group_id}/debts/settle", response_model=SettleDebtResult)
def settle_my_debt(
    settle_data: SettleDebtRequest,
    group: Group = Depends(get_group_or_404),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher)
):
    """Repay part or all of what the current user owes a creditor"""
    remaining = with_contention_retry(lambda: settle_debt(
        db, group.id, user_id, settle_data.creditor_id, settle_data.amount, user_id
    ))

    publisher.publish(DEBT_SETTLED, {
        "group_id": group.id,
        "debtor_id": user_id,
        "creditor_id": settle_data.creditor_id,
        "amount": str(settle_data.amount),
        "remaining": str(remaining),
    })
    return SettleDebtResult(debtor_id=user_id, creditor_id=settle_data.creditor_id, remaining=remaining)


@router.get("/groups/{group_id}/settlements", response_model=List[SettlementOut])
def get_group_settlements_list(
    group: Group = Depends(get_group_or_404),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get settlement history for a group"""
    require_member(db, group.id, user_id)
    return get_group_settlements(db, group.id)


@router.get("/debts/summary", response_model=AggregateNetPosition)
def get_my_debt_summary(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get the current user's debt summary across all groups"""
    return aggregate_net_position(db, user_id)
