from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from splitledger.api.v1.deps import (
    get_current_user_id, get_event_publisher, get_group_or_404, require_member, with_contention_retry
)
from splitledger.db.database import get_db
from splitledger.events.publisher import EventPublisher, EXPENSE_CREATED, EXPENSE_DELETED
from splitledger.models.groups import Group
from splitledger.services.expense_service import post_expense, delete_expense, get_group_expenses
from splitledger.schemas.expense_schema import ExpenseCreate, ExpenseOut

router = APIRouter(prefix="/groups/{group_id}/expenses", tags=["expenses"])


@router.post("", response_model=ExpenseOut, status_code=201)
def create_new_expense(
    expense_data: ExpenseCreate,
    group: Group = Depends(get_group_or_404),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher)
):
    """Create an expense paid by the current user, split across group members"""
    expense = with_contention_retry(lambda: post_expense(db, group.id, user_id, expense_data))
    result = ExpenseOut.model_validate(expense)

    publisher.publish(EXPENSE_CREATED, {
        "group_id": group.id,
        "expense_id": result.id,
        "paid_by": result.paid_by,
        "amount": str(result.amount),
    })
    return result


@router.get("", response_model=List[ExpenseOut])
def get_group_expenses_list(
    group: Group = Depends(get_group_or_404),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get all expenses for a group with their splits"""
    require_member(db, group.id, user_id)
    return get_group_expenses(db, group.id)


@router.delete("/{expense_id}")
def delete_existing_expense(
    expense_id: str,
    group: Group = Depends(get_group_or_404),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher)
):
    """Delete an expense (payer or admin only)"""
    with_contention_retry(lambda: delete_expense(db, group.id, expense_id, user_id))

    publisher.publish(EXPENSE_DELETED, {
        "group_id": group.id,
        "expense_id": expense_id,
        "deleted_by": user_id,
    })
    return {"message": "Expense deleted successfully"}
