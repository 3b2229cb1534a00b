from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from decimal import Decimal


class ExpenseSplitCreate(BaseModel):
    user_id: str
    amount: Decimal


class ExpenseCreate(BaseModel):
    # Amount and split consistency are checked by the expense ledger, which
    # rejects them with a ValidationError before touching the store
    amount: Decimal
    description: str = Field(..., min_length=1, max_length=500)
    category_id: Optional[str] = None
    expense_date: Optional[datetime] = None
    splits: List[ExpenseSplitCreate] = []


class ExpenseSplitOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    amount: Decimal
    settled: bool


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    group_id: str
    paid_by: str
    amount: Decimal
    description: str
    category_id: Optional[str] = None
    expense_date: datetime
    created_at: datetime
    splits: List[ExpenseSplitOut] = []
