from pydantic import BaseModel, ConfigDict
from datetime import datetime
from decimal import Decimal


class SettleDebtRequest(BaseModel):
    creditor_id: str
    # Bounds are enforced by the debt ledger (InvalidAmountError)
    amount: Decimal


class SettleDebtResult(BaseModel):
    debtor_id: str
    creditor_id: str
    remaining: Decimal


class SettlementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    group_id: str
    from_user_id: str
    to_user_id: str
    amount: Decimal
    settled_at: datetime


class SuggestedSettlement(BaseModel):
    from_user_id: str
    to_user_id: str
    amount: Decimal
