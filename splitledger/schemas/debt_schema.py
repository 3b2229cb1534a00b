from pydantic import BaseModel, ConfigDict
from typing import List
from decimal import Decimal


class DebtOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    debtor_id: str
    creditor_id: str
    amount: Decimal


class NetPosition(BaseModel):
    """What a user owes and is owed inside one group"""
    group_id: str
    user_id: str
    owed: Decimal
    owed_to: Decimal
    net: Decimal


class AggregateNetPosition(BaseModel):
    user_id: str
    owed: Decimal
    owed_to: Decimal
    net: Decimal
    groups: List[NetPosition] = []
