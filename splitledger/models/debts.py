import uuid
from sqlalchemy.sql import func
from sqlalchemy import Column, String, DateTime, DECIMAL, ForeignKey, UniqueConstraint, CheckConstraint, Index
from splitledger.db.database import Base


class Debt(Base):
    """Net amount debtor owes creditor within a group; only the debt ledger writes these rows"""
    __tablename__ = "debts"
    __table_args__ = (
        UniqueConstraint("group_id", "debtor_id", "creditor_id", name="uq_debts_group_debtor_creditor"),
        CheckConstraint("amount > 0", name="ck_debts_amount_positive"),
        Index("ix_debts_group_creditor", "group_id", "creditor_id"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), unique=True, nullable=False)
    group_id = Column(String, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    debtor_id = Column(String, nullable=False, index=True)  # Reference to user service
    creditor_id = Column(String, nullable=False, index=True)  # Reference to user service
    amount = Column(DECIMAL(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
