"""
Pytest configuration and fixtures for split ledger tests.
"""
import pytest
from decimal import Decimal
from typing import Dict, List, Optional
from sqlalchemy.orm import sessionmaker

from splitledger.db.database import Base, build_engine
from splitledger.events.publisher import EventPublisher
from splitledger.models.debts import Debt
from splitledger.models.groups import Group, GroupMember, MemberRole
# Map every model before the schema is created
from splitledger.models import expenses, settlements  # noqa: F401


@pytest.fixture
def engine(tmp_path):
    """A fresh SQLite file database per test, configured like production."""
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}", lock_timeout_ms=5000)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def make_group(db, admin: str = "A", members: Optional[List[str]] = None, name: str = "Trip") -> Group:
    """Create a committed group with `admin` as admin and the rest as plain members."""
    group = Group(name=name, created_by=admin)
    group.members = [GroupMember(user_id=admin, role=MemberRole.admin)]
    group.members += [GroupMember(user_id=user_id, role=MemberRole.member) for user_id in (members or [])]
    db.add(group)
    db.commit()
    return group


@pytest.fixture
def group(db):
    """Group {A (admin), B, C}."""
    return make_group(db, "A", ["B", "C"])


def debt_map(db, group_id: str) -> Dict[tuple, Decimal]:
    """{(debtor, creditor): amount} for a group."""
    db.expire_all()
    return {
        (debt.debtor_id, debt.creditor_id): Decimal(str(debt.amount))
        for debt in db.query(Debt).filter(Debt.group_id == group_id).all()
    }


def assert_debt_invariants(db, group_id: str) -> None:
    """
    At most one direction per pair, every row above epsilon, no self-debt.
    """
    debts = debt_map(db, group_id)
    for (debtor, creditor), amount in debts.items():
        assert debtor != creditor, f"self debt for {debtor}"
        assert amount > Decimal("0.01"), f"{debtor}->{creditor} has non-positive amount {amount}"
        assert (creditor, debtor) not in debts, f"both directions exist for {debtor}/{creditor}"


class RecordingPublisher(EventPublisher):
    """Event publisher that keeps everything it was asked to publish."""

    def __init__(self):
        self.events = []

    def publish(self, routing_key, payload):
        self.events.append((routing_key, payload))
        return True


@pytest.fixture
def publisher():
    return RecordingPublisher()
