from sqlalchemy.orm import Session
from sqlalchemy import and_
from typing import Optional
from splitledger.models.groups import GroupMember, MemberRole


class MembershipOracle:
    """Answers membership and role questions for the ledger"""

    def is_member(self, group_id: str, user_id: str) -> bool:
        raise NotImplementedError

    def is_admin(self, group_id: str, user_id: str) -> bool:
        raise NotImplementedError


class SqlMembershipOracle(MembershipOracle):
    """Membership oracle backed by the group_members table"""

    def __init__(self, db: Session):
        self.db = db

    def _membership(self, group_id: str, user_id: str) -> Optional[GroupMember]:
        return self.db.query(GroupMember).filter(
            and_(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
        ).first()

    def is_member(self, group_id: str, user_id: str) -> bool:
        return self._membership(group_id, user_id) is not None

    def is_admin(self, group_id: str, user_id: str) -> bool:
        member = self._membership(group_id, user_id)
        return member is not None and member.role == MemberRole.admin
