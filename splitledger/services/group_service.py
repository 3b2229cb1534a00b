import logging
from sqlalchemy.orm import Session
from sqlalchemy import and_
from typing import List, Optional
from splitledger.db.database import ledger_transaction
from splitledger.errors import AuthorizationError, NotFoundError, ValidationError
from splitledger.models.groups import Group, GroupMember, MemberRole
from splitledger.schemas.group_schema import GroupCreate, GroupPatch
from splitledger.services.membership import SqlMembershipOracle

logger = logging.getLogger(__name__)


def create_group(db: Session, group_data: GroupCreate, created_by: str) -> Group:
    """Create a new group with its creator as the first admin"""
    with ledger_transaction(db):
        group = Group(
            name=group_data.name,
            description=group_data.description,
            created_by=created_by,
        )
        group.members = [GroupMember(user_id=created_by, role=MemberRole.admin)]
        db.add(group)
    db.refresh(group)
    logger.info(f"Group {group.id} created by {created_by}")
    return group


def get_group(db: Session, group_id: str) -> Optional[Group]:
    """Get a group by ID"""
    return db.query(Group).filter(Group.id == group_id).first()


def get_user_groups(db: Session, user_id: str) -> List[Group]:
    """Get all groups for a user"""
    return db.query(Group).join(GroupMember).filter(GroupMember.user_id == user_id)\
        .order_by(Group.created_at.desc()).all()


def _require_group(db: Session, group_id: str, for_update: bool = False) -> Group:
    query = db.query(Group).filter(Group.id == group_id)
    if for_update:
        # Serializes membership changes within the group
        query = query.with_for_update()
    group = query.first()
    if not group:
        raise NotFoundError("Group not found")
    return group


def update_group(db: Session, group_id: str, patch: GroupPatch, user_id: str) -> Group:
    """Apply a partial update to a group (admin only)"""
    with ledger_transaction(db):
        group = _require_group(db, group_id)

        if not SqlMembershipOracle(db).is_admin(group_id, user_id):
            raise AuthorizationError("Only group admins can update group")

        changes = patch.changes()
        if not changes:
            raise ValidationError("No fields to update")

        db.query(Group).filter(Group.id == group_id).update(changes, synchronize_session="fetch")
    db.refresh(group)
    return group


def delete_group(db: Session, group_id: str, user_id: str):
    """Delete a group with its members, expenses, debts and settlements (admin only)"""
    with ledger_transaction(db):
        group = _require_group(db, group_id, for_update=True)

        if not SqlMembershipOracle(db).is_admin(group_id, user_id):
            raise AuthorizationError("Only group admins can delete group")

        db.delete(group)
    logger.info(f"Group {group_id} deleted by {user_id}")


def get_group_members(db: Session, group_id: str) -> List[GroupMember]:
    """Get all members of a group, admins first"""
    return db.query(GroupMember).filter(GroupMember.group_id == group_id)\
        .order_by(GroupMember.role, GroupMember.joined_at).all()


def add_member(db: Session, group_id: str, user_id: str, role: MemberRole, added_by: str) -> GroupMember:
    """Add a member to a group (admin only)"""
    with ledger_transaction(db):
        _require_group(db, group_id, for_update=True)

        oracle = SqlMembershipOracle(db)
        if not oracle.is_admin(group_id, added_by):
            raise AuthorizationError("Only group admins can add members")

        if oracle.is_member(group_id, user_id):
            raise ValidationError("User is already a member of this group")

        member = GroupMember(group_id=group_id, user_id=user_id, role=role)
        db.add(member)
    db.refresh(member)
    return member


def remove_member(db: Session, group_id: str, user_id: str, remover_id: str):
    """Remove a member from a group; a group always keeps at least one admin"""
    with ledger_transaction(db):
        # The admin count below is read under the group lock
        _require_group(db, group_id, for_update=True)

        member = db.query(GroupMember).filter(
            and_(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
        ).first()

        if not member:
            raise NotFoundError("Member not found")

        # Only admins can remove others, users can remove themselves
        if user_id != remover_id and not SqlMembershipOracle(db).is_admin(group_id, remover_id):
            raise AuthorizationError("Only group admins can remove other members")

        if member.role == MemberRole.admin:
            admin_count = db.query(GroupMember).filter(
                and_(GroupMember.group_id == group_id, GroupMember.role == MemberRole.admin)
            ).count()
            if admin_count <= 1:
                raise ValidationError("Cannot remove the last admin")

        db.delete(member)
