from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from splitledger.api.v1.deps import get_current_user_id, get_group_or_404, require_member, with_contention_retry
from splitledger.db.database import get_db
from splitledger.models.groups import Group
from splitledger.services.group_service import (
    create_group, get_user_groups, update_group, delete_group,
    add_member, remove_member, get_group_members
)
from splitledger.schemas.group_schema import (
    GroupCreate, GroupPatch, GroupOut, GroupMemberCreate, GroupMemberOut, GroupWithMembers
)

router = APIRouter(prefix="/groups", tags=["groups"])


@router.post("/", response_model=GroupOut, status_code=201)
def create_new_group(
    group_data: GroupCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Create a new group"""
    return with_contention_retry(lambda: create_group(db, group_data, user_id))


@router.get("/", response_model=List[GroupOut])
def get_my_groups(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get all groups for current user"""
    return get_user_groups(db, user_id)


@router.get("/{group_id}", response_model=GroupWithMembers)
def get_group_details(
    group: Group = Depends(get_group_or_404),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get group details with members"""
    require_member(db, group.id, user_id)

    return GroupWithMembers(
        id=group.id,
        name=group.name,
        description=group.description,
        created_by=group.created_by,
        created_at=group.created_at,
        members=[GroupMemberOut.model_validate(member) for member in get_group_members(db, group.id)]
    )


@router.patch("/{group_id}", response_model=GroupOut)
def update_existing_group(
    group_id: str,
    patch: GroupPatch,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Update a group (admin only)"""
    return with_contention_retry(lambda: update_group(db, group_id, patch, user_id))


@router.delete("/{group_id}")
def delete_existing_group(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Delete a group (admin only)"""
    with_contention_retry(lambda: delete_group(db, group_id, user_id))
    return {"message": "Group deleted successfully"}


@router.post("/{group_id}/members", response_model=GroupMemberOut, status_code=201)
def add_group_member(
    group_id: str,
    member_data: GroupMemberCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Add a member to group (admin only)"""
    return with_contention_retry(
        lambda: add_member(db, group_id, member_data.user_id, member_data.role, user_id)
    )


@router.delete("/{group_id}/members/{member_user_id}")
def remove_group_member(
    group_id: str,
    member_user_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Remove a member from group"""
    with_contention_retry(lambda: remove_member(db, group_id, member_user_id, user_id))
    return {"message": "Member removed successfully"}
