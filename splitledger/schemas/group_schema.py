from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from splitledger.models.groups import MemberRole


class GroupBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class GroupCreate(GroupBase):
    pass


class GroupPatch(BaseModel):
    """Updatable group fields; only the ones the client sent are written"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class GroupOut(GroupBase):
    model_config = ConfigDict(from_attributes=True)

    id: str
    created_by: str
    created_at: datetime


class GroupMemberCreate(BaseModel):
    user_id: str
    role: MemberRole = MemberRole.member


class GroupMemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    group_id: str
    user_id: str
    role: MemberRole
    joined_at: datetime


class GroupWithMembers(GroupOut):
    members: List[GroupMemberOut] = []
