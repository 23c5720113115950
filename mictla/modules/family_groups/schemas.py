from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field

from mictla.core.ids import new_id, new_invite_code
from mictla.core.wire import WireModel, utcnow

MemberRole = Literal["admin", "member"]
Permission = Literal["view", "edit", "comment"]


class FamilyMember(WireModel):
    user_id: str
    email: str
    role: MemberRole = "member"
    joined_at: datetime = Field(default_factory=utcnow)


class FamilySettings(WireModel):
    allow_new_members: bool = True
    # stored only; joins are not queued for approval
    require_approval: bool = False
    default_permissions: List[Permission] = Field(default_factory=lambda: ["view"])


class FamilyGroup(WireModel):
    group_id: str = Field(default_factory=lambda: new_id("family"))
    name: str
    members: List[FamilyMember] = Field(default_factory=list)
    shared_memorials: List[str] = Field(default_factory=list)
    invite_code: str = Field(default_factory=new_invite_code)
    settings: FamilySettings = Field(default_factory=FamilySettings)
    created_at: datetime = Field(default_factory=utcnow)

    def get_member(self, user_id: str) -> Optional[FamilyMember]:
        for m in self.members:
            if m.user_id == user_id:
                return m
        return None

    def add_member(self, member: FamilyMember) -> bool:
        """Append a member; False when the user already belongs to the group."""
        if self.get_member(member.user_id) is not None:
            return False
        self.members.append(member)
        return True

    def remove_member(self, user_id: str) -> bool:
        before = len(self.members)
        self.members = [m for m in self.members if m.user_id != user_id]
        return len(self.members) != before

    def is_admin(self, user_id: str) -> bool:
        m = self.get_member(user_id)
        return m is not None and m.role == "admin"


class FamilyMemberIn(WireModel):
    user_id: str = Field(min_length=1)
    email: str = Field(min_length=1)
    role: MemberRole = "member"


class FamilyGroupCreateIn(WireModel):
    name: str
    creator: FamilyMemberIn


class FamilyGroupJoinIn(WireModel):
    invite_code: str = Field(min_length=1)
    member: FamilyMemberIn


class FamilyGroupsListOut(WireModel):
    items: List[FamilyGroup]
    total: int


class MemberRemovedOut(WireModel):
    group: Optional[FamilyGroup] = None
    group_deleted: bool = False
