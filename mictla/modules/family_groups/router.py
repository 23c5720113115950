from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Path

from mictla.core.http import get_store
from mictla.modules.family_groups.schemas import (
    FamilyGroup,
    FamilyGroupCreateIn,
    FamilyGroupJoinIn,
    FamilyGroupsListOut,
    FamilyMemberIn,
    MemberRemovedOut,
)
from mictla.modules.store.service import EntityStore

router = APIRouter(tags=["family-groups"])


def _not_found(group_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"family group not found: {group_id}")


@router.get("/family-groups", response_model=FamilyGroupsListOut)
def api_list_family_groups(store: EntityStore = Depends(get_store)) -> FamilyGroupsListOut:
    items = store.get_family_groups()
    return FamilyGroupsListOut(items=items, total=len(items))


@router.post("/family-groups", response_model=FamilyGroup, status_code=201)
def api_create_family_group(body: FamilyGroupCreateIn, store: EntityStore = Depends(get_store)) -> FamilyGroup:
    return store.create_family_group(body.name, body.creator.to_wire())


@router.post("/family-groups/join", response_model=FamilyGroup)
def api_join_family_group(body: FamilyGroupJoinIn, store: EntityStore = Depends(get_store)) -> FamilyGroup:
    g = store.join_family_group(body.invite_code, body.member.to_wire())
    if g is None:
        raise HTTPException(status_code=404, detail=f"invite code not found: {body.invite_code}")
    return g


@router.get("/family-groups/by-invite/{invite_code}", response_model=FamilyGroup)
def api_family_group_by_invite(invite_code: str = Path(...), store: EntityStore = Depends(get_store)) -> FamilyGroup:
    g = store.get_family_group_by_invite_code(invite_code)
    if g is None:
        raise HTTPException(status_code=404, detail=f"invite code not found: {invite_code}")
    return g


@router.get("/family-groups/{group_id}", response_model=FamilyGroup)
def api_get_family_group(group_id: str = Path(...), store: EntityStore = Depends(get_store)) -> FamilyGroup:
    g = store.get_family_group(group_id)
    if g is None:
        raise _not_found(group_id)
    return g


@router.delete("/family-groups/{group_id}")
def api_delete_family_group(group_id: str = Path(...), store: EntityStore = Depends(get_store)) -> Dict[str, Any]:
    if not store.delete_family_group(group_id):
        raise _not_found(group_id)
    return {"deleted": True, "groupId": group_id}


@router.post("/family-groups/{group_id}/members", response_model=FamilyGroup)
def api_add_family_member(
    body: FamilyMemberIn,
    group_id: str = Path(...),
    store: EntityStore = Depends(get_store),
) -> FamilyGroup:
    g = store.add_family_member(group_id, body.to_wire())
    if g is None:
        raise _not_found(group_id)
    return g


@router.delete("/family-groups/{group_id}/members/{user_id}", response_model=MemberRemovedOut)
def api_remove_family_member(
    group_id: str = Path(...),
    user_id: str = Path(...),
    store: EntityStore = Depends(get_store),
) -> MemberRemovedOut:
    if store.get_family_group(group_id) is None:
        raise _not_found(group_id)
    g = store.remove_family_member(group_id, user_id)
    return MemberRemovedOut(group=g, group_deleted=g is None)
