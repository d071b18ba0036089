# routers/projects.py — Projects, memberships and the boards they hold
from fastapi import APIRouter, Depends, Query

from auth import get_current_user, CurrentUser
from hierarchy import HierarchyStore, get_hierarchy_store
from schemas import ProjectCreate, ProjectUpdate, MemberInvite, BoardCreate, envelope

router = APIRouter(prefix="/api", tags=["Projects"])


# ============================================================
# PROJECTS
# ============================================================

@router.post("/projects", status_code=201)
async def create_project(
    data: ProjectCreate,
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    project = await store.create_project(user, data)
    return envelope({"project": project}, "Project created successfully")


@router.get("/projects")
async def list_projects(
    page: int = Query(0, ge=0),
    limit: int = Query(10, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    """Projects the caller owns or is a member of, newest first"""
    projects, pagination = await store.list_projects(user, page, limit)
    return envelope({"projects": projects, "pagination": pagination})


@router.get("/projects/{project_id}")
async def get_project(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    return envelope({"project": await store.get_project(user, project_id)})


@router.put("/projects/{project_id}")
async def update_project(
    project_id: str,
    data: ProjectUpdate,
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    project = await store.update_project(user, project_id, data)
    return envelope({"project": project}, "Project updated successfully")


@router.delete("/projects/{project_id}")
async def delete_project(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    """Delete a project with all of its boards, tasks, comments and activity"""
    await store.delete_project(user, project_id)
    return envelope(message="Project deleted successfully")


# ============================================================
# MEMBERS
# ============================================================

@router.post("/projects/{project_id}/invite")
async def invite_member(
    project_id: str,
    data: MemberInvite,
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    project = await store.invite_member(user, project_id, data)
    return envelope({"project": project}, "Member invited successfully")


@router.delete("/projects/{project_id}/members/{member_id}")
async def remove_member(
    project_id: str,
    member_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    project = await store.remove_member(user, project_id, member_id)
    return envelope({"project": project}, "Member removed successfully")


# ============================================================
# BOARDS
# ============================================================

@router.post("/boards", status_code=201)
async def create_board(
    data: BoardCreate,
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    board = await store.create_board(user, data)
    return envelope({"board": board}, "Board created successfully")


@router.get("/projects/{project_id}/boards")
async def list_boards(
    project_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    return envelope({"boards": await store.list_boards(user, project_id)})
