# routers/comments.py — Task comments with one level of replies
from fastapi import APIRouter, Depends, Query

from auth import get_current_user, CurrentUser
from hierarchy import HierarchyStore, get_hierarchy_store
from schemas import CommentCreate, CommentUpdate, envelope

router = APIRouter(prefix="/api", tags=["Comments"])


@router.post("/comments", status_code=201)
async def create_comment(
    data: CommentCreate,
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    comment = await store.create_comment(user, data)
    return envelope({"comment": comment}, "Comment created successfully")


@router.get("/tasks/{task_id}/comments")
async def list_comments(
    task_id: str,
    page: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    """Top-level comments newest first, each with its replies"""
    comments, pagination = await store.list_comments(user, task_id, page, limit)
    return envelope({"comments": comments, "pagination": pagination})


@router.put("/comments/{comment_id}")
async def update_comment(
    comment_id: str,
    data: CommentUpdate,
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    comment = await store.update_comment(user, comment_id, data)
    return envelope({"comment": comment}, "Comment updated successfully")


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    removed = await store.delete_comment(user, comment_id)
    return envelope({"deleted": removed}, "Comment deleted successfully")
