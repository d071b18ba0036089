# routers/tasks.py — Task cards, bulk drag-and-drop reorder and activity
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from auth import get_current_user, CurrentUser
from hierarchy import HierarchyStore, get_hierarchy_store
from models import TaskPriority, TaskStatus
from schemas import TaskCreate, TaskUpdate, TaskReorder, TaskQuery, envelope

router = APIRouter(prefix="/api", tags=["Tasks"])

SORT_PATTERN = r"^(position|created_at|updated_at|due_date|priority|title|status)$"


@router.post("/tasks", status_code=201)
async def create_task(
    data: TaskCreate,
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    """Create a task at the end of its column"""
    task = await store.create_task(user, data)
    return envelope({"task": task}, "Task created successfully")


@router.get("/boards/{board_id}/tasks")
async def list_tasks(
    board_id: str,
    status: Optional[TaskStatus] = None,
    assigned_to: Optional[str] = None,
    priority: Optional[TaskPriority] = None,
    due_date: Optional[date] = None,
    search: Optional[str] = Query(None, max_length=200),
    sort_by: str = Query("position", pattern=SORT_PATTERN),
    sort_order: str = Query("asc", pattern=r"^(asc|desc)$"),
    page: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    query = TaskQuery(
        status=status,
        assigned_to=assigned_to,
        priority=priority,
        due_date=due_date,
        search=search or None,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    tasks, pagination, board = await store.list_tasks(user, board_id, query)
    return envelope({"board": board, "tasks": tasks, "pagination": pagination})


# Registered before /tasks/{task_id} so the literal path wins
@router.put("/tasks/update-positions")
async def update_positions(
    data: TaskReorder,
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    """Apply a batch of (task, status, index) moves to one board atomically"""
    result = await store.reorder_tasks(user, data)
    return envelope(result, "Task positions updated successfully")


@router.put("/tasks/{task_id}")
async def update_task(
    task_id: str,
    data: TaskUpdate,
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    task = await store.update_task(user, task_id, data)
    return envelope({"task": task}, "Task updated successfully")


@router.delete("/tasks/{task_id}")
async def delete_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    await store.delete_task(user, task_id)
    return envelope(message="Task deleted successfully")


@router.get("/tasks/{task_id}/activity")
async def get_task_activity(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    store: HierarchyStore = Depends(get_hierarchy_store),
):
    """Activity log of a task, newest first"""
    return envelope({"activity": await store.get_task_activity(user, task_id)})
