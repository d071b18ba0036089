# schemas.py — Commands consumed by the domain core and the read models it returns
import math
from datetime import date, datetime
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from models import (
    Board, Comment, Project, ProjectMember, ProjectRole, Task, TaskActivity,
    TaskPriority, TaskStatus,
)

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"

TASK_SORT_FIELDS = ("position", "created_at", "updated_at", "due_date", "priority", "title", "status")


# ============================================================
# COMMANDS
# ============================================================

class Command(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


# --- Project ---
class ProjectCreate(Command):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    color: str = Field("#007bff", pattern=HEX_COLOR)


class ProjectUpdate(Command):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    color: Optional[str] = Field(None, pattern=HEX_COLOR)
    is_active: Optional[bool] = None


class MemberInvite(Command):
    email: EmailStr
    role: ProjectRole = ProjectRole.MEMBER


# --- Board ---
class BoardCreate(Command):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    project: str = Field(..., min_length=1)


# --- Task ---
class Label(Command):
    name: str = Field(..., min_length=1, max_length=50)
    color: str = Field("#007bff", pattern=HEX_COLOR)


class TaskCreate(Command):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    assigned_to: Optional[str] = None
    board: str = Field(..., min_length=1)
    project: Optional[str] = None  # Must match the board's project when given
    labels: List[Label] = Field(default_factory=list)
    attachments: List[Dict[str, Any]] = Field(default_factory=list)


class TaskUpdate(Command):
    """Partial update; only fields present in the request are applied"""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    assigned_to: Optional[str] = None
    position: Optional[int] = Field(None, ge=0)
    labels: Optional[List[Label]] = None
    attachments: Optional[List[Dict[str, Any]]] = None


class TaskMove(Command):
    id: str
    status: TaskStatus
    position: int
    version: Optional[int] = None  # Rejects the move if the task changed since


class TaskReorder(Command):
    tasks: List[TaskMove] = Field(..., min_length=1)


class TaskQuery(BaseModel):
    status: Optional[TaskStatus] = None
    assigned_to: Optional[str] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None
    search: Optional[str] = None
    sort_by: str = "position"
    sort_order: str = "asc"
    page: int = Field(0, ge=0)
    limit: int = Field(50, ge=1, le=200)


# --- Comment ---
class CommentCreate(Command):
    content: str = Field(..., min_length=1, max_length=1000)
    task: str = Field(..., min_length=1)
    parent_comment: Optional[str] = None


class CommentUpdate(Command):
    content: str = Field(..., min_length=1, max_length=1000)


# ============================================================
# READ MODELS
# ============================================================

class ReadModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class UserRef(ReadModel):
    id: str
    email: str
    username: str


class MemberOut(ReadModel):
    user: UserRef
    role: str
    joined_at: Optional[str] = None


class ProjectOut(ReadModel):
    id: str
    name: str
    description: Optional[str] = None
    color: str
    owner: UserRef
    members: List[MemberOut] = []
    is_active: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ColumnOut(ReadModel):
    name: str
    order: int


class BoardOut(ReadModel):
    id: str
    name: str
    description: Optional[str] = None
    project_id: str
    created_by: str
    columns: List[ColumnOut] = []
    is_active: bool
    created_at: Optional[str] = None


class TaskOut(ReadModel):
    id: str
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    due_date: Optional[str] = None
    assigned_to: Optional[str] = None
    board_id: str
    project_id: str
    created_by: str
    position: int
    version: int
    labels: list = []
    attachments: list = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ActivityOut(ReadModel):
    id: str
    action: str
    performed_by: str
    timestamp: Optional[str] = None
    details: dict = {}


class CommentOut(ReadModel):
    id: str
    task_id: str
    author_id: str
    content: str
    parent_comment_id: Optional[str] = None
    is_edited: bool
    edited_at: Optional[str] = None
    created_at: Optional[str] = None


class CommentThreadOut(CommentOut):
    replies: List[CommentOut] = []


class Pagination(ReadModel):
    page: int
    limit: int
    total: int
    pages: int


class ReorderResult(ReadModel):
    board_id: str
    updated: List[str] = []


# ============================================================
# CONVERTERS
# ============================================================

def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


def _value(enum_or_str) -> str:
    return enum_or_str.value if hasattr(enum_or_str, "value") else str(enum_or_str)


def paginate(page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if limit else 0)


def user_ref(user) -> UserRef:
    return UserRef(id=user.id, email=user.email, username=user.username or "")


def member_out(member: ProjectMember) -> MemberOut:
    return MemberOut(user=user_ref(member.user), role=_value(member.role), joined_at=_ts(member.joined_at))


def project_out(project: Project) -> ProjectOut:
    return ProjectOut(
        id=project.id,
        name=project.name,
        description=project.description,
        color=project.color,
        owner=user_ref(project.owner),
        members=[member_out(m) for m in project.members],
        is_active=bool(project.is_active),
        created_at=_ts(project.created_at),
        updated_at=_ts(project.updated_at),
    )


def board_out(board: Board) -> BoardOut:
    return BoardOut(
        id=board.id,
        name=board.name,
        description=board.description,
        project_id=board.project_id,
        created_by=board.created_by,
        columns=[ColumnOut(**c) for c in sorted(board.columns or [], key=lambda c: c["order"])],
        is_active=bool(board.is_active),
        created_at=_ts(board.created_at),
    )


def task_out(task: Task) -> TaskOut:
    return TaskOut(
        id=task.id,
        title=task.title,
        description=task.description,
        status=_value(task.status),
        priority=_value(task.priority),
        due_date=_ts(task.due_date),
        assigned_to=task.assigned_to,
        board_id=task.board_id,
        project_id=task.project_id,
        created_by=task.created_by,
        position=task.position or 0,
        version=task.version or 0,
        labels=task.labels or [],
        attachments=task.attachments or [],
        created_at=_ts(task.created_at),
        updated_at=_ts(task.updated_at),
    )


def activity_out(entry: TaskActivity) -> ActivityOut:
    return ActivityOut(
        id=entry.id,
        action=entry.action,
        performed_by=entry.performed_by,
        timestamp=_ts(entry.timestamp),
        details=entry.details or {},
    )


def comment_out(comment: Comment) -> CommentOut:
    return CommentOut(
        id=comment.id,
        task_id=comment.task_id,
        author_id=comment.author_id,
        content=comment.content,
        parent_comment_id=comment.parent_comment_id,
        is_edited=bool(comment.is_edited),
        edited_at=_ts(comment.edited_at),
        created_at=_ts(comment.created_at),
    )


# ============================================================
# RESPONSE ENVELOPE
# ============================================================

def _dump(value):
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, list):
        return [_dump(v) for v in value]
    if isinstance(value, dict):
        return {k: _dump(v) for k, v in value.items()}
    return value


def envelope(data: Optional[Dict[str, Any]] = None, message: Optional[str] = None) -> Dict[str, Any]:
    """Wrap a successful result as {success, message?, data?}"""
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = _dump(data)
    return body
