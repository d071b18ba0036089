# models.py — Database models for Taskboard
# Hierarchy: Project → Board → Task → Comment, plus:
# - Project memberships (owner is never stored as a member)
# - Append-only task activity log
# - Users for authentication and invitations

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, JSON, Boolean, Integer,
    Enum as SQLEnum, ForeignKey, Text, Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================

class ProjectRole(str, PyEnum):
    ADMIN = "admin"
    MEMBER = "member"


class TaskStatus(str, PyEnum):
    TODO = "Todo"
    IN_PROGRESS = "In Progress"
    DONE = "Done"


class TaskPriority(str, PyEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# Fixed column set of every board, in display order
BOARD_COLUMNS = [
    {"name": TaskStatus.TODO.value, "order": 0},
    {"name": TaskStatus.IN_PROGRESS.value, "order": 1},
    {"name": TaskStatus.DONE.value, "order": 2},
]


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    email = Column(String, unique=True, nullable=False, index=True)
    username = Column(String, nullable=False, default="")
    password_hash = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# ============================================================
# PROJECTS
# ============================================================

class Project(Base):
    """Top of the hierarchy; owns boards and the membership list"""
    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=new_uuid)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    color = Column(String(7), nullable=False, default="#007bff")
    owner_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    owner = relationship("User", foreign_keys=[owner_id])
    members = relationship(
        "ProjectMember", back_populates="project",
        order_by="ProjectMember.joined_at", cascade="all, delete-orphan",
    )
    boards = relationship("Board", back_populates="project")


class ProjectMember(Base):
    """A (user, role) pair granting access to a project short of ownership"""
    __tablename__ = "project_members"

    id = Column(String, primary_key=True, default=new_uuid)
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(SQLEnum(ProjectRole, values_callable=_enum_values), nullable=False, default=ProjectRole.MEMBER)
    joined_at = Column(DateTime(timezone=True), default=utcnow)

    project = relationship("Project", back_populates="members")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_member"),
    )


# ============================================================
# BOARDS
# ============================================================

class Board(Base):
    """Kanban board; its project reference never changes after creation"""
    __tablename__ = "boards"

    id = Column(String, primary_key=True, default=new_uuid)
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    created_by = Column(String, ForeignKey("users.id"), nullable=False)
    columns = Column(JSON, nullable=False, default=lambda: [dict(c) for c in BOARD_COLUMNS])
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    project = relationship("Project", back_populates="boards")
    tasks = relationship("Task", back_populates="board")


# ============================================================
# TASKS
# ============================================================

class Task(Base):
    """Task card; `position` orders it within its (board, status) column"""
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=new_uuid)
    board_id = Column(String, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    # Denormalized from the board at creation time
    project_id = Column(String, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(SQLEnum(TaskStatus, values_callable=_enum_values), nullable=False, default=TaskStatus.TODO)
    priority = Column(SQLEnum(TaskPriority, values_callable=_enum_values), nullable=False, default=TaskPriority.MEDIUM)
    due_date = Column(DateTime(timezone=True), nullable=True)
    assigned_to = Column(String, ForeignKey("users.id"), nullable=True, index=True)
    created_by = Column(String, ForeignKey("users.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    # Bumped on every write; lets reorders reject stale moves
    version = Column(Integer, nullable=False, default=0)

    labels = Column(JSON, default=list)  # [{"name": ..., "color": ...}]
    attachments = Column(JSON, default=list)  # Opaque metadata

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    board = relationship("Board", back_populates="tasks")
    assignee = relationship("User", foreign_keys=[assigned_to])
    creator = relationship("User", foreign_keys=[created_by])

    __table_args__ = (
        Index("idx_task_board_status_pos", "board_id", "status", "position"),
    )


class TaskActivity(Base):
    """Append-only audit trail entry for a task"""
    __tablename__ = "task_activity"

    id = Column(String, primary_key=True, default=new_uuid)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)  # Per-task, strictly increasing
    action = Column(String, nullable=False)  # "Task created", "Status changed", "Comment added", ...
    performed_by = Column(String, ForeignKey("users.id"), nullable=False)
    details = Column(JSON, default=dict)
    timestamp = Column(DateTime(timezone=True), default=utcnow)

    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("task_id", "sequence", name="uq_activity_task_seq"),
    )


# ============================================================
# COMMENTS
# ============================================================

class Comment(Base):
    """Comment on a task; replies nest exactly one level deep"""
    __tablename__ = "comments"

    id = Column(String, primary_key=True, default=new_uuid)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(String, ForeignKey("users.id"), nullable=False)
    parent_comment_id = Column(String, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True, index=True)
    content = Column(Text, nullable=False)
    is_edited = Column(Boolean, default=False)
    edited_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    author = relationship("User")

    __table_args__ = (
        Index("idx_comment_task_parent", "task_id", "parent_comment_id"),
    )
