# hierarchy.py — Project → Board → Task → Comment store
# Every public operation:
#   1. resolves the owning Project (NotFound if any link is missing),
#   2. asks the AccessControlEvaluator (Forbidden aborts before any write),
#   3. mutates inside one unit of work, delegating ordering, activity and
#      comment threading to the injected collaborators,
#   4. returns immutable read models.
import logging
from datetime import datetime, time, timedelta, timezone
from typing import List, Optional, Tuple

from fastapi import Depends
from sqlalchemy import select, func, delete, or_, and_, case
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from access_control import AccessControlEvaluator, Operation, ProjectAccess
from activity_log import (
    ActivityLog, TASK_CREATED, STATUS_CHANGED, ASSIGNEE_CHANGED, PRIORITY_CHANGED, COMMENT_ADDED,
)
from auth import CurrentUser
from comment_threads import CommentThreadManager
from database import get_db_session, unit_of_work
from errors import InvalidInputError, NotFoundError, ConflictError, field_error
from models import (
    Board, Comment, Project, ProjectMember, Task, TaskActivity, TaskPriority, TaskStatus, User,
)
from ordering import COLUMN_ORDER, Move, PositionOrderingEngine
from schemas import (
    BoardCreate, BoardOut, CommentCreate, CommentOut, CommentThreadOut, CommentUpdate,
    MemberInvite, Pagination, ProjectCreate, ProjectOut, ProjectUpdate, ReorderResult,
    TaskCreate, TaskOut, TaskQuery, TaskReorder, TaskUpdate, ActivityOut, TASK_SORT_FIELDS,
    activity_out, board_out, comment_out, paginate, project_out, task_out,
)

logger = logging.getLogger("taskboard.hierarchy")

PRIORITY_RANK = {TaskPriority.LOW.value: 0, TaskPriority.MEDIUM.value: 1, TaskPriority.HIGH.value: 2}
STATUS_RANK = {status.value: rank for rank, status in enumerate(COLUMN_ORDER)}


def _utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class HierarchyStore:
    def __init__(
        self,
        session: AsyncSession,
        access: Optional[AccessControlEvaluator] = None,
        ordering: Optional[PositionOrderingEngine] = None,
        activity: Optional[ActivityLog] = None,
        threads: Optional[CommentThreadManager] = None,
    ):
        self.session = session
        self.access = access or AccessControlEvaluator()
        self.ordering = ordering or PositionOrderingEngine(session)
        self.activity = activity or ActivityLog(session)
        self.threads = threads or CommentThreadManager(session)

    # ============================================================
    # LOOKUPS
    # ============================================================

    async def _project(self, project_id: str) -> Project:
        stmt = (
            select(Project)
            .where(Project.id == project_id)
            .options(
                selectinload(Project.owner),
                selectinload(Project.members).selectinload(ProjectMember.user),
            )
            .execution_options(populate_existing=True)
        )
        project = (await self.session.execute(stmt)).scalar_one_or_none()
        if not project:
            raise NotFoundError("Project not found")
        return project

    async def _board(self, board_id: str) -> Board:
        board = (await self.session.execute(select(Board).where(Board.id == board_id))).scalar_one_or_none()
        if not board:
            raise NotFoundError("Board not found")
        return board

    async def _task(self, task_id: str) -> Task:
        task = (await self.session.execute(select(Task).where(Task.id == task_id))).scalar_one_or_none()
        if not task:
            raise NotFoundError("Task not found")
        return task

    async def _require_user(self, user_id: str, field: str) -> None:
        found = (await self.session.execute(select(User.id).where(User.id == user_id))).scalar_one_or_none()
        if not found:
            raise NotFoundError("User not found", errors=[field_error(field, "unknown user")])

    async def _authorize(
        self,
        principal: CurrentUser,
        project_id: str,
        operation: Operation,
        resource_author_id: Optional[str] = None,
    ) -> Project:
        project = await self._project(project_id)
        self.access.require(principal.id, ProjectAccess.of(project), operation, resource_author_id)
        return project

    # ============================================================
    # PROJECTS
    # ============================================================

    async def create_project(self, principal: CurrentUser, data: ProjectCreate) -> ProjectOut:
        async with unit_of_work(self.session):
            project = Project(
                name=data.name,
                description=data.description,
                color=data.color,
                owner_id=principal.id,
                is_active=True,
            )
            self.session.add(project)
            await self.session.flush()

        logger.info(f"Project {project.id} created by {principal.id}")
        return project_out(await self._project(project.id))

    async def list_projects(self, principal: CurrentUser, page: int, limit: int) -> Tuple[List[ProjectOut], Pagination]:
        memberships = select(ProjectMember.project_id).where(ProjectMember.user_id == principal.id)
        visible = and_(
            Project.is_active.is_(True),
            or_(Project.owner_id == principal.id, Project.id.in_(memberships)),
        )

        total = (await self.session.execute(select(func.count(Project.id)).where(visible))).scalar() or 0
        stmt = (
            select(Project)
            .where(visible)
            .options(
                selectinload(Project.owner),
                selectinload(Project.members).selectinload(ProjectMember.user),
            )
            .order_by(Project.created_at.desc())
            .offset(page * limit)
            .limit(limit)
        )
        projects = (await self.session.execute(stmt)).scalars().all()
        return [project_out(p) for p in projects], paginate(page, limit, total)

    async def get_project(self, principal: CurrentUser, project_id: str) -> ProjectOut:
        return project_out(await self._authorize(principal, project_id, Operation.READ))

    async def update_project(self, principal: CurrentUser, project_id: str, data: ProjectUpdate) -> ProjectOut:
        async with unit_of_work(self.session):
            project = await self._authorize(principal, project_id, Operation.ADMIN)
            for field, value in data.model_dump(exclude_unset=True).items():
                if value is None and field != "description":
                    continue
                setattr(project, field, value)
            await self.session.flush()

        logger.info(f"Project {project_id} updated by {principal.id}")
        return project_out(await self._project(project_id))

    async def delete_project(self, principal: CurrentUser, project_id: str) -> None:
        async with unit_of_work(self.session):
            await self._authorize(principal, project_id, Operation.OWNER)

            task_ids = select(Task.id).where(Task.project_id == project_id)
            await self.session.execute(
                delete(Comment).where(Comment.task_id.in_(task_ids), Comment.parent_comment_id.isnot(None))
            )
            await self.session.execute(delete(Comment).where(Comment.task_id.in_(task_ids)))
            await self.session.execute(delete(TaskActivity).where(TaskActivity.task_id.in_(task_ids)))
            await self.session.execute(delete(Task).where(Task.project_id == project_id))
            await self.session.execute(delete(Board).where(Board.project_id == project_id))
            await self.session.execute(delete(ProjectMember).where(ProjectMember.project_id == project_id))
            await self.session.execute(delete(Project).where(Project.id == project_id))

        logger.info(f"Project {project_id} deleted by {principal.id}")

    async def invite_member(self, principal: CurrentUser, project_id: str, data: MemberInvite) -> ProjectOut:
        async with unit_of_work(self.session):
            project = await self._authorize(principal, project_id, Operation.ADMIN)

            invitee = (await self.session.execute(
                select(User).where(User.email == data.email)
            )).scalar_one_or_none()
            if not invitee:
                raise NotFoundError("User with this email does not exist")
            if invitee.id == project.owner_id:
                raise ConflictError("User is the owner of this project")

            # Checked against the rows as they are now, not the snapshot above
            existing = (await self.session.execute(
                select(ProjectMember.id).where(
                    ProjectMember.project_id == project_id, ProjectMember.user_id == invitee.id,
                )
            )).scalar_one_or_none()
            if existing:
                raise ConflictError("User is already a member of this project")

            project.members.append(ProjectMember(user_id=invitee.id, role=data.role))
            await self.session.flush()

        logger.info(f"User {invitee.id} invited to project {project_id} as {data.role.value}")
        return project_out(await self._project(project_id))

    async def remove_member(self, principal: CurrentUser, project_id: str, member_id: str) -> ProjectOut:
        async with unit_of_work(self.session):
            project = await self._authorize(principal, project_id, Operation.ADMIN)
            if member_id == project.owner_id:
                raise InvalidInputError(
                    "Cannot remove project owner",
                    errors=[field_error("member_id", "the project owner cannot be removed")],
                )

            membership = (await self.session.execute(
                select(ProjectMember).where(
                    ProjectMember.project_id == project_id, ProjectMember.user_id == member_id,
                )
            )).scalar_one_or_none()
            if not membership:
                raise NotFoundError("Member not found in this project")

            project.members.remove(membership)
            await self.session.flush()

        logger.info(f"User {member_id} removed from project {project_id}")
        return project_out(await self._project(project_id))

    # ============================================================
    # BOARDS
    # ============================================================

    async def create_board(self, principal: CurrentUser, data: BoardCreate) -> BoardOut:
        async with unit_of_work(self.session):
            await self._authorize(principal, data.project, Operation.WRITE_CONTENT)
            board = Board(
                name=data.name,
                description=data.description,
                project_id=data.project,
                created_by=principal.id,
            )
            self.session.add(board)
            await self.session.flush()

        await self.session.refresh(board)
        logger.info(f"Board {board.id} created in project {data.project}")
        return board_out(board)

    async def list_boards(self, principal: CurrentUser, project_id: str) -> List[BoardOut]:
        await self._authorize(principal, project_id, Operation.READ)
        stmt = (
            select(Board)
            .where(Board.project_id == project_id, Board.is_active.is_(True))
            .order_by(Board.created_at.desc())
        )
        return [board_out(b) for b in (await self.session.execute(stmt)).scalars().all()]

    # ============================================================
    # TASKS
    # ============================================================

    async def create_task(self, principal: CurrentUser, data: TaskCreate) -> TaskOut:
        async with unit_of_work(self.session):
            board = await self._board(data.board)
            await self._authorize(principal, board.project_id, Operation.WRITE_CONTENT)
            if data.project and data.project != board.project_id:
                raise InvalidInputError(
                    "Task project must match the board's project",
                    errors=[field_error("project", "does not match the board's project")],
                )
            if data.assigned_to:
                await self._require_user(data.assigned_to, "assigned_to")

            task = Task(
                title=data.title,
                description=data.description,
                status=data.status,
                priority=data.priority,
                due_date=_utc(data.due_date),
                assigned_to=data.assigned_to,
                board_id=board.id,
                project_id=board.project_id,
                created_by=principal.id,
                position=await self.ordering.next_position(board.id, data.status),
                version=0,
                labels=[label.model_dump() for label in data.labels],
                attachments=list(data.attachments),
            )
            self.session.add(task)
            await self.session.flush()

            await self.activity.append(task.id, TASK_CREATED, principal.id, {
                "title": task.title,
                "status": data.status.value,
            })

        await self.session.refresh(task)
        logger.info(f"Task {task.id} created on board {board.id} at position {task.position}")
        return task_out(task)

    async def list_tasks(
        self, principal: CurrentUser, board_id: str, query: TaskQuery,
    ) -> Tuple[List[TaskOut], Pagination, BoardOut]:
        board = await self._board(board_id)
        await self._authorize(principal, board.project_id, Operation.READ)

        if query.sort_by not in TASK_SORT_FIELDS:
            raise InvalidInputError(
                "Invalid sort field",
                errors=[field_error("sort_by", f"must be one of {', '.join(TASK_SORT_FIELDS)}")],
            )
        if query.sort_order not in ("asc", "desc"):
            raise InvalidInputError(
                "Invalid sort order", errors=[field_error("sort_order", "must be asc or desc")],
            )

        conditions = [Task.board_id == board_id]
        if query.status:
            conditions.append(Task.status == query.status)
        if query.assigned_to:
            conditions.append(Task.assigned_to == query.assigned_to)
        if query.priority:
            conditions.append(Task.priority == query.priority)
        if query.due_date:
            day_start = datetime.combine(query.due_date, time.min, tzinfo=timezone.utc)
            conditions.append(Task.due_date >= day_start)
            conditions.append(Task.due_date < day_start + timedelta(days=1))
        if query.search:
            pattern = f"%{query.search}%"
            conditions.append(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))

        if query.sort_by == "priority":
            sort_col = case(PRIORITY_RANK, value=Task.priority)
        elif query.sort_by == "status":
            sort_col = case(STATUS_RANK, value=Task.status)
        else:
            sort_col = getattr(Task, query.sort_by)
        primary = sort_col.desc() if query.sort_order == "desc" else sort_col.asc()

        total = (await self.session.execute(select(func.count(Task.id)).where(*conditions))).scalar() or 0
        stmt = (
            select(Task)
            .where(*conditions)
            .order_by(primary, Task.position.asc(), Task.created_at.asc(), Task.id.asc())
            .offset(query.page * query.limit)
            .limit(query.limit)
        )
        tasks = (await self.session.execute(stmt)).scalars().all()
        return [task_out(t) for t in tasks], paginate(query.page, query.limit, total), board_out(board)

    async def update_task(self, principal: CurrentUser, task_id: str, data: TaskUpdate) -> TaskOut:
        changes = data.model_dump(exclude_unset=True)

        async with unit_of_work(self.session):
            task = await self._task(task_id)
            await self._authorize(principal, task.project_id, Operation.WRITE_CONTENT)

            old_status = TaskStatus(task.status)
            old_priority = TaskPriority(task.priority)
            old_assigned = task.assigned_to

            if changes.get("assigned_to"):
                await self._require_user(changes["assigned_to"], "assigned_to")

            for field in ("title", "priority"):
                if changes.get(field) is not None:
                    setattr(task, field, changes[field])
            if "description" in changes:
                task.description = changes["description"]
            for field in ("labels", "attachments"):
                if field in changes:
                    setattr(task, field, changes[field] or [])
            if "due_date" in changes:
                task.due_date = _utc(changes["due_date"])
            if "assigned_to" in changes:
                task.assigned_to = changes["assigned_to"] or None

            new_status = changes.get("status") or old_status
            new_position = changes.get("position")
            if new_status != old_status or new_position is not None:
                if new_position is None:
                    new_position = await self.ordering.next_position(task.board_id, new_status)
                await self.ordering.reorder(task.board_id, [Move(task.id, new_status, new_position)])

            task.version = (task.version or 0) + 1
            await self.session.flush()

            if new_status != old_status:
                await self.activity.append(task.id, STATUS_CHANGED, principal.id, {
                    "oldStatus": old_status.value, "newStatus": new_status.value,
                })
            if task.assigned_to != old_assigned:
                await self.activity.append(task.id, ASSIGNEE_CHANGED, principal.id, {
                    "oldAssigned": old_assigned, "newAssigned": task.assigned_to,
                })
            new_priority = TaskPriority(task.priority)
            if new_priority != old_priority:
                await self.activity.append(task.id, PRIORITY_CHANGED, principal.id, {
                    "oldPriority": old_priority.value, "newPriority": new_priority.value,
                })

        await self.session.refresh(task)
        logger.info(f"Task {task_id} updated by {principal.id}: {', '.join(sorted(changes)) or 'no fields'}")
        return task_out(task)

    async def delete_task(self, principal: CurrentUser, task_id: str) -> None:
        async with unit_of_work(self.session):
            task = await self._task(task_id)
            await self._authorize(principal, task.project_id, Operation.WRITE_CONTENT)
            board_id, status = task.board_id, TaskStatus(task.status)

            await self.threads.purge_task(task_id)
            await self.activity.purge(task_id)
            await self.session.delete(task)
            await self.session.flush()
            await self.ordering.compact(board_id, status)

        logger.info(f"Task {task_id} deleted by {principal.id}")

    async def reorder_tasks(self, principal: CurrentUser, data: TaskReorder) -> ReorderResult:
        async with unit_of_work(self.session):
            # Access is checked through the first task's project
            first = await self._task(data.tasks[0].id)
            await self._authorize(principal, first.project_id, Operation.WRITE_CONTENT)

            moves = [Move(m.id, m.status, m.position, m.version) for m in data.tasks]
            updated = await self.ordering.reorder(first.board_id, moves)

        return ReorderResult(board_id=first.board_id, updated=updated)

    async def get_task_activity(self, principal: CurrentUser, task_id: str) -> List[ActivityOut]:
        task = await self._task(task_id)
        await self._authorize(principal, task.project_id, Operation.READ)
        return [activity_out(e) for e in await self.activity.list(task_id)]

    # ============================================================
    # COMMENTS
    # ============================================================

    async def create_comment(self, principal: CurrentUser, data: CommentCreate) -> CommentOut:
        async with unit_of_work(self.session):
            task = await self._task(data.task)
            await self._authorize(principal, task.project_id, Operation.WRITE_CONTENT)

            comment = await self.threads.create(task.id, principal.id, data.content, data.parent_comment)
            await self.activity.append(task.id, COMMENT_ADDED, principal.id, {
                "commentId": comment.id,
                "isReply": comment.parent_comment_id is not None,
            })

        await self.session.refresh(comment)
        return comment_out(comment)

    async def list_comments(
        self, principal: CurrentUser, task_id: str, page: int, limit: int,
    ) -> Tuple[List[CommentThreadOut], Pagination]:
        task = await self._task(task_id)
        await self._authorize(principal, task.project_id, Operation.READ)

        threads, total = await self.threads.list(task_id, page, limit)
        out = [
            CommentThreadOut(**comment_out(c).model_dump(), replies=[comment_out(r) for r in replies])
            for c, replies in threads
        ]
        return out, paginate(page, limit, total)

    async def update_comment(self, principal: CurrentUser, comment_id: str, data: CommentUpdate) -> CommentOut:
        async with unit_of_work(self.session):
            comment = await self.threads.get(comment_id)
            task = await self._task(comment.task_id)
            await self._authorize(principal, task.project_id, Operation.WRITE_CONTENT)
            comment = await self.threads.update(comment_id, principal.id, data.content)

        await self.session.refresh(comment)
        return comment_out(comment)

    async def delete_comment(self, principal: CurrentUser, comment_id: str) -> int:
        async with unit_of_work(self.session):
            comment = await self.threads.get(comment_id)
            task = await self._task(comment.task_id)
            await self._authorize(principal, task.project_id, Operation.COMMENT_MODERATE, comment.author_id)
            removed = await self.threads.delete(comment)

        return removed


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_hierarchy_store(db: AsyncSession = Depends(get_db_session)) -> HierarchyStore:
    return HierarchyStore(db)
