# activity_log.py — Append-only per-task audit trail
# Entries are never edited or removed one by one; the whole log of a task
# goes away only when the task itself is deleted. Authorization is the
# caller's job (the task-level READ check covers listing).
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from errors import NotFoundError
from models import Task, TaskActivity

logger = logging.getLogger("taskboard.activity")

TASK_CREATED = "Task created"
STATUS_CHANGED = "Status changed"
ASSIGNEE_CHANGED = "Assignee changed"
PRIORITY_CHANGED = "Priority changed"
COMMENT_ADDED = "Comment added"


class ActivityLog:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        task_id: str,
        action: str,
        performed_by: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> TaskActivity:
        exists = await self.session.execute(select(Task.id).where(Task.id == task_id))
        if exists.scalar_one_or_none() is None:
            raise NotFoundError("Task not found")

        seq_stmt = select(func.max(TaskActivity.sequence)).where(TaskActivity.task_id == task_id)
        last_seq = (await self.session.execute(seq_stmt)).scalar()

        entry = TaskActivity(
            task_id=task_id,
            sequence=(last_seq + 1) if last_seq is not None else 0,
            action=action,
            performed_by=performed_by,
            details=dict(details or {}),
        )
        self.session.add(entry)
        await self.session.flush()
        logger.debug(f"Activity '{action}' appended to task {task_id}")
        return entry

    async def list(self, task_id: str) -> List[TaskActivity]:
        """Entries of a task, newest first"""
        stmt = (
            select(TaskActivity)
            .where(TaskActivity.task_id == task_id)
            .order_by(TaskActivity.sequence.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def purge(self, task_id: str) -> None:
        """Drop a task's whole log; only task deletion calls this"""
        await self.session.execute(delete(TaskActivity).where(TaskActivity.task_id == task_id))
