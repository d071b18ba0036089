# ordering.py — Position ordering for Kanban columns
# A column is the (board, status) partition of tasks. After every operation
# here the positions inside each touched column are exactly 0..n-1, in
# on-screen order. Callers send intent (task, column, index); the engine
# decides the final numbers.
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from errors import ConflictError, InvalidInputError, NotFoundError, field_error
from models import Task, TaskStatus

logger = logging.getLogger("taskboard.ordering")

# Display order of the fixed columns
COLUMN_ORDER = [TaskStatus.TODO, TaskStatus.IN_PROGRESS, TaskStatus.DONE]


@dataclass(frozen=True)
class Move:
    task_id: str
    new_status: TaskStatus
    new_index: int
    version: Optional[int] = None


def dedupe_moves(moves: Iterable[Move]) -> List[Move]:
    """Keep the last move per task, at the place that move appears"""
    by_task: Dict[str, Move] = {}
    for move in moves:
        by_task.pop(move.task_id, None)
        by_task[move.task_id] = move
    return list(by_task.values())


def splice_column(remaining: Sequence[str], arrivals: Sequence[Tuple[str, int]]) -> List[str]:
    """Insert arriving task ids into a column at their requested indexes.

    `remaining` is the column as it is now, minus every task being moved.
    Arrivals are placed in ascending index order, each clamped to
    [0, len(column)]; arrivals asking for the same slot keep the order in
    which they were given.
    """
    column = list(remaining)
    floor = -1
    for task_id, index in sorted(arrivals, key=lambda arrival: arrival[1]):
        slot = min(max(index, 0), len(column))
        if slot <= floor:
            slot = floor + 1
        column.insert(slot, task_id)
        floor = slot
    return column


class PositionOrderingEngine:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def column(self, board_id: str, status: TaskStatus) -> List[Task]:
        stmt = (
            select(Task)
            .where(Task.board_id == board_id, Task.status == status)
            .order_by(Task.position.asc(), Task.created_at.asc(), Task.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def next_position(self, board_id: str, status: TaskStatus) -> int:
        stmt = select(func.max(Task.position)).where(Task.board_id == board_id, Task.status == status)
        max_pos = (await self.session.execute(stmt)).scalar()
        return max_pos + 1 if max_pos is not None else 0

    async def reorder(self, board_id: str, moves: Sequence[Move]) -> List[str]:
        """Apply a batch of moves to one board; returns ids of rewritten tasks.

        All moves are validated before anything is written. Nothing is
        appended to the activity log.
        """
        moves = dedupe_moves(moves)
        if not moves:
            return []

        task_ids = [m.task_id for m in moves]
        result = await self.session.execute(select(Task).where(Task.id.in_(task_ids)))
        moving = {t.id: t for t in result.scalars().all()}

        missing = [tid for tid in task_ids if tid not in moving]
        if missing:
            raise NotFoundError(f"Task not found: {missing[0]}")

        for move in moves:
            task = moving[move.task_id]
            if task.board_id != board_id:
                raise InvalidInputError(
                    "All tasks must belong to the same board",
                    errors=[field_error("tasks", f"Task {task.id} is not on board {board_id}")],
                )
            if move.version is not None and move.version != (task.version or 0):
                raise ConflictError(f"Task {task.id} was modified by another request")

        affected = {m.new_status for m in moves} | {TaskStatus(t.status) for t in moving.values()}

        plan: Dict[str, Tuple[TaskStatus, int]] = {}
        tasks_by_id: Dict[str, Task] = dict(moving)
        for status in [s for s in COLUMN_ORDER if s in affected]:
            current = await self.column(board_id, status)
            tasks_by_id.update((t.id, t) for t in current)
            remaining = [t.id for t in current if t.id not in moving]
            arrivals = [(m.task_id, m.new_index) for m in moves if m.new_status == status]
            for position, task_id in enumerate(splice_column(remaining, arrivals)):
                plan[task_id] = (status, position)

        changed = self._apply(plan, tasks_by_id)
        await self.session.flush()
        logger.info(f"Reordered board {board_id}: {len(changed)} task(s) rewritten")
        return changed

    async def compact(self, board_id: str, status: TaskStatus) -> List[str]:
        """Close gaps left in a column, e.g. after a task was deleted"""
        current = await self.column(board_id, status)
        plan = {t.id: (status, position) for position, t in enumerate(current)}
        changed = self._apply(plan, {t.id: t for t in current})
        await self.session.flush()
        return changed

    @staticmethod
    def _apply(plan: Dict[str, Tuple[TaskStatus, int]], tasks_by_id: Dict[str, Task]) -> List[str]:
        changed = []
        for task_id, (status, position) in plan.items():
            task = tasks_by_id[task_id]
            if task.status == status and task.position == position:
                continue
            # Status first, then position, in the same flush
            task.status = status
            task.position = position
            task.version = (task.version or 0) + 1
            changed.append(task_id)
        return changed
