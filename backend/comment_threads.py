# comment_threads.py — One-level comment threading
# A comment is either top-level or a reply to a top-level comment of the
# same task. Listing pages over top-level comments only; each one carries
# all of its replies.
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from errors import ForbiddenError, InvalidInputError, NotFoundError, field_error
from models import Comment, utcnow

logger = logging.getLogger("taskboard.comments")


class CommentThreadManager:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, comment_id: str) -> Comment:
        result = await self.session.execute(select(Comment).where(Comment.id == comment_id))
        comment = result.scalar_one_or_none()
        if not comment:
            raise NotFoundError("Comment not found")
        return comment

    async def create(
        self,
        task_id: str,
        author_id: str,
        content: str,
        parent_id: Optional[str] = None,
    ) -> Comment:
        if parent_id:
            result = await self.session.execute(select(Comment).where(Comment.id == parent_id))
            parent = result.scalar_one_or_none()
            if not parent:
                raise NotFoundError("Parent comment not found")
            if parent.task_id != task_id:
                raise InvalidInputError(
                    "Parent comment does not belong to this task",
                    errors=[field_error("parent_comment", "must belong to the same task")],
                )
            if parent.parent_comment_id is not None:
                raise InvalidInputError(
                    "Replies cannot be nested more than one level",
                    errors=[field_error("parent_comment", "must be a top-level comment")],
                )

        comment = Comment(
            task_id=task_id,
            author_id=author_id,
            content=content,
            parent_comment_id=parent_id or None,
        )
        self.session.add(comment)
        await self.session.flush()
        return comment

    async def list(self, task_id: str, page: int, limit: int) -> Tuple[List[Tuple[Comment, List[Comment]]], int]:
        """Top-level comments newest first, with their replies oldest first"""
        top_filter = (Comment.task_id == task_id, Comment.parent_comment_id.is_(None))

        total = (await self.session.execute(
            select(func.count(Comment.id)).where(*top_filter)
        )).scalar() or 0

        stmt = (
            select(Comment)
            .where(*top_filter)
            .order_by(Comment.created_at.desc(), Comment.id.desc())
            .offset(page * limit)
            .limit(limit)
        )
        top_level = list((await self.session.execute(stmt)).scalars().all())

        replies: Dict[str, List[Comment]] = {c.id: [] for c in top_level}
        if top_level:
            reply_stmt = (
                select(Comment)
                .where(Comment.parent_comment_id.in_(list(replies)))
                .order_by(Comment.created_at.asc(), Comment.id.asc())
            )
            for reply in (await self.session.execute(reply_stmt)).scalars().all():
                replies[reply.parent_comment_id].append(reply)

        return [(c, replies[c.id]) for c in top_level], total

    async def update(self, comment_id: str, author_id: str, content: str) -> Comment:
        comment = await self.get(comment_id)
        if comment.author_id != author_id:
            raise ForbiddenError("Access denied. You can only edit your own comments.")

        comment.content = content
        comment.is_edited = True
        comment.edited_at = utcnow()
        await self.session.flush()
        return comment

    async def delete(self, comment: Comment) -> int:
        """Delete a comment, and its replies when it is top-level; returns rows removed"""
        removed = 0
        if comment.parent_comment_id is None:
            result = await self.session.execute(
                delete(Comment).where(Comment.parent_comment_id == comment.id)
            )
            removed += result.rowcount or 0
        await self.session.delete(comment)
        await self.session.flush()
        logger.info(f"Deleted comment {comment.id} and {removed} repl{'y' if removed == 1 else 'ies'}")
        return removed + 1

    async def purge_task(self, task_id: str) -> None:
        """Remove every comment of a task, replies before their parents"""
        await self.session.execute(
            delete(Comment).where(Comment.task_id == task_id, Comment.parent_comment_id.isnot(None))
        )
        await self.session.execute(delete(Comment).where(Comment.task_id == task_id))
