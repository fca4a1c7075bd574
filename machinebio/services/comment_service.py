import logging
from typing import Dict, List, Optional

from sqlalchemy import select, delete, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from machinebio.auth.rbac import Permission, has_permission
from machinebio.core.metrics import track_performance
from machinebio.models.spot import Spot, SpotComment
from machinebio.models.user import User
from machinebio.services.exceptions import (
    ValidationError,
    NotFoundError,
    ForbiddenError,
    DatabaseQueryError,
)

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 2000


def serialize_comment(comment: SpotComment, username: Optional[str]) -> Dict:
    return {
        "id": comment.id,
        "spot_id": comment.spot_id,
        "author_id": comment.author_id,
        "username": username,
        "parent_id": comment.parent_id,
        "content": comment.content,
        "created_at": comment.created_at,
    }


class CommentService:
    """Threaded comments on spots: top-level comments with one level of replies."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _require_spot(self, spot_id: int) -> None:
        if await self.db.get(Spot, spot_id) is None:
            raise NotFoundError(f"Spot {spot_id} not found.")

    async def _get_comment_or_404(self, spot_id: int, comment_id: int) -> SpotComment:
        comment = await self.db.get(SpotComment, comment_id)
        if comment is None or comment.spot_id != spot_id:
            raise NotFoundError(f"Comment {comment_id} not found.")
        return comment

    async def list_comments(self, spot_id: int) -> List[Dict]:
        """Top-level comments newest first, each carrying its replies oldest first."""
        await self._require_spot(spot_id)

        rows = (
            await self.db.execute(
                select(SpotComment, User.username)
                .join(User, User.id == SpotComment.author_id)
                .where(SpotComment.spot_id == spot_id)
                .order_by(SpotComment.created_at, SpotComment.id)
            )
        ).all()

        threads: Dict[int, Dict] = {}
        replies: List[Dict] = []
        for comment, username in rows:
            item = serialize_comment(comment, username)
            if comment.parent_id is None:
                threads[comment.id] = {**item, "replies": []}
            else:
                replies.append(item)

        for reply in replies:
            thread = threads.get(reply["parent_id"])
            if thread is not None:
                thread["replies"].append(reply)

        for thread in threads.values():
            thread["reply_count"] = len(thread["replies"])

        return list(reversed(threads.values()))

    @track_performance(service_name="CommentService")
    async def add_comment(
        self,
        spot_id: int,
        author_id: int,
        content: str,
        parent_id: Optional[int] = None,
    ) -> SpotComment:
        await self._require_spot(spot_id)

        if content is None or not content.strip():
            raise ValidationError("Comment content is required.")
        content = content.strip()
        if len(content) > MAX_COMMENT_LENGTH:
            raise ValidationError(f"Comments are limited to {MAX_COMMENT_LENGTH} characters.")

        if parent_id is not None:
            parent = await self._get_comment_or_404(spot_id, parent_id)
            # Replies to a reply join the same thread
            parent_id = parent.parent_id or parent.id

        comment = SpotComment(spot_id=spot_id, author_id=author_id, parent_id=parent_id, content=content)
        self.db.add(comment)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))

        logger.info(
            "Comment added",
            extra={"comment_id": comment.id, "spot_id": spot_id, "parent_id": parent_id},
        )
        return comment

    @track_performance(service_name="CommentService")
    async def delete_comment(
        self,
        spot_id: int,
        comment_id: int,
        caller_id: int,
        caller_role: str = "user",
    ) -> None:
        """Remove a comment and its replies. Authors and comment moderators only."""
        comment = await self._get_comment_or_404(spot_id, comment_id)
        if comment.author_id != caller_id and not has_permission(caller_role, Permission.MODERATE_COMMENTS):
            raise ForbiddenError("Only the author or a moderator can delete this comment.")

        try:
            await self.db.execute(
                delete(SpotComment)
                .where(or_(SpotComment.id == comment_id, SpotComment.parent_id == comment_id))
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseQueryError(str(e))

        logger.info("Comment deleted", extra={"comment_id": comment_id, "deleted_by": caller_id})
