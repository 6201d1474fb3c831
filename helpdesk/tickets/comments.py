from __future__ import annotations

import uuid
from datetime import datetime
from typing import Iterable

from .access import AccessPolicy
from .enums import Action, Role
from .errors import Forbidden, ValidationError
from .models import Comment, Identity, Ticket


class CommentThread:
    """Append-only comment log with internal/external visibility."""

    def __init__(self, policy: AccessPolicy | None = None) -> None:
        self._policy = policy or AccessPolicy()

    def add_comment(
        self,
        ticket: Ticket,
        author: Identity,
        content: str,
        *,
        is_internal: bool = False,
        now: datetime,
        comment_id: str | None = None,
    ) -> Comment:
        self._policy.require(author, Action.COMMENT, ticket)
        if is_internal and not self._policy.authorize(
            author.role, Action.VIEW_INTERNAL_COMMENTS, ticket, author.actor_id
        ):
            raise Forbidden(
                "post internal comments",
                role=author.role.value if author.role else None,
                ticket_id=ticket.id,
            )

        text = (content or "").strip()
        if not text:
            raise ValidationError("Comment content cannot be empty", field="content", value=content)

        return Comment(
            id=comment_id or str(uuid.uuid4()),
            ticket_id=ticket.id,
            author_id=author.actor_id,
            author_role=Role(author.role),
            content=text,
            is_internal=bool(is_internal),
            created_at=now,
        )

    def list_comments(self, ticket: Ticket, comments: Iterable[Comment], viewer: Identity) -> list[Comment]:
        """Return the thread visible to ``viewer``, oldest first.

        ``comments`` must be in insertion order; the sort is stable so equal
        timestamps keep that order.
        """

        self._policy.require(viewer, Action.VIEW, ticket)
        show_internal = self._policy.authorize(
            viewer.role, Action.VIEW_INTERNAL_COMMENTS, ticket, viewer.actor_id
        )
        visible = [
            comment
            for comment in comments
            if comment.ticket_id == ticket.id and (show_internal or not comment.is_internal)
        ]
        return sorted(visible, key=lambda comment: comment.created_at)
