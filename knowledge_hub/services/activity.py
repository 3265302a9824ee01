"""User activity log."""

import logging
from typing import Any, List, Optional

from knowledge_hub.core.exceptions import DatabaseError
from knowledge_hub.models.document import Activity, ActivityAction
from knowledge_hub.monitoring.metrics import activity_log_failures_total
from knowledge_hub.services.store import DocumentStore

logger = logging.getLogger(__name__)


class ActivityLog:
    """
    Records what users do with documents, questions and searches.

    Recording is best effort: a store failure is logged and counted but
    never fails the operation being recorded.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def record(
        self,
        user_id: str,
        action: ActivityAction,
        document_id: Optional[str] = None,
        **details: Any,
    ) -> Optional[Activity]:
        """
        Append an activity entry.

        Args:
            user_id: Acting user.
            action: What they did.
            document_id: Document involved, if any.
            **details: Extra fields stored with the entry; None values are dropped.

        Returns:
            Stored entry, or None when it could not be recorded.
        """
        activity = Activity(
            user_id=user_id,
            action=action,
            document_id=document_id,
            details={k: v for k, v in details.items() if v is not None},
        )
        try:
            return await self.store.record_activity(activity)
        except DatabaseError as e:
            activity_log_failures_total.inc()
            logger.warning(f"Failed to record {action.value} activity for {user_id}: {str(e)}")
            return None

    async def history(
        self,
        user_id: str,
        actions: Optional[List[ActivityAction]] = None,
        limit: int = 50,
    ) -> List[Activity]:
        """A user's activity, newest first."""
        return await self.store.list_activities(user_id, actions=actions, limit=limit)
