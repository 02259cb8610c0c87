"""
Action dispatch.

Each ActionType maps to exactly one async handler. Unknown types are
logged and skipped. Handler failures propagate to the caller so the
orchestrator can abandon the rest of that decision.
"""

import asyncio
import logging
from typing import Optional, Dict, Any, Awaitable, Callable, Set, Union

from .models import Action, ActionType, Decision, QueueTaskStatus

logger = logging.getLogger(__name__)

ActionHandler = Callable[[Action, Decision], Awaitable[None]]

MAX_RETRY_BACKOFF = 30.0

# Queue task fields carried over when a failed task is re-enqueued
_RETRY_FIELDS = ('type', 'priority', 'title', 'description', 'repositoryId',
                 'pullRequestId', 'estimatedDuration', 'dependencies')


class ActionExecutor:
    """
    Dispatches decision actions to their handlers.

    By default every handler only logs its intent. With ``live=True`` the
    retry and scale handlers act on the agent service through ``client``.
    """

    def __init__(
        self,
        client=None,
        live: bool = False,
        retry_backoff: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        if live and client is None:
            raise ValueError("live action execution requires an API client")
        self.client = client
        self.live = live
        self.retry_backoff = retry_backoff
        self._sleep = sleep
        # Ids of failed tasks already re-enqueued by this executor
        self._retried: Set[str] = set()
        self._handlers: Dict[str, ActionHandler] = {
            ActionType.RETRY_FAILED_TASKS.value: self.retry_failed_tasks,
            ActionType.SCALE_QUEUE_PROCESSING.value: self.scale_queue_processing,
            ActionType.OPTIMIZE_RESOURCE_ALLOCATION.value: self.optimize_resource_allocation,
            ActionType.PREVENTIVE_MAINTENANCE.value: self.perform_preventive_maintenance,
        }

    def register_handler(self, action_type: Union[ActionType, str], handler: ActionHandler) -> None:
        """Add or replace the handler for an action type."""
        key = action_type.value if isinstance(action_type, ActionType) else action_type
        self._handlers[key] = handler

    def has_handler(self, action_type: str) -> bool:
        return action_type in self._handlers

    async def execute(self, action: Action, decision: Decision) -> bool:
        """
        Run one action. Returns False if the type has no handler.

        Raises whatever the handler raises.
        """
        handler = self._handlers.get(action.type)
        if handler is None:
            logger.warning(f"Unknown action type: {action.type}")
            return False

        try:
            await handler(action, decision)
        except Exception as e:
            logger.error(f"Failed to execute action {action.type} for decision {decision.id}: {e}")
            raise

        logger.info(f"Completed action: {action.type}")
        return True

    # ==================== Handlers ====================

    async def retry_failed_tasks(self, action: Action, decision: Decision) -> None:
        """Re-enqueue failed queue tasks with exponential backoff between submissions."""
        logger.info("Retrying failed tasks...")
        if not self.live:
            return

        queue = await self.client.get_queue() or []
        failed = [
            t for t in queue
            if t.get('status') == QueueTaskStatus.FAILED.value and t.get('id') not in self._retried
        ]

        for attempt, task in enumerate(failed):
            if attempt:
                delay = min(self.retry_backoff * 2 ** (attempt - 1), MAX_RETRY_BACKOFF)
                await self._sleep(delay)

            payload = {k: task[k] for k in _RETRY_FIELDS if k in task}
            metadata = dict(task.get('metadata') or {})
            metadata['retryOf'] = task.get('id')
            metadata['retriedBy'] = decision.id
            payload['metadata'] = metadata

            await self.client.add_to_queue(payload)
            self._retried.add(task.get('id'))

            # The original leaves the queue once its retry is submitted
            await self.client.cancel_queued_task(task.get('id'))
            logger.info(f"Re-enqueued failed task {task.get('id')}")

        logger.info(f"Retried {len(failed)} failed tasks")

    async def scale_queue_processing(self, action: Action, decision: Decision) -> None:
        """Release paused queue capacity."""
        logger.info("Scaling queue processing capacity...")
        if not self.live:
            return
        await self.client.resume_queue()
        logger.info("Queue processing resumed")

    async def optimize_resource_allocation(self, action: Action, decision: Decision) -> None:
        logger.info("Optimizing resource allocation...")

    async def perform_preventive_maintenance(self, action: Action, decision: Decision) -> None:
        logger.info("Performing preventive maintenance...")
