"""
Observer events emitted during a run.

Observers are plain callables (sync or async) taking an ExecutionEvent.
Delivery is fire-and-forget: an observer that raises is logged and ignored,
and never affects the run.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Union

from .models import utc_now

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    EXECUTION_STARTED = "execution_started"
    PLAN_CREATED = "plan_created"
    STEP_STARTED = "step_started"
    STEP_COMPLETED = "step_completed"
    TOOL_CALL = "tool_call"
    RATE_LIMIT_WAIT = "rate_limit_wait"
    EXECUTION_ABORTED = "execution_aborted"
    EXECUTION_ERROR = "execution_error"
    EXECUTION_COMPLETED = "execution_completed"


@dataclass
class ExecutionEvent:
    """One observer notification."""
    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    session_id: str | None = None
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "data": self.data,
            "sessionId": self.session_id,
            "timestamp": self.timestamp,
        }


Observer = Callable[[ExecutionEvent], Union[None, Awaitable[None]]]


class EventEmitter:
    """Fans events out to registered observers."""

    def __init__(self) -> None:
        self._observers: list[Observer] = []
        self._pending: set["asyncio.Future[Any]"] = set()

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """
        Register an observer.

        Returns:
            A function that unsubscribes the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def emit(
        self,
        event_type: EventType,
        session_id: str | None = None,
        **data: Any,
    ) -> ExecutionEvent:
        """Deliver an event to every observer."""
        event = ExecutionEvent(type=event_type, data=data, session_id=session_id)
        for observer in list(self._observers):
            try:
                result = observer(event)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._pending.add(task)
                    task.add_done_callback(self._pending.discard)
                    task.add_done_callback(self._log_async_failure)
            except Exception as e:
                logger.warning(f"Observer failed on {event_type.value}: {e}")
        return event

    @staticmethod
    def _log_async_failure(task: "asyncio.Future[Any]") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Async observer failed: {error}")
