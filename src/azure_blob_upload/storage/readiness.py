"""
Readiness coordination for the Azure blob storage engine.

Creating the container is asynchronous while building an engine is not, so
store/remove calls that arrive before the container is confirmed usable are
parked in a shared, ordered queue and replayed (or failed) once the outcome
is known.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Deque, List

from .base import IncomingFile

logger = logging.getLogger(__name__)


class ReadinessState(Enum):
    PENDING = "pending"  # container check still running
    READY = "ready"  # container exists, requests go to the network
    FAILED = "failed"  # container unusable, every request fails


class Operation(Enum):
    STORE = "store"
    REMOVE = "remove"


@dataclass
class PendingRequest:
    """A store or remove call parked until the container is ready."""
    owner: Any
    operation: Operation
    request: Any
    file: IncomingFile
    future: asyncio.Future = field(repr=False)

    def resolve(self, result: Any) -> bool:
        """Complete the caller with *result*. Returns False if already completed."""
        if self.future.done():
            return False
        self.future.set_result(result)
        return True

    def reject(self, error: BaseException) -> bool:
        """Complete the caller with *error*. Returns False if already completed."""
        if self.future.done():
            return False
        self.future.set_exception(error)
        return True


class RequestQueue:
    """
    Arrival-ordered buffer of pending requests.

    One queue is shared by every engine of the process (see
    ``get_request_queue``). Entries are only ever taken out by ``drain``,
    which removes them from the queue before handing them back.
    """

    def __init__(self):
        self._entries: Deque[PendingRequest] = deque()

    def __len__(self) -> int:
        return len(self._entries)

    def append(
        self,
        owner: Any,
        operation: Operation,
        request: Any,
        file: IncomingFile,
    ) -> PendingRequest:
        """Park a request and return its record; await ``record.future`` for the outcome."""
        loop = asyncio.get_running_loop()
        entry = PendingRequest(
            owner=owner,
            operation=operation,
            request=request,
            file=file,
            future=loop.create_future(),
        )
        self._entries.append(entry)
        logger.debug(f"Queued {operation.value} for {file.originalname} ({len(self._entries)} pending)")
        return entry

    def drain(self, owner: Any = None) -> List[PendingRequest]:
        """
        Remove and return the entries queued by *owner* (all entries when
        *owner* is None), oldest first. Other owners' entries keep their order.
        """
        if owner is None:
            entries = list(self._entries)
            self._entries.clear()
            return entries
        entries = [entry for entry in self._entries if entry.owner is owner]
        remaining = [entry for entry in self._entries if entry.owner is not owner]
        self._entries = deque(remaining)
        return entries

    def fail_all(self, error: BaseException, owner: Any = None) -> int:
        """Complete every queued request of *owner* with *error*."""
        entries = [entry for entry in self.drain(owner) if not entry.future.done()]
        for entry in entries:
            entry.reject(error)
        if entries:
            logger.warning(f"Failed {len(entries)} queued request(s): {error}")
        return len(entries)

    def replay_all(
        self,
        dispatch: Callable[[PendingRequest], Any],
        owner: Any = None,
    ) -> List[asyncio.Task]:
        """
        Re-dispatch every queued request of *owner* through *dispatch* in
        arrival order.

        *dispatch* is a coroutine function taking the entry and returning the
        operation result. Tasks are created oldest first, so the event loop
        starts them in arrival order too.
        """
        # Callers that gave up while queued are dropped, never sent to the network
        entries = [entry for entry in self.drain(owner) if not entry.future.done()]
        tasks = []
        for entry in entries:
            task = asyncio.ensure_future(dispatch(entry))
            task.add_done_callback(_settle(entry))
            tasks.append(task)
        if entries:
            logger.info(f"Replaying {len(entries)} queued request(s)")
        return tasks


def _settle(entry: PendingRequest) -> Callable[[asyncio.Task], None]:
    def done(task: asyncio.Task) -> None:
        if task.cancelled():
            entry.future.cancel()
        elif task.exception() is not None:
            entry.reject(task.exception())
        else:
            entry.resolve(task.result())
    return done


@lru_cache(maxsize=1)
def get_request_queue() -> RequestQueue:
    """The process-wide queue shared by engines that are not ready yet."""
    return RequestQueue()
