"""De-duplication of concurrent loads of the same resource."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InFlightRequests(Generic[T]):
    """
    Maps a resource key to the pending load of that resource.

    The first caller for a key starts the load; every caller arriving while it
    is pending awaits the same future. The entry is dropped once the load
    finishes, whether it succeeded or failed.
    """

    def __init__(self):
        self._pending: Dict[str, "asyncio.Future[T]"] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        future = self._pending.get(key)
        if future is None:
            future = asyncio.ensure_future(factory())
            self._pending[key] = future
            future.add_done_callback(lambda _f, k=key: self._pending.pop(k, None))
        else:
            logger.debug(f"Joining in-flight load of {key}")
        # Shield so one cancelled waiter does not cancel the shared load
        return await asyncio.shield(future)
