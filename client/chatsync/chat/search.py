"""Debounced user search for starting new conversations."""
import asyncio
import logging
from typing import Any, List, Optional

from chatsync.errors import ChatApiError
from chatsync.scheduling import Scheduler, TimerHandle
from .schemas import Participant

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5


class UserSearch:
    """Runs one search per pause in typing.

    Each term change re-arms a single debounce timer. When it fires, an empty
    term clears the results without a request; otherwise the API is queried
    with the local user excluded. Results for a term the user has already
    moved past are discarded.
    """

    def __init__(
        self,
        api: Any,
        local_user_id: str,
        scheduler: Scheduler,
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self._api = api
        self.local_user_id = local_user_id
        self._scheduler = scheduler
        self.debounce = debounce

        self.term = ""
        self.results: List[Participant] = []
        self.loading = False
        self._timer: Optional[TimerHandle] = None
        self._task: Optional[asyncio.Task] = None  # type: ignore[type-arg]

    def set_term(self, term: str) -> None:
        self.term = term
        self._cancel_timer()
        self._timer = self._scheduler.call_later(self.debounce, self._fire)

    def cancel(self) -> None:
        self._cancel_timer()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.loading = False

    async def wait(self) -> None:
        """Wait for the search started by the last timer, if any."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    def _fire(self) -> None:
        self._timer = None
        # A newer term supersedes whatever is still in flight.
        if self._task is not None and not self._task.done():
            self._task.cancel()
        term = self.term
        if not term:
            self.results = []
            self.loading = False
            return
        self.loading = True
        self._task = asyncio.ensure_future(self._run(term))

    async def _run(self, term: str) -> None:
        try:
            results = await self._api.search_users(term, exclude=self.local_user_id)
        except ChatApiError as e:
            logger.error("[Search] Search for %r failed: %s", term, e)
            results = []
        finally:
            if asyncio.current_task() is self._task:
                self.loading = False

        if term != self.term:
            logger.debug("[Search] Discarding stale results for %r", term)
            return
        self.results = results

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
