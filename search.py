"""Interactive search: show a few results and let the requester pick one within a deadline."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from notifier import Notice
from session_manager import SessionManager
from youtube import TrackEntry

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 5
SELECTION_TIMEOUT = 30.0

# One reply token per candidate position
SELECTION_TOKENS = {str(i): i - 1 for i in range(1, MAX_CANDIDATES + 1)}


class SearchOutcome(Enum):
    INVALID = "invalid"
    NO_RESULTS = "no_results"
    TIMED_OUT = "timed_out"


@dataclass(eq=False)
class SearchSelection:
    """
    A single-use selection window.

    Resolves exactly once: either with the first qualifying reply from the
    requester, or with None when the deadline timer fires.
    """

    candidates: tuple[TrackEntry, ...]
    requester_id: int
    deadline: float
    resolved: bool = False
    choice: TrackEntry | None = None
    _future: asyncio.Future | None = field(default=None, repr=False)
    _timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    def open(self, loop: asyncio.AbstractEventLoop) -> None:
        """Arm the deadline timer on ``loop``."""
        self._future = loop.create_future()
        self._timer = loop.call_at(self.deadline, self.expire)

    def offer(self, author_id: int, content: str) -> bool:
        """Try to resolve with a reply. Returns True if the reply was accepted."""
        if self.resolved or author_id != self.requester_id:
            return False

        index = SELECTION_TOKENS.get(content.strip())
        if index is None or index >= len(self.candidates):
            return False

        self.resolved = True
        self.choice = self.candidates[index]
        if self._timer:
            self._timer.cancel()
        if self._future and not self._future.done():
            self._future.set_result(self.choice)
        return True

    def expire(self) -> None:
        """Resolve as timed out if nothing was picked yet."""
        if self.resolved:
            return
        self.resolved = True
        if self._future and not self._future.done():
            self._future.set_result(None)

    def cancel(self) -> None:
        if self._timer:
            self._timer.cancel()
        self.expire()

    async def wait(self) -> TrackEntry | None:
        """Wait for the window to resolve. Returns the picked track, or None on timeout."""
        if self._future is None:
            raise RuntimeError("selection window was never opened")
        return await self._future


class SearchCoordinator:
    """Runs search windows and hands picked tracks to the session manager."""

    def __init__(
        self,
        manager: SessionManager,
        *,
        timeout: float = SELECTION_TIMEOUT,
        max_candidates: int = MAX_CANDIDATES,
    ):
        self.manager = manager
        self.timeout = timeout
        self.max_candidates = max(1, min(max_candidates, MAX_CANDIDATES))
        self._windows: dict[int, list[SearchSelection]] = {}

    def open_windows(self, channel_id: int) -> list[SearchSelection]:
        return list(self._windows.get(channel_id, []))

    def feed(self, channel_id: int, author_id: int, content: str) -> bool:
        """
        Offer a channel message to the open windows in that channel, oldest first.

        Returns:
            True if a window consumed the message
        """
        for selection in self._windows.get(channel_id, []):
            if selection.offer(author_id, content):
                return True
        return False

    def _register(self, channel_id: int, selection: SearchSelection) -> None:
        self._windows.setdefault(channel_id, []).append(selection)

    def _unregister(self, channel_id: int, selection: SearchSelection) -> None:
        windows = self._windows.get(channel_id)
        if not windows:
            return
        if selection in windows:
            windows.remove(selection)
        if not windows:
            del self._windows[channel_id]

    def _results_notice(self, candidates: list[TrackEntry]) -> Notice:
        lines = [f"{i}. **[{t.title}]({t.url})**" for i, t in enumerate(candidates, 1)]
        return Notice(
            title="🔍 Search Results",
            description="\n".join(lines),
            footer=f"Reply with 1-{len(candidates)} to select",
        )

    async def search(
        self,
        requester_id: int,
        query: str | None,
        *,
        channel_id: int,
        notify_target: Any,
    ) -> TrackEntry | SearchOutcome:
        """
        Show up to five results for ``query`` and wait for the requester to pick one.

        Returns:
            The picked TrackEntry, or a SearchOutcome describing why nothing was picked
        """
        notifier = self.manager.notifier
        query = (query or "").strip()
        if not query:
            await notifier.send(
                notify_target,
                f"❌ Provide a query! Usage: `{self.manager.command_prefix}search <query>`",
            )
            return SearchOutcome.INVALID

        resolution = await self.manager.track_source.search(
            query, requester_id, limit=self.max_candidates
        )
        candidates = resolution.tracks[: self.max_candidates]
        if not candidates:
            await notifier.send(notify_target, "❌ No results!")
            return SearchOutcome.NO_RESULTS

        await notifier.send(notify_target, notice=self._results_notice(candidates))

        loop = asyncio.get_running_loop()
        selection = SearchSelection(
            candidates=tuple(candidates),
            requester_id=requester_id,
            deadline=loop.time() + self.timeout,
        )
        selection.open(loop)
        self._register(channel_id, selection)
        try:
            choice = await selection.wait()
        finally:
            selection.cancel()
            self._unregister(channel_id, selection)

        if choice is None:
            logger.debug("Search window for user %s timed out", requester_id)
            await notifier.send(notify_target, "❌ Timed out!")
            return SearchOutcome.TIMED_OUT
        return choice

    async def run(
        self,
        guild_id: int,
        requester_id: int,
        query: str | None,
        *,
        channel_id: int,
        notify_target: Any,
        voice_channel_of: Callable[[], Any],
    ) -> bool:
        """
        Full ``search`` command: pick a result, then queue it in the guild's session.

        ``voice_channel_of`` is called after the pick, so the requester's
        voice channel is the one they are in at that moment.
        """
        choice = await self.search(
            requester_id, query, channel_id=channel_id, notify_target=notify_target
        )
        if isinstance(choice, SearchOutcome):
            return False

        voice_channel = voice_channel_of()
        if voice_channel is None:
            await self.manager.notifier.send(notify_target, "❌ Join a voice channel!")
            return False

        session = self.manager.ensure_session(guild_id, notify_target)
        if not await self.manager.enqueue(session, voice_channel, choice):
            return False

        return True
