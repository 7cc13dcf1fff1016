"""Generation-checked request/response calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from bbs_client import screen as scr
from bbs_client.api_client import ApiError, AuthError
from bbs_client.screen import BufferScreen
from bbs_client.session import SessionContext
from bbs_client.views import ViewName

logger = logging.getLogger(__name__)

# Entry callback used to re-enter a fallback view: (view, state) -> None.
EnterFn = Callable[[ViewName, Any], None]


class RequestCoordinator:
    """Issue calls bound to the generation of the view that asked for them.

    A result is handed back only while that view is still the active one;
    anything else (success or failure) is dropped without touching the
    screen.
    """

    def __init__(
        self,
        ctx: SessionContext,
        screen: BufferScreen,
        enter: EnterFn,
        pace_delay: float = 1.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.ctx = ctx
        self.screen = screen
        self._enter = enter
        self.pace_delay = pace_delay
        self._sleep = sleep
        self.discarded = 0

    async def pause(self, generation: int, delay: Optional[float] = None) -> bool:
        """Hold a transitional message; ``False`` if the view changed meanwhile."""

        await self._sleep(self.pace_delay if delay is None else delay)
        return self.ctx.is_current(generation)

    async def call(
        self,
        request: Awaitable[Any],
        *,
        fallback: Optional[ViewName] = None,
        fallback_state: Any = None,
        quiet: bool = False,
        error_text: Optional[str] = None,
        generation: Optional[int] = None,
    ) -> Any:
        """Await ``request`` and return its result, or ``None`` when it must not be applied.

        On failure the error is rendered on the issuing view, followed by a
        paced re-entry of ``fallback`` (``main`` when unset). ``quiet`` calls
        report nothing and leave the view alone. An auth failure always
        clears the stored credential, even when the result is stale.
        ``generation`` defaults to the view active when the call starts.
        """

        if generation is None:
            generation = self.ctx.view.generation
        try:
            result = await request
        except AuthError as exc:
            logger.warning("credential rejected: %s", exc.message)
            self.ctx.clear_credential()
            await self._fail(generation, "Authentication failed: your key was cleared.", fallback, fallback_state, quiet)
            return None
        except ApiError as exc:
            await self._fail(generation, error_text or exc.message, fallback, fallback_state, quiet)
            return None

        if not self.ctx.is_current(generation):
            self.discarded += 1
            logger.debug("discarding stale result for generation %d (now %d)", generation, self.ctx.view.generation)
            return None
        return result

    async def _fail(
        self,
        generation: int,
        message: str,
        fallback: Optional[ViewName],
        fallback_state: Any,
        quiet: bool,
    ) -> None:
        if not self.ctx.is_current(generation):
            self.discarded += 1
            logger.debug("discarding stale failure for generation %d: %s", generation, message)
            return
        if quiet:
            logger.debug("quiet call failed: %s", message)
            return
        scr.error_line(self.screen, message)
        if await self.pause(generation):
            self._enter(fallback or ViewName.MAIN, fallback_state)
