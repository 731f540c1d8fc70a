from __future__ import annotations
import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional, Set, Tuple

from ..game_logic import remaining_turn_time, utcnow
from ..schemas import GameState

log = logging.getLogger(__name__)

TICK_INTERVAL = 1.0  # seconds

class TurnTimer:
    """Per-turn countdown derived from `GameState.currentTurnStartTime`.

    The remaining time is recomputed on every tick, so re-tracking the same
    state (after a reconnect or a repeated broadcast) never skews it. The
    expiry callback runs at most once per (epoch, turn number).
    """

    def __init__(
        self,
        on_expired: Callable[[int], Awaitable[None]],
        on_tick: Optional[Callable[[int], None]] = None,
        interval: float = TICK_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.on_expired = on_expired
        self.on_tick = on_tick
        self.interval = interval
        self.clock = clock
        self._state: Optional[GameState] = None
        self._epoch = ''
        self._fired: Set[Tuple[str, int]] = set()
        self._task: Optional[asyncio.Task] = None

    def track(self, state: GameState, epoch: str = '') -> None:
        self._state = state
        self._epoch = epoch

    def rearm(self, turn_number: int) -> None:
        """Let the expiry callback run again for `turn_number` in the tracked epoch."""
        self._fired.discard((self._epoch, turn_number))

    def remaining(self) -> Optional[int]:
        if self._state is None:
            return None
        return remaining_turn_time(self._state, now=self.clock())

    async def tick(self) -> None:
        state = self._state
        if state is None or state.phase != 'playing':
            return
        remaining = remaining_turn_time(state, now=self.clock())
        if self.on_tick:
            self.on_tick(remaining)
        if remaining > 0:
            return
        key = (self._epoch, state.turnNumber)
        if key in self._fired:
            return
        self._fired.add(key)
        log.info('Turn %d timed out', state.turnNumber)
        await self.on_expired(state.turnNumber)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval)
                try:
                    await self.tick()
                except Exception:
                    log.exception('Turn timer tick failed')
        except asyncio.CancelledError:
            return
