"""
Flash State Machine
===================

Per-device driver for the full-screen flash overlay.  Receives flash
commands from the realtime channel and plays a timed pulse independent
of the server.

State machine overview::

    idle --flash--> fading_in --(fade_ms)--> holding --(duration)-->
        fading_out --(fade_ms)--> idle

    (any non-idle state) --flash--> fading_in   (restart, last command wins)
    (any state) --disable--> idle

Exactly one timer is pending at a time.  Every transition cancels the
current handle before scheduling the next one, and each callback is bound
to the generation it was scheduled in, so a superseded pulse can never
fire a stray transition.

The timer source is anything with ``call_later(delay_seconds, callback)``
returning a handle with ``cancel()``; by default the running asyncio loop.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

# Opacity ramp used for both fade-in and fade-out, in milliseconds.
DEFAULT_FADE_MS: int = 100

# Overlay color used before the first command (FHSU gold).
DEFAULT_COLOR: str = "#FDB913"


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------

class FlashState(str, enum.Enum):
    IDLE = "idle"
    FADING_IN = "fading_in"
    HOLDING = "holding"
    FADING_OUT = "fading_out"


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class FlashOverlay(Protocol):
    """The device's overlay view."""

    def set_color(self, color: str) -> None: ...

    def animate_opacity(self, target: float, duration_ms: int) -> None: ...

    def hide(self) -> None: ...


@dataclass(frozen=True)
class FlashSnapshot:
    """Read-only view of the machine for UI rendering and tests."""

    state: FlashState
    color: str
    duration_ms: int
    generation: int


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

class FlashStateMachine:
    """Drives ``idle -> fading_in -> holding -> fading_out -> idle``."""

    def __init__(
        self,
        overlay: FlashOverlay,
        *,
        scheduler: Optional[Scheduler] = None,
        haptic: Optional[Callable[[], Any]] = None,
        fade_ms: int = DEFAULT_FADE_MS,
        enabled: bool = True,
    ) -> None:
        self._overlay = overlay
        self._scheduler = scheduler
        self._haptic = haptic
        self.fade_ms = fade_ms
        self.enabled = enabled

        self.state = FlashState.IDLE
        self.color = DEFAULT_COLOR
        self.duration_ms = 0
        self._generation = 0
        self._timer: Optional[TimerHandle] = None

    # -- inputs ------------------------------------------------------------

    def flash(self, color: str, duration_ms: int) -> bool:
        """Start (or restart) a pulse.  Returns False when disabled."""
        if not self.enabled:
            logger.debug("Flash ignored, overlay disabled")
            return False

        if self.state is not FlashState.IDLE:
            logger.debug("Flash restarted from %s", self.state.value)
        self._cancel_timer()
        self._generation += 1
        self.color = color
        self.duration_ms = duration_ms

        self._overlay.set_color(color)
        self._pulse_haptic()
        self._enter(FlashState.FADING_IN)
        self._overlay.animate_opacity(1.0, self.fade_ms)
        self._schedule(self.fade_ms, self._on_faded_in)
        return True

    def handle_event(self, event: dict[str, Any]) -> bool:
        """Feed a ``flash`` wire payload (``{color, duration, ...}``)."""
        try:
            color = str(event["color"])
            duration_ms = int(event["duration"])
        except (KeyError, TypeError, ValueError):
            logger.warning("Malformed flash event ignored: %r", event)
            return False
        return self.flash(color, duration_ms)

    def disable(self) -> None:
        """Stop accepting commands and abort any pulse in flight."""
        self.enabled = False
        self.reset()

    def enable(self) -> None:
        self.enabled = True

    def reset(self) -> None:
        """Abort to idle with the overlay hidden."""
        self._cancel_timer()
        self._generation += 1
        if self.state is not FlashState.IDLE:
            self._overlay.hide()
        self._enter(FlashState.IDLE)

    def snapshot(self) -> FlashSnapshot:
        return FlashSnapshot(
            state=self.state,
            color=self.color,
            duration_ms=self.duration_ms,
            generation=self._generation,
        )

    # -- timer callbacks ---------------------------------------------------

    def _on_faded_in(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._timer = None
        self._enter(FlashState.HOLDING)
        self._schedule(self.duration_ms, self._on_hold_done)

    def _on_hold_done(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._timer = None
        self._enter(FlashState.FADING_OUT)
        self._overlay.animate_opacity(0.0, self.fade_ms)
        self._schedule(self.fade_ms, self._on_faded_out)

    def _on_faded_out(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._timer = None
        self._overlay.hide()
        self._enter(FlashState.IDLE)

    # -- helpers -----------------------------------------------------------

    def _enter(self, state: FlashState) -> None:
        self.state = state

    def _schedule(self, delay_ms: int, callback: Callable[[int], None]) -> None:
        scheduler = self._scheduler or asyncio.get_running_loop()
        self._timer = scheduler.call_later(max(delay_ms, 0) / 1000.0, callback, self._generation)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _pulse_haptic(self) -> None:
        # Best effort: unsupported hardware must never block the pulse.
        if self._haptic is None:
            return
        try:
            self._haptic()
        except Exception:
            logger.debug("Haptic feedback unavailable", exc_info=True)
