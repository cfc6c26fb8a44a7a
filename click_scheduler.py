"""
Geiger Meter - Click Scheduler
Turns a click rate into a Poisson stream of trigger times, scheduled a short
lookahead window ahead of the audio clock so host-timer jitter never reaches
the audio output.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np

from config import SchedulerConfig
from logging_utils import log_event


class SchedulerState(Enum):
    IDLE = "idle"
    SCHEDULING = "scheduling"


@dataclass(frozen=True)
class ClickEvent:
    """One scheduled click: both layers fire at ``at_time`` with their own detune."""
    at_time: float
    knock_detune_cents: float
    beep_detune_cents: float


def exponential_interval(rate_hz: float, rng: np.random.Generator) -> float:
    """Draw the gap to the next event of a Poisson process with rate ``rate_hz``.

    Inverse-CDF sampling: interval = -ln(u) / rate with u uniform in (0, 1].
    """
    if not rate_hz > 0:
        raise ValueError(f"rate_hz must be positive, got {rate_hz}")
    u = 1.0 - rng.random()  # (0, 1], keeps log finite
    return -math.log(u) / rate_hz


def _jitter(rng: np.random.Generator, spread_cents: float) -> float:
    return (rng.random() - 0.5) * 2.0 * spread_cents


class PoissonClickScheduler:
    """
    Rolling-lookahead click scheduler.

    ``tick()`` is called periodically by the host timer. Each tick fills the
    window [now, now + lookahead) with click events; the gap after every click
    is drawn from the rate reported by ``rate_source`` at that moment, so
    intensity changes take effect on the very next click.

    The cursor (time of the next click) never moves backwards and is pulled
    forward to the audio clock before use, so a stalled host drops its backlog
    instead of firing it as a burst.
    """

    def __init__(
        self,
        clock: Callable[[], float],
        rate_source: Callable[[], float],
        on_click: Callable[[ClickEvent], None],
        config: Optional[SchedulerConfig] = None,
        knock_jitter_cents: float = 100.0,
        beep_jitter_cents: float = 25.0,
        rng: Optional[np.random.Generator] = None,
    ):
        self.config = config or SchedulerConfig()
        self._clock = clock
        self._rate_source = rate_source
        self._on_click = on_click
        self.knock_jitter_cents = knock_jitter_cents
        self.beep_jitter_cents = beep_jitter_cents
        self._rng = rng if rng is not None else np.random.default_rng()

        self.state = SchedulerState.IDLE
        self._cursor = 0.0
        self.events_emitted = 0

    @property
    def cursor(self) -> float:
        return self._cursor

    @property
    def is_scheduling(self) -> bool:
        return self.state is SchedulerState.SCHEDULING

    def _advance_cursor(self, target: float) -> None:
        if target > self._cursor:
            self._cursor = target

    def start(self) -> None:
        """Enter SCHEDULING with the cursor resynchronised to the audio clock."""
        now = self._clock()
        skipped = now - self._cursor
        self._advance_cursor(now)
        if self.state is not SchedulerState.SCHEDULING:
            self.state = SchedulerState.SCHEDULING
            log_event("DEBUG", "Scheduler", "Started", cursor=f"{self._cursor:.3f}",
                      resynced=f"{max(0.0, skipped):.3f}s")

    def stop(self) -> None:
        """Enter IDLE. Clicks already handed to the output may still sound."""
        if self.state is SchedulerState.SCHEDULING:
            self.state = SchedulerState.IDLE
            log_event("DEBUG", "Scheduler", "Stopped", events=self.events_emitted)

    def tick(self) -> int:
        """Schedule every click that falls inside the lookahead window.

        Returns:
            Number of click events emitted by this tick
        """
        if self.state is not SchedulerState.SCHEDULING:
            return 0

        now = self._clock()
        horizon = now + self.config.lookahead_s
        emitted = 0

        while self._cursor < horizon:
            self._advance_cursor(now)

            self._on_click(ClickEvent(
                at_time=self._cursor,
                knock_detune_cents=_jitter(self._rng, self.knock_jitter_cents),
                beep_detune_cents=_jitter(self._rng, self.beep_jitter_cents),
            ))
            emitted += 1

            rate = self._rate_source()
            self._cursor += exponential_interval(rate, self._rng)

        self.events_emitted += emitted
        return emitted
