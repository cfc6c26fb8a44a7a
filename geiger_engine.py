"""
Geiger Meter - Engine
Public surface consumed by the UI: ``set_intensity`` and ``set_enabled``.
Wires the mapper, the click scheduler, the synthesized buffers and the output
graph together and contains every failure, so sound is best effort and the
host UI never sees an exception.
"""

from __future__ import annotations

import copy
from typing import Callable, Optional

import numpy as np

from click_scheduler import ClickEvent, PoissonClickScheduler, SchedulerState
from click_synth import ClickBuffer, NoiseClickSynthesizer, OfflineRenderError, ToneClickSynthesizer
from config import Config, migrate_config
from intensity_mapper import IntensityMapper, clamp_intensity
from logging_utils import log_event
from output_graph import AudioOutputGraph, Bus, UnsupportedPlatformError
from tick_timer import QtTickTimer


class GeigerEngine:
    """
    Radiation-counter click engine.

    Lifecycle: constructed lazily on the first enable (output graph + buffers,
    exactly once), then toggled between IDLE and SCHEDULING by ``set_enabled``,
    and torn down by ``dispose``. Everything runs on the host thread that owns
    the tick timer; only the output graph's callback runs elsewhere.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        graph_factory: Callable[..., AudioOutputGraph] = AudioOutputGraph,
        timer_factory: Callable[[int, Callable[[], None]], QtTickTimer] = QtTickTimer,
        rng: Optional[np.random.Generator] = None,
    ):
        self.config = copy.deepcopy(config) if config is not None else Config()
        migrate_config(self.config, self.config.version)
        self._graph_factory = graph_factory
        self._timer_factory = timer_factory
        self._rng = rng if rng is not None else np.random.default_rng()

        self.mapper = IntensityMapper(self.config.mapper)
        self._intensity = 0.0
        self._enabled = False

        # Constructed on first enable
        self._graph: Optional[AudioOutputGraph] = None
        self._low_knock: Optional[ClickBuffer] = None
        self._high_beep: Optional[ClickBuffer] = None
        self._scheduler: Optional[PoissonClickScheduler] = None
        self._timer: Optional[QtTickTimer] = None
        self._constructed = False
        self._constructing = False
        self._unsupported = False
        self._disposed = False

        # Stats
        self.construction_count = 0
        self.resume_attempts = 0
        self.resume_failures = 0
        self.tick_failures = 0

    # ---------------------------------------------------------------- properties

    @property
    def intensity(self) -> float:
        return self._intensity

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def state(self) -> SchedulerState:
        if self._scheduler is None:
            return SchedulerState.IDLE
        return self._scheduler.state

    @property
    def rate_hz(self) -> float:
        return self.mapper.map_rate(self._intensity)

    @property
    def undertone_level(self) -> float:
        return self.mapper.map_undertone_level(self._intensity)

    @property
    def low_knock_available(self) -> bool:
        return self._low_knock is not None

    @property
    def is_unsupported(self) -> bool:
        return self._unsupported

    @property
    def clicks_scheduled(self) -> int:
        return self._scheduler.events_emitted if self._scheduler is not None else 0

    @property
    def graph(self) -> Optional[AudioOutputGraph]:
        return self._graph

    @property
    def scheduler(self) -> Optional[PoissonClickScheduler]:
        return self._scheduler

    # ---------------------------------------------------------------- public API

    def set_intensity(self, value: float) -> None:
        """Store a new reading (clamped to 0-100) and retarget the undertone gain."""
        self._intensity = clamp_intensity(value)
        if self._graph is not None:
            self._graph.set_undertone_level(self.undertone_level)

    def set_enabled(self, flag: bool) -> None:
        flag = bool(flag)
        if flag == self._enabled or self._unsupported or self._disposed:
            return
        if flag:
            self._enable()
        else:
            self._disable()

    def suspend(self) -> None:
        """Suspend the output device (e.g. host minimised); the next enable resumes it once."""
        if self._graph is None:
            return
        self._disable()
        self._graph.suspend()

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disable()
        if self._graph is not None:
            self._graph.close()
        self._log_session_summary()
        self._disposed = True

    # ---------------------------------------------------------------- lifecycle

    def _enable(self) -> None:
        if not self._ensure_constructed():
            return

        if self._graph.is_suspended:
            self._try_resume()

        self._enabled = True
        self._scheduler.start()
        self._timer.start()
        log_event("INFO", "Engine", "Enabled", intensity=f"{self._intensity:.1f}",
                  rate=f"{self.rate_hz:.2f}Hz")
        self._on_tick()

    def _disable(self) -> None:
        self._enabled = False
        if self._scheduler is not None and self._scheduler.is_scheduling:
            self._scheduler.stop()
            log_event("INFO", "Engine", "Disabled", clicks=self.clicks_scheduled)
        if self._timer is not None:
            self._timer.stop()

    def _try_resume(self) -> None:
        """One resume attempt per enable; a failure is logged, never retried in a loop."""
        self.resume_attempts += 1
        if not self._graph.resume():
            self.resume_failures += 1
            log_event("WARN", "Engine", "Output device still suspended",
                      attempts=self.resume_attempts)

    def _ensure_constructed(self) -> bool:
        """Build graph, buffers, scheduler and timer exactly once."""
        if self._constructed:
            return True
        if self._constructing or self._unsupported:
            return False

        self._constructing = True
        try:
            return self._construct()
        except Exception as e:
            self._unsupported = True
            log_event("ERROR", "Engine", "Construction failed, engine stays idle", error=e)
            return False
        finally:
            self._constructing = False

    def _construct(self) -> bool:
        cfg = self.config
        graph = self._graph_factory(
            cfg.audio,
            undertone_max=cfg.mapper.undertone_max,
            gain_time_constant_s=cfg.mapper.gain_time_constant_s,
        )
        try:
            graph.open()
        except UnsupportedPlatformError as e:
            self._unsupported = True
            log_event("ERROR", "Engine", "Audio output unsupported, engine stays idle", error=e)
            return False

        try:
            self._build_session(graph)
        except Exception:
            self._graph = None
            self._scheduler = None
            self._timer = None
            graph.close()
            raise
        return True

    def _build_session(self, graph: AudioOutputGraph) -> None:
        """Render buffers and wire scheduler + timer onto an opened graph."""
        cfg = self.config
        self.construction_count += 1
        sample_rate = graph.sample_rate

        self._high_beep = ToneClickSynthesizer(sample_rate, cfg.high_beep).render()

        try:
            self._low_knock = NoiseClickSynthesizer(sample_rate, cfg.low_knock, rng=self._rng).render()
        except OfflineRenderError as e:
            self._low_knock = None
            log_event("ERROR", "Engine", "Low knock disabled for this session", error=e)

        graph.set_undertone_level(self.undertone_level)
        self._graph = graph

        self._scheduler = PoissonClickScheduler(
            clock=lambda: graph.current_time,
            rate_source=lambda: self.rate_hz,
            on_click=self._play_click,
            config=cfg.scheduler,
            knock_jitter_cents=cfg.low_knock.jitter_cents,
            beep_jitter_cents=cfg.high_beep.jitter_cents,
            rng=self._rng,
        )
        self._timer = self._timer_factory(cfg.scheduler.tick_interval_ms, self._on_tick)
        self._constructed = True

        log_event("INFO", "Engine", "Constructed", sample_rate=sample_rate,
                  low_knock=self.low_knock_available,
                  high_beep_frames=self._high_beep.frame_count)

    # ---------------------------------------------------------------- scheduling

    def _on_tick(self) -> None:
        if not self._enabled or self._scheduler is None:
            if self._timer is not None:
                self._timer.stop()
            return
        try:
            self._scheduler.tick()
        except Exception as e:
            # Qt slot: nothing may propagate into the event loop
            self.tick_failures += 1
            log_event("ERROR", "Engine", "Tick failed, scheduling disabled",
                      error=e, failures=self.tick_failures)
            self._disable()

    def _play_click(self, event: ClickEvent) -> None:
        graph = self._graph
        graph.trigger(self._low_knock, Bus.MASTER, event.knock_detune_cents, event.at_time)
        graph.trigger(self._high_beep, Bus.UNDERTONE, event.beep_detune_cents, event.at_time)

    def _log_session_summary(self) -> None:
        if not self._constructed:
            return
        graph = self._graph
        log_event(
            "INFO",
            "Engine",
            "Session summary",
            clicks=self.clicks_scheduled,
            low_knock=self.low_knock_available,
            audio_seconds=f"{graph.current_time:.2f}",
            voices_dropped=graph.voices_dropped,
            underflows=graph.underflow_count,
            resume_failures=self.resume_failures,
        )
