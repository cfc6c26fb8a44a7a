"""
Geiger Meter - Click Synthesis
Pre-renders the two percussive layers played on every detected "event":
a bandpassed noise knock and a short decaying sine beep.
Buffers are rendered once per engine and shared by every trigger.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy import signal

from config import HighBeepConfig, LowKnockConfig
from logging_utils import log_event


class OfflineRenderError(RuntimeError):
    """Raised when a click buffer could not be rendered."""


@dataclass(frozen=True, eq=False)
class ClickBuffer:
    """Immutable mono waveform ready for playback."""
    sample_rate: int
    samples: np.ndarray
    channels: int = 1

    def __post_init__(self):
        samples = np.array(self.samples, dtype=np.float32)
        samples.setflags(write=False)
        object.__setattr__(self, 'samples', samples)

    @property
    def frame_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        return self.frame_count / float(self.sample_rate)


def _time_axis(sample_rate: int, duration_s: float) -> np.ndarray:
    n = int(sample_rate * duration_s)
    return np.arange(n, dtype=np.float64) / sample_rate


def bandpass_coefficients(center_hz: float, q: float, sample_rate: int) -> tuple[np.ndarray, np.ndarray]:
    """
    Biquad bandpass (constant 0 dB peak gain), the same filter Web Audio's
    BiquadFilterNode uses for type='bandpass'.

    Returns:
        (b, a) normalised so a[0] == 1
    """
    if center_hz <= 0 or center_hz >= sample_rate / 2:
        raise ValueError(f"center_hz must be inside (0, {sample_rate / 2}), got {center_hz}")
    if q <= 0:
        raise ValueError(f"q must be positive, got {q}")

    w0 = 2.0 * math.pi * center_hz / sample_rate
    alpha = math.sin(w0) / (2.0 * q)
    b = np.array([alpha, 0.0, -alpha])
    a = np.array([1.0 + alpha, -2.0 * math.cos(w0), 1.0 - alpha])
    return b / a[0], a / a[0]


class NoiseClickSynthesizer:
    """
    Renders the "low knock": white noise -> bandpass -> exponential decay.

    The render is a one-shot offline pass over a short buffer; it runs on the
    control thread at engine construction, never inside the audio callback.
    """

    def __init__(self, sample_rate: int, config: Optional[LowKnockConfig] = None,
                 rng: Optional[np.random.Generator] = None):
        self.sample_rate = int(sample_rate)
        self.config = config or LowKnockConfig()
        self._rng = rng if rng is not None else np.random.default_rng()

    def render(self) -> ClickBuffer:
        cfg = self.config
        try:
            t = _time_axis(self.sample_rate, cfg.duration_s)
            if t.size == 0:
                raise ValueError("knock duration is shorter than one sample")

            noise = self._rng.uniform(-1.0, 1.0, t.size)
            b, a = bandpass_coefficients(cfg.center_hz, cfg.q, self.sample_rate)
            filtered = signal.lfilter(b, a, noise)

            # Envelope after filtering so the filter's ring-up is shaped too
            knock = filtered * np.exp(-cfg.decay_rate * t) * cfg.boost
            if not np.all(np.isfinite(knock)):
                raise ValueError("non-finite samples after filtering")
        except (ValueError, FloatingPointError, np.linalg.LinAlgError) as e:
            raise OfflineRenderError(f"low knock render failed: {e}") from e

        log_event("DEBUG", "ClickSynth", "Rendered low knock",
                  frames=t.size, peak=f"{float(np.max(np.abs(knock))):.3f}")
        return ClickBuffer(self.sample_rate, knock)


class ToneClickSynthesizer:
    """Renders the "high beep": a sine burst with a sharp exponential decay. Deterministic."""

    def __init__(self, sample_rate: int, config: Optional[HighBeepConfig] = None):
        self.sample_rate = int(sample_rate)
        self.config = config or HighBeepConfig()

    def render(self) -> ClickBuffer:
        cfg = self.config
        t = _time_axis(self.sample_rate, cfg.duration_s)
        beep = np.sin(2.0 * np.pi * cfg.frequency_hz * t) * np.exp(-cfg.decay_rate * t)
        return ClickBuffer(self.sample_rate, beep)
