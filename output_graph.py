"""
Geiger Meter - Output Graph
Two-bus mixer feeding a sounddevice output stream:

    knock voices    -> master bus ----------------------> x master_gain -> device
    beep voices     -> undertone bus -> x undertone_gain -^

Voices are one-shot buffers queued from the control thread with a start time
on the audio clock and placed sample-accurately by the audio callback.
"""

from __future__ import annotations

import math
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from click_synth import ClickBuffer
from config import AudioConfig, UNDERTONE_GAIN_CEILING
from logging_utils import log_event


class UnsupportedPlatformError(RuntimeError):
    """Raised when no audio output stream can be constructed."""


class Bus(Enum):
    MASTER = "master"
    UNDERTONE = "undertone"


@dataclass
class _Voice:
    """A queued one-shot playback (audio thread only once dequeued)."""
    samples: np.ndarray
    bus: Bus
    start_frame: int
    cursor: int = 0


def detune_ratio(cents: float) -> float:
    """Playback-rate multiplier for a detune in cents."""
    return 2.0 ** (cents / 1200.0)


def resample_for_detune(samples: np.ndarray, cents: float) -> np.ndarray:
    """Linear-interpolation resample, the same pitch/length change as a
    buffer source playing at ``detune_ratio(cents)``."""
    ratio = detune_ratio(cents)
    if samples.size == 0 or abs(ratio - 1.0) < 1e-9:
        return np.asarray(samples, dtype=np.float32)
    out_len = max(1, int(math.ceil(samples.size / ratio)))
    positions = np.arange(out_len, dtype=np.float64) * ratio
    source = np.arange(samples.size, dtype=np.float64)
    return np.interp(positions, source, samples, right=0.0).astype(np.float32)


def smoothing_coefficient(time_constant_s: float, sample_rate: int) -> float:
    """Per-sample decay factor of an exponential approach with the given time constant."""
    if time_constant_s <= 0:
        return 0.0
    return math.exp(-1.0 / (time_constant_s * sample_rate))


def gain_ramp(start: float, target: float, frames: int, coeff: float) -> np.ndarray:
    """Per-sample gain values approaching ``target`` from ``start``."""
    steps = np.arange(1, frames + 1, dtype=np.float64)
    return (target + (start - target) * np.power(coeff, steps)).astype(np.float32)


class AudioOutputGraph:
    """
    Owns the output stream, the two mix buses and the audio clock.

    Thread model: ``trigger``/``set_undertone_level``/``resume``/``suspend`` run on
    the control thread; ``_audio_callback`` runs on the PortAudio thread. The
    only shared state is the voice queue, the undertone target (a float) and
    the frame counter (written by the callback only).
    """

    def __init__(self, config: Optional[AudioConfig] = None,
                 undertone_max: float = UNDERTONE_GAIN_CEILING,
                 gain_time_constant_s: float = 0.1):
        self.config = config or AudioConfig()
        self.sample_rate = int(self.config.sample_rate)
        self.master_gain = float(self.config.master_gain)
        self.undertone_max = max(0.0, min(UNDERTONE_GAIN_CEILING, float(undertone_max)))

        self._undertone_target = 0.0
        self._undertone_gain = 0.0
        self._gain_coeff = smoothing_coefficient(gain_time_constant_s, self.sample_rate)

        self._voice_queue: queue.Queue[_Voice] = queue.Queue(maxsize=self.config.voice_queue_size)
        self._active_voices: list[_Voice] = []
        self._frames_rendered = 0

        self._stream = None
        self._lock = threading.Lock()  # guards stream start/stop/close

        # Stats
        self.voices_dropped = 0
        self.underflow_count = 0
        self.trigger_failures = 0

    # ---------------------------------------------------------------- lifecycle

    def open(self) -> None:
        """Build the (stopped) output stream.

        Raises:
            UnsupportedPlatformError: sounddevice/PortAudio missing or no usable device
        """
        if self._stream is not None:
            return
        try:
            import sounddevice as sd
            self._stream = sd.OutputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype='float32',
                blocksize=self.config.block_size,
                latency=self.config.latency,
                device=self.config.device_index,
                callback=self._audio_callback,
            )
        except Exception as e:
            # sounddevice raises OSError when PortAudio is missing, PortAudioError for devices
            raise UnsupportedPlatformError(f"audio output unavailable: {e}") from e
        log_event("INFO", "OutputGraph", "Output stream ready",
                  sample_rate=self.sample_rate, block_size=self.config.block_size)

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    @property
    def is_suspended(self) -> bool:
        stream = self._stream
        return stream is None or not stream.active

    def resume(self) -> bool:
        """Start (or restart) the output stream. Returns False on failure."""
        with self._lock:
            if self._stream is None:
                return False
            if self._stream.active:
                return True
            try:
                self._stream.start()
            except Exception as e:
                log_event("ERROR", "OutputGraph", "Resume failed", error=e)
                return False
        log_event("INFO", "OutputGraph", "Output resumed", clock=f"{self.current_time:.3f}")
        return True

    def suspend(self) -> None:
        """Stop the stream; the audio clock pauses with it."""
        with self._lock:
            if self._stream is None or not self._stream.active:
                return
            try:
                self._stream.stop()
            except Exception as e:
                log_event("WARN", "OutputGraph", "Suspend failed", error=e)
                return
        log_event("INFO", "OutputGraph", "Output suspended", clock=f"{self.current_time:.3f}")

    def close(self) -> None:
        with self._lock:
            stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            log_event("WARN", "OutputGraph", "Close failed", error=e)
        log_event("INFO", "OutputGraph", "Output closed")

    # ---------------------------------------------------------------- control

    @property
    def current_time(self) -> float:
        """Audio clock in seconds (frames delivered to the device / sample rate)."""
        return self._frames_rendered / float(self.sample_rate)

    @property
    def undertone_target(self) -> float:
        return self._undertone_target

    @property
    def undertone_gain(self) -> float:
        """Smoothed undertone gain as of the last rendered block."""
        return self._undertone_gain

    def set_undertone_level(self, level: float) -> None:
        self._undertone_target = max(0.0, min(self.undertone_max, float(level)))

    def trigger(self, buffer: Optional[ClickBuffer], bus: Bus, detune_cents: float, at_time: float) -> None:
        """Schedule a one-shot playback of ``buffer`` on ``bus`` at ``at_time`` (audio clock).

        Never raises: failures are logged and the trigger is dropped.
        """
        if buffer is None:
            return
        try:
            samples = resample_for_detune(buffer.samples, detune_cents)
            start_frame = int(round(at_time * self.sample_rate))
            self._voice_queue.put_nowait(_Voice(samples=samples, bus=bus, start_frame=start_frame))
        except queue.Full:
            self.voices_dropped += 1
        except Exception as e:
            self.trigger_failures += 1
            if self.trigger_failures == 1:
                log_event("ERROR", "OutputGraph", "Trigger failed", bus=bus.value, error=e)

    # ---------------------------------------------------------------- audio thread

    def _drain_voice_queue(self) -> None:
        while True:
            try:
                self._active_voices.append(self._voice_queue.get_nowait())
            except queue.Empty:
                break

    def render_block(self, frames: int) -> np.ndarray:
        """Mix the next ``frames`` samples and advance the audio clock."""
        self._drain_voice_queue()

        block_start = self._frames_rendered
        master = np.zeros(frames, dtype=np.float32)
        undertone = np.zeros(frames, dtype=np.float32)

        still_active = []
        for voice in self._active_voices:
            offset = max(voice.start_frame - block_start, 0)
            if offset >= frames:
                still_active.append(voice)
                continue
            n = min(frames - offset, voice.samples.size - voice.cursor)
            target = master if voice.bus is Bus.MASTER else undertone
            target[offset:offset + n] += voice.samples[voice.cursor:voice.cursor + n]
            voice.cursor += n
            if voice.cursor < voice.samples.size:
                still_active.append(voice)
        self._active_voices = still_active

        ramp = gain_ramp(self._undertone_gain, self._undertone_target, frames, self._gain_coeff)
        self._undertone_gain = float(ramp[-1]) if frames else self._undertone_gain

        out = (master + undertone * ramp) * self.master_gain
        np.clip(out, -1.0, 1.0, out=out)

        self._frames_rendered = block_start + frames
        return out

    def _audio_callback(self, outdata, frames, time_info, status) -> None:
        """sounddevice callback - fill the output buffer"""
        if status and status.output_underflow:
            self.underflow_count += 1
        outdata[:, 0] = self.render_block(frames)
