# Geiger Meter Configuration
# All default values and constants

from dataclasses import dataclass, field, is_dataclass
from typing import Optional

from logging_utils import log_event


CURRENT_CONFIG_VERSION = 1

# Hard ceiling for the undertone bus, whatever the config file says
UNDERTONE_GAIN_CEILING = 0.4


@dataclass
class AudioConfig:
    """Output device and mix bus settings"""
    sample_rate: int = 44100
    block_size: int = 256             # Frames per audio callback
    latency: str = "low"              # Passed straight to sounddevice ('low', 'high' or seconds)
    device_index: Optional[int] = None  # None means use system default output
    master_gain: float = 0.8          # Fixed gain of the master bus
    voice_queue_size: int = 512       # Max pending voices handed to the audio thread


@dataclass
class LowKnockConfig:
    """Filtered-noise "knock" click (primary layer)"""
    duration_s: float = 0.02          # 20 ms of white noise
    center_hz: float = 800.0          # Bandpass centre frequency
    q: float = 1.0                    # Bandpass quality factor
    decay_rate: float = 600.0         # Envelope exp(-decay_rate * t)
    boost: float = 2.5                # Compensates post-filter attenuation
    jitter_cents: float = 100.0       # Per-trigger detune range (+/-)


@dataclass
class HighBeepConfig:
    """Decaying sine "beep" (undertone layer)"""
    duration_s: float = 0.01          # 10 ms
    frequency_hz: float = 3500.0
    decay_rate: float = 1200.0        # Envelope exp(-decay_rate * t)
    jitter_cents: float = 25.0        # Smaller than the knock so it stays tonal


@dataclass
class MapperConfig:
    """Intensity -> click rate / undertone level curves"""
    idle_rate_hz: float = 0.5         # Rate at zero intensity (never fully silent)
    rate_exponent: float = 2.6
    rate_divisor: float = 300.0
    undertone_exponent: float = 1.5
    undertone_max: float = 0.4        # Undertone gain at 100% intensity
    gain_time_constant_s: float = 0.1  # Smoothing of undertone gain changes


@dataclass
class SchedulerConfig:
    """Lookahead click scheduling"""
    lookahead_s: float = 0.1          # Window scheduled ahead of the audio clock
    tick_interval_ms: int = 25        # Host timer period


@dataclass
class TiltConfig:
    """Motion-sensor to intensity mapping"""
    max_tilt_threshold: float = 0.85  # Tilt factor that reads as 100%
    smoothing_factor: float = 0.08    # Per-sample exponential smoothing
    min_total_accel: float = 1.0      # Ignore readings weaker than this (m/s^2)
    publish_delta: float = 0.1        # Smallest change worth publishing


@dataclass
class Config:
    """Master configuration"""
    version: int = CURRENT_CONFIG_VERSION  # Schema version for config files
    audio: AudioConfig = field(default_factory=AudioConfig)
    low_knock: LowKnockConfig = field(default_factory=LowKnockConfig)
    high_beep: HighBeepConfig = field(default_factory=HighBeepConfig)
    mapper: MapperConfig = field(default_factory=MapperConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    tilt: TiltConfig = field(default_factory=TiltConfig)
    log_level: str = "INFO"           # Logging level (DEBUG/INFO/WARNING/ERROR)


def apply_dict_to_dataclass(target, data) -> None:
    """Recursively apply values from a dict onto a dataclass instance.
    Unknown keys are ignored; a scalar never replaces a nested section."""
    if not isinstance(data, dict):
        return

    for key, value in data.items():
        if not hasattr(target, key):
            continue

        current = getattr(target, key)

        if is_dataclass(current):
            if isinstance(value, dict):
                apply_dict_to_dataclass(current, value)
            else:
                log_event("WARN", "Config", "Ignoring non-object value for section", key=key)
            continue

        setattr(target, key, value)


def _clamped_float(value, default: float, low: float, high: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        value = default
    if value != value:  # NaN
        value = default
    return max(low, min(high, value))


def _clamped_int(value, default: int, low: int, high: int) -> int:
    return int(round(_clamped_float(value, default, low, high)))


# (section, field, default, low, high) for every float setting
_FLOAT_RANGES = (
    ('audio', 'master_gain', 0.8, 0.0, 1.0),
    ('low_knock', 'duration_s', 0.02, 0.001, 1.0),
    ('low_knock', 'center_hz', 800.0, 1.0, 20000.0),
    ('low_knock', 'q', 1.0, 0.01, 100.0),
    ('low_knock', 'decay_rate', 600.0, 0.0, 100000.0),
    ('low_knock', 'boost', 2.5, 0.0, 100.0),
    ('low_knock', 'jitter_cents', 100.0, 0.0, 1200.0),
    ('high_beep', 'duration_s', 0.01, 0.001, 1.0),
    ('high_beep', 'frequency_hz', 3500.0, 1.0, 20000.0),
    ('high_beep', 'decay_rate', 1200.0, 0.0, 100000.0),
    ('high_beep', 'jitter_cents', 25.0, 0.0, 1200.0),
    ('mapper', 'idle_rate_hz', 0.5, 0.01, 1000.0),
    ('mapper', 'rate_exponent', 2.6, 0.5, 3.0),
    ('mapper', 'rate_divisor', 300.0, 1.0, 1e9),
    ('mapper', 'undertone_exponent', 1.5, 0.1, 10.0),
    ('mapper', 'undertone_max', 0.4, 0.0, UNDERTONE_GAIN_CEILING),
    ('mapper', 'gain_time_constant_s', 0.1, 1e-3, 10.0),
    ('tilt', 'max_tilt_threshold', 0.85, 0.05, 1.0),
    ('tilt', 'smoothing_factor', 0.08, 0.001, 1.0),
    ('tilt', 'min_total_accel', 1.0, 0.0, 100.0),
    ('tilt', 'publish_delta', 0.1, 0.0, 100.0),
)

_INT_RANGES = (
    ('audio', 'sample_rate', 44100, 8000, 384000),
    ('audio', 'block_size', 256, 0, 8192),
    ('audio', 'voice_queue_size', 512, 1, 100000),
    ('scheduler', 'tick_interval_ms', 25, 1, 1000),
)


def migrate_config(config: Config, loaded_version) -> None:
    """Upgrade older config structures to the current schema, then coerce
    every setting to its type and clamp it into a range the engine can run with."""
    try:
        version = int(loaded_version) if loaded_version is not None else 0
    except (TypeError, ValueError):
        version = 0

    if version < 1:
        if getattr(config.mapper, 'gain_time_constant_s', None) in (None, 0):
            config.mapper.gain_time_constant_s = 0.1

    for section_name, key, default, low, high in _FLOAT_RANGES:
        section = getattr(config, section_name)
        setattr(section, key, _clamped_float(getattr(section, key), default, low, high))

    for section_name, key, default, low, high in _INT_RANGES:
        section = getattr(config, section_name)
        setattr(section, key, _clamped_int(getattr(section, key), default, low, high))

    audio = config.audio
    if audio.device_index is not None:
        try:
            audio.device_index = int(audio.device_index)
        except (TypeError, ValueError):
            log_event("WARN", "Config", "Ignoring invalid device index", value=audio.device_index)
            audio.device_index = None
    if isinstance(audio.latency, bool) or not isinstance(audio.latency, (str, int, float)):
        audio.latency = "low"

    # Lookahead must cover at least one tick or clicks arrive late
    sched = config.scheduler
    min_lookahead = sched.tick_interval_ms / 1000.0
    sched.lookahead_s = _clamped_float(sched.lookahead_s, 0.1, min_lookahead, 2.0)

    if not isinstance(config.log_level, str):
        config.log_level = "INFO"

    config.version = CURRENT_CONFIG_VERSION
