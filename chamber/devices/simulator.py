from __future__ import annotations
import math
import random
import time
from dataclasses import dataclass
from threading import Lock


@dataclass
class ChannelPattern:
    baseline: float
    amplitude: float   # daily swing
    noise: float
    lo: float
    hi: float


# Typical oyster-mushroom fruiting conditions
DEFAULT_PATTERNS: dict[str, ChannelPattern] = {
    "temperature": ChannelPattern(baseline=22.0, amplitude=2.0, noise=0.3, lo=-50.0, hi=100.0),
    "humidity": ChannelPattern(baseline=88.0, amplitude=4.0, noise=1.0, lo=0.0, hi=100.0),
    "soilMoisture": ChannelPattern(baseline=65.0, amplitude=3.0, noise=0.5, lo=0.0, hi=100.0),
    "co2": ChannelPattern(baseline=900.0, amplitude=250.0, noise=40.0, lo=0.0, hi=10000.0),
    "light": ChannelPattern(baseline=400.0, amplitude=350.0, noise=20.0, lo=0.0, hi=100000.0),
}


class SimulatedChamberSensor:
    """Stand-in for the ESP32: one sine-with-noise pattern per channel."""

    def __init__(self, sensor_id: str = "esp32-main", period_s: float = 86400.0) -> None:
        self.sensor_id = sensor_id
        self._lock = Lock()
        self._enabled = True
        self._period_s = period_s
        self._patterns = dict(DEFAULT_PATTERNS)

    def enable(self) -> None:
        with self._lock:
            self._enabled = True

    def disable(self) -> None:
        with self._lock:
            self._enabled = False

    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._enabled

    def status(self) -> dict:
        with self._lock:
            return {
                "enabled": self._enabled,
                "sensor_id": self.sensor_id,
                "period_s": self._period_s,
                "patterns": {ch: p.__dict__ for ch, p in self._patterns.items()},
            }

    def read(self) -> dict[str, float]:
        with self._lock:
            if not self._enabled:
                raise RuntimeError("Simulated sensor disabled")
            patterns = dict(self._patterns)
            period = self._period_s

        phase = (time.time() % period) / period * 2.0 * math.pi
        out: dict[str, float] = {}
        for ch, p in patterns.items():
            v = p.baseline + p.amplitude * math.sin(phase)
            if p.noise > 0:
                v += random.uniform(-p.noise, p.noise)
            out[ch] = round(min(p.hi, max(p.lo, v)), 2)
        return out
