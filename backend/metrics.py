from dataclasses import dataclass, field
from typing import Dict, List, Optional

from config import (
    IDLE_EMISSIONS,
    MOVING_EMISSIONS,
    CHART_POINTS,
    PROJECTION_INTERSECTIONS,
    PROJECTION_SAVING,
    PROJECTION_FALLBACK_G_PER_HOUR,
)


@dataclass
class Metrics:
    idle_rates: Dict[str, float] = field(default_factory=lambda: dict(IDLE_EMISSIONS))
    moving_rates: Dict[str, float] = field(default_factory=lambda: dict(MOVING_EMISSIONS))

    co2: float = 0.0
    fuel: float = 0.0
    nox: float = 0.0
    total_wait_time: float = 0.0
    throughput: int = 0

    # time series for the sparklines (keep it light)
    wait_series: List[float] = field(default_factory=list)
    co2_rate_series: List[float] = field(default_factory=list)
    queue_series: List[int] = field(default_factory=list)

    def record_emissions(self, idle: int, moving: int, dt: float):
        self.co2 += (idle * self.idle_rates["co2"] + moving * self.moving_rates["co2"]) * dt
        self.fuel += (idle * self.idle_rates["fuel"] + moving * self.moving_rates["fuel"]) * dt
        self.nox += (idle * self.idle_rates["nox"] + moving * self.moving_rates["nox"]) * dt

    def record_departures(self, count: int, wait_seconds: float):
        self.throughput += count
        self.total_wait_time += wait_seconds

    def co2_rate(self, idle: int, moving: int) -> float:
        return idle * self.idle_rates["co2"] + moving * self.moving_rates["co2"]

    def record_chart(self, queue: int, idle: int, moving: int):
        self.wait_series.append(round(self.avg_wait(), 1))
        self.co2_rate_series.append(round(self.co2_rate(idle, moving), 1))
        self.queue_series.append(queue)
        for series in (self.wait_series, self.co2_rate_series, self.queue_series):
            del series[:-CHART_POINTS]

    def avg_wait(self) -> float:
        if self.throughput <= 0:
            return 0.0
        return self.total_wait_time / self.throughput

    def reset(self):
        """Zero the accumulators at a measurement-window boundary."""
        self.co2 = 0.0
        self.fuel = 0.0
        self.nox = 0.0
        self.total_wait_time = 0.0
        self.throughput = 0

    def clear_series(self):
        self.wait_series.clear()
        self.co2_rate_series.clear()
        self.queue_series.clear()

    def snapshot(self) -> Dict:
        return {
            "avg_wait": round(self.avg_wait(), 3),
            "co2": round(self.co2, 1),
            "fuel": round(self.fuel, 4),
            "nox": round(self.nox, 2),
            "throughput": self.throughput,
        }

    def series(self) -> Dict[str, List]:
        return {
            "avg_wait": list(self.wait_series),
            "co2_rate": list(self.co2_rate_series),
            "queue": list(self.queue_series),
        }


def scalability_projection(
    co2_g: float,
    elapsed_s: float,
    intersections: int = PROJECTION_INTERSECTIONS,
    saving: Optional[float] = None,
) -> Dict[str, float]:
    """
    CO2 saved if every intersection in a city ran the adaptive controller.

    Uses the measured emission rate when there is one, otherwise a flat
    per-intersection estimate.
    """
    saving = PROJECTION_SAVING if saving is None else saving
    if co2_g > 0:
        hourly_g = co2_g * saving * 3600 / max(1.0, elapsed_s)
    else:
        hourly_g = PROJECTION_FALLBACK_G_PER_HOUR

    return {
        "hourly_kg": round(hourly_g * intersections / 1000, 1),
        "daily_tonnes": round(hourly_g * intersections * 24 / 1_000_000, 1),
    }
