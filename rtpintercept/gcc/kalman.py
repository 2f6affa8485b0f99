"""Scalar Kalman filter estimating the one-way delay gradient."""

from __future__ import annotations

import math
from typing import Optional

_CHI = 0.001
_NANOS_PER_MILLI = 1_000_000


def _trunc_div(a: int, b: int) -> int:
    q = abs(a) // b
    return q if a >= 0 else -q


class Kalman:
    """Kalman filter over durations given in integer nanoseconds."""

    def __init__(
        self,
        *,
        estimate: int = 0,
        process_uncertainty: float = 1e-3,
        estimate_error: Optional[float] = None,
        measurement_uncertainty: float = 0.0,
        disable_measurement_uncertainty_updates: bool = False,
    ) -> None:
        self.gain = 0.0
        self.estimate = estimate
        self.process_uncertainty = process_uncertainty
        # estimate_error is given as a standard deviation; only the variance is kept
        self.estimate_error = 0.1 if estimate_error is None else estimate_error * estimate_error
        self.measurement_uncertainty = measurement_uncertainty
        self.disable_measurement_uncertainty_updates = disable_measurement_uncertainty_updates

    def update_estimate(self, measurement: int) -> int:
        """Feed a measurement and return the new estimate."""
        z = measurement - self.estimate
        zms = float(_trunc_div(z, 1000)) / 1000.0

        if not self.disable_measurement_uncertainty_updates:
            alpha = math.pow(1 - _CHI, 30.0 / (1000.0 * 5 * float(_NANOS_PER_MILLI)))
            root3 = 3 * math.sqrt(self.measurement_uncertainty)
            if zms > root3:
                self.measurement_uncertainty = max(
                    alpha * self.measurement_uncertainty + (1 - alpha) * root3 * root3, 1
                )
            self.measurement_uncertainty = max(
                alpha * self.measurement_uncertainty + (1 - alpha) * zms * zms, 1
            )

        estimate_uncertainty = self.estimate_error + self.process_uncertainty
        self.gain = estimate_uncertainty / (estimate_uncertainty + self.measurement_uncertainty)
        self.estimate += int(self.gain * zms * float(_NANOS_PER_MILLI))
        self.estimate_error = (1 - self.gain) * estimate_uncertainty
        return self.estimate