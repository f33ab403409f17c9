"""
Parameter and state structs for the two generator variants.

Updates follow copy-validate-commit: `updated(d)` returns a new, validated
instance and never touches the original, so a rejected dict leaves the
device exactly as it was.
"""

from __future__ import annotations
from dataclasses import dataclass, fields, replace
import math
from typing import Any, Dict, Mapping

from .errors import BadProperty
from .transfer import clamped_linear, gaussian_bump


def _as_float(d: Mapping[str, Any], key: str, default: float) -> float:
    if key not in d:
        return default
    try:
        value = float(d[key])
    except (TypeError, ValueError):
        raise BadProperty(f"{key} must be a number, got {d[key]!r}.")
    if not math.isfinite(value):
        raise BadProperty(f"{key} must be finite, got {value!r}.")
    return value


@dataclass(frozen=True)
class _RateWindow:
    min_rate: float = 1.0  # Hz
    max_rate: float = 10.0  # Hz

    def get(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def updated(self, d: Mapping[str, Any]):
        changes = {f.name: _as_float(d, f.name, getattr(self, f.name)) for f in fields(self)}
        candidate = replace(self, **changes)
        candidate.validate()
        return candidate

    def validate(self) -> None:
        if self.min_rate < 0 or self.max_rate < 0:
            raise BadProperty("The min_rate and max_rate parameters cannot be negative.")
        if self.min_rate > self.max_rate:
            raise BadProperty("min_rate cannot be larger than max_rate.")


@dataclass(frozen=True)
class ClampedLinearParams(_RateWindow):
    min_current: float = 0.0  # nA
    max_current: float = 1.0  # nA

    kind = 'clamped_linear'

    def validate(self) -> None:
        super().validate()
        if self.min_current > self.max_current:
            raise BadProperty("min_current cannot be larger than max_current.")

    def compute_rate(self, current: float) -> float:
        return clamped_linear(current, self.min_current, self.max_current,
                              self.min_rate, self.max_rate)


@dataclass(frozen=True)
class GaussianBumpParams(_RateWindow):
    mean_current: float = 0.0  # nA
    sigma_current: float = 1.0  # nA

    kind = 'gaussian_bump'

    def validate(self) -> None:
        super().validate()
        if not self.sigma_current > 0:
            raise BadProperty("sigma_current must be positive.")

    def compute_rate(self, average_current: float) -> float:
        return gaussian_bump(average_current, self.mean_current, self.sigma_current,
                             self.min_rate, self.max_rate)


@dataclass
class State:
    """Mutable device state. `input_current` is None when the variant does not track it."""
    rate: float = 5.0  # Hz
    input_current: Any = None

    def get(self) -> Dict[str, float]:
        out = {'rate': self.rate}
        if self.input_current is not None:
            out['input_current'] = self.input_current
        return out

    def updated(self, d: Mapping[str, Any]) -> 'State':
        new = replace(self, rate=_as_float(d, 'rate', self.rate))
        if not new.rate >= 0:
            raise BadProperty("rate cannot be negative.")
        if self.input_current is not None:
            new.input_current = _as_float(d, 'input_current', self.input_current)
        elif 'input_current' in d:
            raise BadProperty("input_current is not a state variable of this model.")
        return new
