"""
Event records exchanged between devices and the host.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SpikeEvent:
    """`multiplicity` spikes from `sender` at slice step `lag` (always > 0)."""
    sender: int
    multiplicity: int
    lag: int

    def __post_init__(self):
        if self.multiplicity <= 0:
            raise ValueError("SpikeEvent multiplicity must be positive.")


@dataclass(frozen=True)
class CurrentEvent:
    """Current `current` sent at global step `stamp`, weighted and delayed by the connection."""
    current: float
    weight: float
    stamp: int
    delay_steps: int

    def get_rel_delivery_steps(self, slice_origin: int) -> int:
        return self.stamp + self.delay_steps - slice_origin


@dataclass(frozen=True)
class PendingDraw:
    """Placeholder for a spike count at `lag`, resolved once the slice rate is known."""
    sender: int
    lag: int
