"""
Exception classes for the current-driven Poisson generators.

CDPoissonError (base)
├── BadProperty          - invalid parameter/state value (nothing applied)
├── UnknownReceptorType  - connection to a receptor port other than 0
├── NotCalibratedError   - lifecycle hook called out of order
└── UnknownModelError    - unknown device model name
"""

from __future__ import annotations


class CDPoissonError(Exception):
    """Base exception for all cdpoisson errors."""


class BadProperty(CDPoissonError, ValueError):
    """Invalid property value passed to a device.

    Raised before anything is committed, so the device keeps its last
    consistent parameter and state set.
    """


class UnknownReceptorType(CDPoissonError):
    """Connection requested a receptor port the device does not have."""

    def __init__(self, receptor_type: int, model: str):
        self.receptor_type = receptor_type
        self.model = model
        super().__init__(f"Receptor type {receptor_type} is not available in {model}.")


class NotCalibratedError(CDPoissonError, RuntimeError):
    """Device used before init_buffers()/calibrate()."""


class UnknownModelError(CDPoissonError, KeyError):
    """Model name not registered."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ''
