"""
Error Taxonomy
==============

Exceptions raised by the calculation core.

- InvalidTopologyError: the network is not a single-rooted tree
  (fatal, raised before any partial result exists)
- InvalidInputError: a quantity cannot be interpreted (fatal)
- EquipmentMisconfigurationError: equipment cannot be placed
  (non-fatal, the simulation records it and carries on)
- CalculationInvariantError: a computed value violates a physical bound
"""

from typing import Optional


class LvGridError(Exception):
    """Base class for every error raised by lvgrid."""

    def __init__(self, message: str, element_id: Optional[str] = None):
        self.element_id = element_id
        if element_id is not None:
            message = f"{message} [{element_id}]"
        super().__init__(message)


class InvalidTopologyError(LvGridError, ValueError):
    """Cycle, wrong number of sources, or a dangling reference."""


class InvalidInputError(LvGridError, ValueError):
    """Unknown connection type, bad distribution or out-of-range setting."""


class EquipmentMisconfigurationError(LvGridError):
    """Equipment attached to a missing or forbidden node."""


class CalculationInvariantError(LvGridError, ArithmeticError):
    """A result left its physical envelope (negative losses, runaway voltage)."""
