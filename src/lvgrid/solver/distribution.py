"""
Phase Distribution
==================

Splits node loads and productions over phases A/B/C for the
phase-distributed (unbalanced) model.

Two sources for the split:
- a manual percentage distribution per group (loads, productions)
- the imbalance formula: phase A takes (1/3)(1 + d/100), B and C
  share the remainder equally
"""

from typing import Optional, Tuple

import numpy as np

from ..errors import InvalidInputError
from ..topology.network import PhaseDistribution


def imbalance_shares(imbalance_percent: float) -> np.ndarray:
    """Phase shares (fractions summing to 1) for an imbalance percentage."""
    if not (0 <= imbalance_percent <= 100):
        raise InvalidInputError(f"imbalance_percent must be within 0-100%, got {imbalance_percent}")
    share_a = (1 / 3) * (1 + imbalance_percent / 100)
    share_bc = (1 - share_a) / 2
    return np.array([share_a, share_bc, share_bc])


def phase_shares(
    imbalance_percent: float = 0.0,
    manual: Optional[PhaseDistribution] = None
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Shares applied to loads and to productions.

    Args:
        imbalance_percent: Used when no manual distribution is given
        manual: Explicit percentages, take precedence

    Returns:
        (load_shares, production_shares), each an array of 3 fractions
    """
    if manual is not None:
        loads = np.array(manual.loads) / 100
        productions = np.array(manual.productions) / 100
        # Normalize away the tolerated rounding so power is conserved
        return loads / loads.sum(), productions / productions.sum()
    shares = imbalance_shares(imbalance_percent)
    return shares, shares.copy()
