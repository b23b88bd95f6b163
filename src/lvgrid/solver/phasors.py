"""
Phasor helpers for three-phase quantities.

Three-phase quantities are numpy complex arrays of shape (3,) in the
order A, B, C.
"""

import numpy as np

# Positive sequence: A at 0°, B at -120°, C at +120°
PHASE_ANGLES = np.deg2rad(np.array([0.0, -120.0, 120.0]))
PHASE_UNIT = np.exp(1j * PHASE_ANGLES)


def polar(magnitude, angle_rad):
    """Complex value(s) from magnitude and angle."""
    return np.asarray(magnitude) * np.exp(1j * np.asarray(angle_rad))


def balanced_set(magnitude: float) -> np.ndarray:
    """Symmetric three-phase set of the given magnitude."""
    return magnitude * PHASE_UNIT


def line_to_line(phase_voltages: np.ndarray) -> np.ndarray:
    """Phase-to-phase phasors AB, BC, CA."""
    return phase_voltages - np.roll(phase_voltages, -1)


def residual(values: np.ndarray) -> complex:
    """Vector sum of the three phases."""
    return complex(np.sum(values))


def spread(magnitudes: np.ndarray) -> float:
    """Difference between the highest and lowest magnitude."""
    return float(np.max(magnitudes) - np.min(magnitudes))
