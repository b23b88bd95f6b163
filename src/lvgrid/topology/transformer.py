"""
Transformer Model
=================

Models the MV/LV distribution transformer feeding the LV busbar.
Provides its series impedance (from the short-circuit voltage) and
tracks loading.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import logging
import math

logger = logging.getLogger(__name__)


class TransformerRating(Enum):
    """Standard distribution transformer ratings."""
    KVA_160 = "160kVA"
    KVA_250 = "250kVA"
    KVA_400 = "400kVA"
    KVA_630 = "630kVA"

    @property
    def kva(self) -> float:
        return float(self.value.replace("kVA", ""))


@dataclass(frozen=True)
class TransformerConfig:
    """
    MV/LV transformer.

    Attributes:
        nominal_power_kva: Rated apparent power
        nominal_voltage_v: Rated LV line voltage (230 or 400)
        short_circuit_voltage_percent: Ucc (%) on transformer base
        cos_phi: Rated power factor (informational)
        x_over_r: X/R ratio; when omitted the impedance is taken as purely reactive
        rating: Optional catalogue rating
    """
    nominal_power_kva: float
    nominal_voltage_v: float
    short_circuit_voltage_percent: float = 4.0
    cos_phi: float = 0.95
    x_over_r: Optional[float] = None
    rating: Optional[TransformerRating] = None

    def __post_init__(self):
        """Validate transformer parameters."""
        if self.nominal_power_kva <= 0:
            raise ValueError("nominal_power_kva must be positive")
        if self.nominal_voltage_v <= 0:
            raise ValueError("nominal_voltage_v must be positive")
        if self.short_circuit_voltage_percent < 0:
            raise ValueError("short_circuit_voltage_percent must be non-negative")
        if self.x_over_r is not None and self.x_over_r < 0:
            raise ValueError("x_over_r must be non-negative")

    @classmethod
    def from_rating(
        cls,
        rating: TransformerRating,
        nominal_voltage_v: float = 400.0,
        short_circuit_voltage_percent: float = 4.0,
        x_over_r: Optional[float] = None
    ) -> "TransformerConfig":
        """Build a transformer from a catalogue rating."""
        return cls(
            nominal_power_kva=rating.kva,
            nominal_voltage_v=nominal_voltage_v,
            short_circuit_voltage_percent=short_circuit_voltage_percent,
            x_over_r=x_over_r,
            rating=rating,
        )

    @property
    def impedance_ohm(self) -> float:
        """Series impedance per phase: Ucc * U^2 / S."""
        return (
            (self.short_circuit_voltage_percent / 100)
            * self.nominal_voltage_v ** 2
            / (self.nominal_power_kva * 1000)
        )

    @property
    def resistance_ohm(self) -> float:
        """Series resistance per phase."""
        if self.x_over_r is None:
            return 0.0
        return self.impedance_ohm / math.sqrt(1 + self.x_over_r ** 2)

    @property
    def reactance_ohm(self) -> float:
        """Series reactance per phase."""
        if self.x_over_r is None:
            return self.impedance_ohm
        return self.impedance_ohm * self.x_over_r / math.sqrt(1 + self.x_over_r ** 2)

    @property
    def rated_current_a(self) -> float:
        return self.nominal_power_kva * 1000 / (math.sqrt(3) * self.nominal_voltage_v)

    def get_loading(self, s_kva: float) -> dict:
        """
        Loading of the transformer for a given net apparent power.

        Args:
            s_kva: Net apparent power through the transformer (sign ignored)

        Returns:
            Dict with loading percentage and status
        """
        s_abs = abs(s_kva)
        loading_pct = s_abs / self.nominal_power_kva * 100

        if loading_pct <= 80:
            status = "normal"
        elif loading_pct <= 100:
            status = "elevated"
        else:
            status = "overload"

        return {
            "s_kva": s_abs,
            "loading_pct": loading_pct,
            "status": status,
            "margin_kva": self.nominal_power_kva - s_abs,
            "feasible": s_abs <= self.nominal_power_kva,
        }

    def get_copper_losses_kw(self, current_a: float) -> float:
        """Load losses for a balanced line current: 3 * I^2 * R."""
        return 3 * current_a ** 2 * self.resistance_ohm / 1000


@dataclass(frozen=True)
class HTVoltageConfig:
    """
    Measured voltage on the MV (HT) side.

    Used to derive a realistic LV source voltage through the
    transformation ratio.
    """
    nominal_voltage_ht_v: float
    measured_voltage_ht_v: float
    nominal_voltage_bt_v: float

    def source_voltage(self) -> Optional[float]:
        """LV voltage implied by the measured MV voltage, None when unusable."""
        for label, value in (
            ("measured HT", self.measured_voltage_ht_v),
            ("nominal HT", self.nominal_voltage_ht_v),
            ("nominal BT", self.nominal_voltage_bt_v),
        ):
            if not math.isfinite(value) or value <= 0:
                logger.warning("Invalid %s voltage %sV, ignoring HT configuration", label, value)
                return None
        ratio = self.nominal_voltage_bt_v / self.nominal_voltage_ht_v
        return self.measured_voltage_ht_v * ratio
