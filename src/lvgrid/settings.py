from __future__ import annotations

from pydantic import BaseModel, Field, confloat, model_validator


class SolverSettings(BaseModel):
    """Tunable limits of the calculation core.

    Defaults follow the EN 50160 envelope used for LV design studies.
    """

    normal_limit_percent: confloat(gt=0) = Field(
        8.0, description="Largest |deviation| (%) still classified as normal."
    )
    warning_limit_percent: confloat(gt=0) = Field(
        10.0, description="Largest |deviation| (%) still classified as warning."
    )
    voltage_bound_factor: confloat(gt=1) = Field(
        2.0, description="Node voltages must stay within [0, factor x nominal]."
    )
    neutral_current_floor_A: confloat(ge=0) = Field(
        1e-9, description="Neutral currents below this are reported as zero."
    )
    compensator_min_impedance_ohm: confloat(ge=0) = Field(
        0.15, description="Below this path impedance the neutral compensator is out of its validity domain."
    )

    @model_validator(mode="after")
    def _ordered_limits(self) -> "SolverSettings":
        if self.warning_limit_percent < self.normal_limit_percent:
            raise ValueError("warning_limit_percent must be >= normal_limit_percent")
        return self


DEFAULT_SETTINGS = SolverSettings()
