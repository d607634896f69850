"""Engine configuration: grid layout, selection and matching thresholds."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

SERVICE_GRID = (0.5, 0.4, 0.6, 0.2, 0.8, 0.0, 1.0)
INTERACTIVE_GRID = (0.5, 0.4, 0.6, 0.2, 0.8)


class MatchPolicy(str, Enum):
    """How the wall tracker compares a saved wall with a new candidate.

    * ``literal`` – a, b, c within the abc threshold and c, again, within
      the d threshold.  The offset ``d`` is never compared.
    * ``offset`` – a, b, c within the abc threshold and d within the d
      threshold.
    """

    LITERAL = "literal"
    OFFSET = "offset"


class EngineConfig(BaseModel):
    """All tunables of the surface detection engine."""

    grid_u: list[float] = Field(default_factory=lambda: list(SERVICE_GRID))
    grid_v: list[float] = Field(default_factory=lambda: list(SERVICE_GRID))
    vertical_threshold: float = Field(0.05, gt=0)
    inlier_epsilon: float = Field(0.001, gt=0)
    abc_match_threshold: float = Field(0.75, gt=0)
    d_match_threshold: float = Field(0.2, gt=0)
    match_policy: MatchPolicy = MatchPolicy.LITERAL
    min_inliers: int = Field(1, ge=0)
    max_workers: int = Field(1, ge=1)

    @field_validator("grid_u", "grid_v")
    @classmethod
    def _unit_range(cls, values: list[float]) -> list[float]:
        if not values:
            raise ValueError("grid must contain at least one coordinate")
        for value in values:
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"grid coordinate {value} outside [0, 1]")
        return values

    @property
    def grid_size(self) -> int:
        return len(self.grid_u) * len(self.grid_v)

    @classmethod
    def service(cls, **overrides) -> EngineConfig:
        """7×7 grid, used by the background distance service."""
        return cls(**overrides)

    @classmethod
    def interactive(cls, **overrides) -> EngineConfig:
        """5×5 grid with a stricter verticality test, used by the interactive view."""
        params = {
            "grid_u": list(INTERACTIVE_GRID),
            "grid_v": list(INTERACTIVE_GRID),
            "vertical_threshold": 0.04,
        }
        params.update(overrides)
        return cls(**params)


PRESETS = {
    "service": EngineConfig.service,
    "interactive": EngineConfig.interactive,
}


def load_config(path: str | Path) -> EngineConfig:
    """Read an :class:`EngineConfig` from a JSON file."""
    return EngineConfig.model_validate_json(Path(path).read_text())
