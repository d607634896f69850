"""Failure types raised inside a tracking cycle."""

from __future__ import annotations


class SurfaceError(Exception):
    """Base class for sensor and fitting failures."""


class SensorUnavailableError(SurfaceError):
    """A pose or point-cloud lookup returned nothing usable."""


class PlaneFitError(SurfaceError):
    """No surface could be fitted near the requested ray."""


class SensorPermissionError(SurfaceError):
    """The sensing stack refused access (missing permission)."""
