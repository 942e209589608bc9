"""Exception types raised at the engine boundary."""

from __future__ import annotations


class PortsweepError(Exception):
    """Base class for portsweep errors."""


class ScanValidationError(PortsweepError, ValueError):
    """A scan request was rejected before any probing started."""


class ScanNotFoundError(PortsweepError, KeyError):
    """No tracked scan has the requested id."""


class ScanConflictError(PortsweepError):
    """The requested transition is not valid for the scan's current state."""
