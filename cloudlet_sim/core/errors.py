"""Simulation error taxonomy."""

from typing import Any, Optional


class SimulationError(Exception):
    """Base class for every error raised by the simulation engine."""


class ConfigurationError(SimulationError):
    """Malformed characteristics, policies or scenario configuration."""


class ResourceExhausted(SimulationError):
    """A provisioner cannot satisfy a requested allocation."""

    def __init__(self, resource: str, requested: float, available: float):
        self.resource = resource
        self.requested = requested
        self.available = available
        super().__init__(
            f"{resource}: requested {requested:g}, only {available:g} available"
        )


class InsufficientCapacity(SimulationError):
    """No host in the datacenter can accommodate a VM request."""

    def __init__(self, vm_uid: str, datacenter: str, reason: Optional[str] = None):
        self.vm_uid = vm_uid
        self.datacenter = datacenter
        message = f"No host in {datacenter} can accommodate VM {vm_uid}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class InvalidReference(SimulationError):
    """An event or request targets a destroyed or unknown entity."""

    def __init__(self, kind: str, reference: Any):
        self.kind = kind
        self.reference = reference
        super().__init__(f"Unknown or inactive {kind}: {reference}")


class CloudletFailure(SimulationError):
    """A cloudlet cannot complete."""


class InvalidStateTransition(SimulationError):
    """A cloudlet in a terminal state was asked to change state."""
