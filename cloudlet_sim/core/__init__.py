"""Core simulation components."""

from .engine import SimulationContext, SimEntity
from .events import SimulationEvent, EventType
from .errors import (
    SimulationError,
    ConfigurationError,
    ResourceExhausted,
    InsufficientCapacity,
    InvalidReference,
    CloudletFailure,
    InvalidStateTransition,
)
from .provisioners import ResourceProvisioner, PeProvisioner
from .utilization import (
    UtilizationModel,
    UtilizationModelFull,
    UtilizationModelNull,
    UtilizationModelConstant,
    UtilizationModelStochastic,
    UtilizationModelTrace,
)
from .cloudlet import Cloudlet, CloudletStatus
from .vm import Vm
from .resources import Pe, Host, HostUtilization
from .storage import Storage
from .datacenter import Datacenter, DatacenterCharacteristics
from .broker import DatacenterBroker, VmFailurePolicy

__all__ = [
    "SimulationContext",
    "SimEntity",
    "SimulationEvent",
    "EventType",
    "SimulationError",
    "ConfigurationError",
    "ResourceExhausted",
    "InsufficientCapacity",
    "InvalidReference",
    "CloudletFailure",
    "InvalidStateTransition",
    "ResourceProvisioner",
    "PeProvisioner",
    "UtilizationModel",
    "UtilizationModelFull",
    "UtilizationModelNull",
    "UtilizationModelConstant",
    "UtilizationModelStochastic",
    "UtilizationModelTrace",
    "Cloudlet",
    "CloudletStatus",
    "Vm",
    "Pe",
    "Host",
    "HostUtilization",
    "Storage",
    "Datacenter",
    "DatacenterCharacteristics",
    "DatacenterBroker",
    "VmFailurePolicy",
]
