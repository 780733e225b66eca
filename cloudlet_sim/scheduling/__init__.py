"""Scheduling algorithms and placement policies."""

from .vm_scheduler import VmScheduler, VmSchedulerTimeShared, SharingPolicy
from .cloudlet_scheduler import CloudletScheduler, CloudletSchedulerTimeShared, ResCloudlet
from .allocation import (
    VmAllocationPolicy,
    VmAllocationPolicyFirstFit,
    VmAllocationPolicyLeastLoaded,
    PlacementPolicy,
    create_allocation_policy,
)

__all__ = [
    "VmScheduler",
    "VmSchedulerTimeShared",
    "SharingPolicy",
    "CloudletScheduler",
    "CloudletSchedulerTimeShared",
    "ResCloudlet",
    "VmAllocationPolicy",
    "VmAllocationPolicyFirstFit",
    "VmAllocationPolicyLeastLoaded",
    "PlacementPolicy",
    "create_allocation_policy",
]
