"""VM allocation policies: which host a VM request is placed on."""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from enum import Enum
from loguru import logger

from ..core.errors import ConfigurationError, InsufficientCapacity, ResourceExhausted
from ..core.resources import Host
from ..core.vm import Vm


class PlacementPolicy(Enum):
    """Placement policies for VM allocation."""
    FIRST_FIT = "first_fit"
    LEAST_LOADED = "least_loaded"


class VmAllocationPolicy(ABC):
    """Abstract base class for VM allocation policies."""

    def __init__(self, placement_policy: PlacementPolicy):
        self.placement_policy = placement_policy
        self.hosts: List[Host] = []
        self.vm_table: Dict[str, Host] = {}  # vm uid -> host
        self.datacenter_name = "datacenter"
        logger.info(f"VM allocation policy initialized with {placement_policy.value} placement")

    def bind_hosts(self, hosts: List[Host], datacenter_name: str) -> None:
        """Attach the policy to the datacenter's host pool."""
        if self.hosts and self.hosts != list(hosts):
            raise ConfigurationError(
                f"{self.__class__.__name__} is already bound to another host list"
            )
        self.hosts = list(hosts)
        self.datacenter_name = datacenter_name

    @abstractmethod
    def candidate_hosts(self, vm: Vm) -> List[Host]:
        """Hosts to try for ``vm``, in preference order."""
        pass

    def allocate_host_for_vm(self, vm: Vm) -> Host:
        """Place the VM on the first candidate host that accepts it."""
        if vm.uid in self.vm_table:
            raise ConfigurationError(f"VM {vm.uid} is already placed")

        reasons = []
        for host in self.candidate_hosts(vm):
            reason = host.unsuitability_reason(vm)
            if reason is not None:
                reasons.append(f"host {host.host_id}: {reason}")
                continue
            try:
                host.create_vm(vm)
            except ResourceExhausted as e:
                reasons.append(f"host {host.host_id}: {e}")
                continue
            self.vm_table[vm.uid] = host
            return host

        logger.warning(f"Could not place VM {vm.uid} - no suitable hosts")
        raise InsufficientCapacity(vm.uid, self.datacenter_name, "; ".join(reasons) or None)

    def deallocate_host_for_vm(self, vm: Vm) -> None:
        host = self.vm_table.pop(vm.uid, None)
        if host is not None:
            host.destroy_vm(vm)

    def get_host(self, vm_uid: str) -> Optional[Host]:
        return self.vm_table.get(vm_uid)


class VmAllocationPolicyFirstFit(VmAllocationPolicy):
    """First-fit: the lowest-id host with enough free PEs, RAM, bandwidth and storage."""

    def __init__(self):
        super().__init__(PlacementPolicy.FIRST_FIT)

    def candidate_hosts(self, vm: Vm) -> List[Host]:
        # Sort hosts by ID for deterministic behavior
        return sorted(self.hosts, key=lambda h: h.host_id)


class VmAllocationPolicyLeastLoaded(VmAllocationPolicy):
    """Prefers the host with the most free PEs, ties broken by host id."""

    def __init__(self):
        super().__init__(PlacementPolicy.LEAST_LOADED)

    def candidate_hosts(self, vm: Vm) -> List[Host]:
        return sorted(self.hosts, key=lambda h: (-h.free_pes, h.host_id))


def create_allocation_policy(name: str) -> VmAllocationPolicy:
    """Build an allocation policy from its configuration name."""
    try:
        policy = PlacementPolicy(name)
    except ValueError:
        valid = [p.value for p in PlacementPolicy]
        raise ConfigurationError(f"Unknown allocation policy: {name!r}. Must be one of {valid}")

    if policy == PlacementPolicy.LEAST_LOADED:
        return VmAllocationPolicyLeastLoaded()
    return VmAllocationPolicyFirstFit()
