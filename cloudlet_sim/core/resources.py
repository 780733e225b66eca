"""Physical resource models: processing elements and hosts."""

from typing import TYPE_CHECKING, Dict, List, Optional
from dataclasses import dataclass
import math
from loguru import logger

from .cloudlet import Cloudlet
from .errors import ConfigurationError, ResourceExhausted
from .provisioners import PeProvisioner, ResourceProvisioner
from .vm import Vm

if TYPE_CHECKING:
    from ..scheduling.vm_scheduler import VmScheduler


class Pe:
    """A processing element (CPU core) with a fixed MIPS rating."""

    def __init__(self, pe_id: int, mips: float):
        self.pe_id = pe_id
        self.provisioner = PeProvisioner(mips)

    @property
    def mips(self) -> float:
        return self.provisioner.capacity

    def __repr__(self) -> str:
        return f"Pe(id={self.pe_id}, mips={self.mips:g})"


@dataclass
class HostUtilization:
    """Snapshot of a host's resource usage, fractions in [0, 1]."""
    cpu_utilization: float = 0.0
    ram_reserved: float = 0.0
    bw_reserved: float = 0.0
    storage_reserved: float = 0.0
    pes_reserved: float = 0.0
    ram_in_use: float = 0.0
    bw_in_use: float = 0.0


class Host:
    """Physical machine lending PEs, RAM, bandwidth and storage to VMs.

    The host keeps references to the VMs placed on it but does not own them;
    the datacenter creates and destroys VMs.
    """

    def __init__(
        self,
        host_id: int,
        pes: List[Pe],
        ram: float,
        bw: float,
        storage: float,
        vm_scheduler: "VmScheduler",
    ):
        if not pes:
            raise ConfigurationError(f"Host {host_id} needs at least one PE")
        pe_ids = [pe.pe_id for pe in pes]
        if len(set(pe_ids)) != len(pe_ids):
            raise ConfigurationError(f"Host {host_id} has duplicate PE ids: {pe_ids}")

        self.host_id = host_id
        self.pes = list(pes)
        self.ram_provisioner = ResourceProvisioner("ram", ram)
        self.bw_provisioner = ResourceProvisioner("bw", bw)
        self.storage_provisioner = ResourceProvisioner("storage", storage)
        self.vm_scheduler = vm_scheduler
        self.vms: Dict[str, Vm] = {}
        self.reserved_pes = 0

        logger.info(f"Host {host_id} created with {len(self.pes)} PEs, "
                    f"{self.total_mips:g} MIPS, {ram} RAM, {bw} BW, {storage} storage")

    @property
    def total_mips(self) -> float:
        return sum(pe.mips for pe in self.pes)

    @property
    def free_pes(self) -> int:
        return len(self.pes) - self.reserved_pes

    def unsuitability_reason(self, vm: Vm) -> Optional[str]:
        """Why ``vm`` does not fit on this host, or None if it does."""
        if vm.pes > self.free_pes:
            return f"needs {vm.pes} PEs, {self.free_pes} free"
        if not self.ram_provisioner.is_suitable(vm.ram):
            return f"needs {vm.ram} RAM, {self.ram_provisioner.available:g} free"
        if not self.bw_provisioner.is_suitable(vm.bw):
            return f"needs {vm.bw} BW, {self.bw_provisioner.available:g} free"
        if not self.storage_provisioner.is_suitable(vm.size):
            return f"needs {vm.size} storage, {self.storage_provisioner.available:g} free"
        return None

    def is_suitable_for_vm(self, vm: Vm) -> bool:
        """Check if the host can accommodate the VM's PEs, RAM, bandwidth and storage."""
        return self.unsuitability_reason(vm) is None

    def create_vm(self, vm: Vm) -> None:
        """Reserve the VM's resources on this host; all or nothing."""
        if vm.pes > self.free_pes:
            raise ResourceExhausted("pes", vm.pes, self.free_pes)

        reserved: List[ResourceProvisioner] = []
        try:
            for provisioner, amount in (
                (self.ram_provisioner, vm.ram),
                (self.bw_provisioner, vm.bw),
                (self.storage_provisioner, vm.size),
            ):
                provisioner.allocate(vm.uid, amount)
                reserved.append(provisioner)
        except ResourceExhausted:
            for provisioner in reserved:
                provisioner.release(vm.uid)
            raise

        self.reserved_pes += vm.pes
        self.vms[vm.uid] = vm
        self.vm_scheduler.add_vm(vm)
        vm.bind_host(self)
        logger.info(f"VM {vm.uid} placed on host {self.host_id} "
                    f"({vm.pes} PEs x {vm.mips:g} MIPS)")

    def destroy_vm(self, vm: Vm) -> None:
        """Release the VM's resources and forget it."""
        if vm.uid not in self.vms:
            logger.warning(f"VM {vm.uid} is not hosted on host {self.host_id}")
            return

        self.vm_scheduler.remove_vm(vm)
        self.ram_provisioner.release(vm.uid)
        self.bw_provisioner.release(vm.uid)
        self.storage_provisioner.release(vm.uid)
        self.reserved_pes -= vm.pes
        del self.vms[vm.uid]
        vm.unbind_host()
        logger.info(f"VM {vm.uid} removed from host {self.host_id}")

    def update_vms_processing(self, now: float) -> List[Cloudlet]:
        """Accrue progress of every hosted VM up to ``now``; returns finished cloudlets."""
        finished: List[Cloudlet] = []
        for vm in self.vms.values():
            finished.extend(vm.update_processing(now))
        return finished

    def reallocate_vms(self, now: float) -> float:
        """Re-share host capacity by current demand; returns the earliest next finish time."""
        demands = {uid: vm.current_demand() for uid, vm in self.vms.items()}
        self.vm_scheduler.reallocate(demands)

        next_finish = math.inf
        for uid, vm in self.vms.items():
            next_finish = min(next_finish, vm.apply_allocation(self.vm_scheduler.allocated_mips(uid), now))
        return next_finish

    def utilization(self, now: float) -> HostUtilization:
        """Get current resource utilization."""
        usage = HostUtilization()
        total_mips = self.total_mips
        if total_mips > 0:
            usage.cpu_utilization = sum(pe.provisioner.allocated for pe in self.pes) / total_mips
        usage.ram_reserved = self.ram_provisioner.utilization
        usage.bw_reserved = self.bw_provisioner.utilization
        usage.storage_reserved = self.storage_provisioner.utilization
        usage.pes_reserved = self.reserved_pes / len(self.pes)
        if self.ram_provisioner.capacity > 0:
            usage.ram_in_use = sum(vm.current_ram_usage(now) for vm in self.vms.values()) / self.ram_provisioner.capacity
        if self.bw_provisioner.capacity > 0:
            usage.bw_in_use = sum(vm.current_bw_usage(now) for vm in self.vms.values()) / self.bw_provisioner.capacity
        return usage

    def __repr__(self) -> str:
        return f"Host(id={self.host_id}, pes={len(self.pes)}, vms={list(self.vms)})"
