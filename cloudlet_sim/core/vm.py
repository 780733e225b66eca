"""Virtual machine model."""

from typing import TYPE_CHECKING, List, Optional

from .cloudlet import Cloudlet
from .errors import ConfigurationError

if TYPE_CHECKING:
    from .resources import Host
    from ..scheduling.cloudlet_scheduler import CloudletScheduler


class Vm:
    """A VM carved out of a host, running cloudlets through its cloudlet scheduler."""

    def __init__(
        self,
        vm_id: int,
        user_id: int,
        mips: float,
        pes: int,
        ram: float,
        bw: float,
        size: float,
        vmm: str,
        cloudlet_scheduler: "CloudletScheduler",
    ):
        if mips <= 0:
            raise ConfigurationError(f"VM {vm_id} MIPS must be positive, got {mips}")
        if pes < 1:
            raise ConfigurationError(f"VM {vm_id} needs at least one PE, got {pes}")
        if ram < 0 or bw < 0 or size < 0:
            raise ConfigurationError(f"VM {vm_id} RAM, bandwidth and size must be non-negative")

        self.vm_id = vm_id
        self.user_id = user_id
        self.mips = float(mips)
        self.pes = pes
        self.ram = ram
        self.bw = bw
        self.size = size
        self.vmm = vmm
        self.cloudlet_scheduler = cloudlet_scheduler

        self.host: Optional["Host"] = None
        self.created = False
        self.allocated_mips: float = 0.0

    @property
    def uid(self) -> str:
        return f"{self.user_id}-{self.vm_id}"

    @property
    def max_mips(self) -> float:
        """Total MIPS the VM asks for across all of its PEs."""
        return self.mips * self.pes

    def current_demand(self) -> float:
        """MIPS the VM can use right now: one PE worth per busy cloudlet PE."""
        busy_pes = min(self.pes, self.cloudlet_scheduler.requested_pes())
        return self.mips * busy_pes

    def bind_host(self, host: "Host") -> None:
        if self.host is not None and self.host is not host:
            raise ConfigurationError(
                f"VM {self.uid} is already placed on host {self.host.host_id}"
            )
        self.host = host
        self.created = True

    def unbind_host(self) -> None:
        self.host = None
        self.created = False
        self.allocated_mips = 0.0

    def update_processing(self, now: float) -> List[Cloudlet]:
        """Accrue progress of the running cloudlets up to ``now``."""
        return self.cloudlet_scheduler.update_progress(now)

    def apply_allocation(self, mips: float, now: float) -> float:
        """Give the VM its new MIPS share; returns the next cloudlet finish time."""
        self.allocated_mips = mips
        return self.cloudlet_scheduler.apply_capacity(mips, now)

    def current_ram_usage(self, now: float) -> float:
        return self.ram * self.cloudlet_scheduler.current_ram_utilization(now)

    def current_bw_usage(self, now: float) -> float:
        return self.bw * self.cloudlet_scheduler.current_bw_utilization(now)

    def __repr__(self) -> str:
        host = self.host.host_id if self.host is not None else None
        return f"Vm(uid={self.uid}, mips={self.mips:g}x{self.pes}, host={host})"
