"""VM schedulers: how a host's processing capacity is shared among its VMs."""

from abc import ABC, abstractmethod
from typing import Dict, List, Tuple
from enum import Enum
from loguru import logger

from ..core.errors import ConfigurationError
from ..core.provisioners import CAPACITY_TOLERANCE
from ..core.resources import Pe
from ..core.vm import Vm


class SharingPolicy(Enum):
    """How an oversubscribed host splits its capacity."""
    EQUAL = "equal"                # max-min fair water-filling
    PROPORTIONAL = "proportional"  # scaled to each VM's demand


class VmScheduler(ABC):
    """Abstract base class for per-host VM schedulers."""

    def __init__(self, pes: List[Pe]):
        if not pes:
            raise ConfigurationError("A VM scheduler needs at least one PE")
        self.pes = list(pes)
        self._vms: Dict[str, Vm] = {}
        self._allocated: Dict[str, float] = {}
        self._pe_map: Dict[str, List[Tuple[int, float]]] = {}

    @property
    def total_mips(self) -> float:
        return sum(pe.mips for pe in self.pes)

    @property
    def available_mips(self) -> float:
        return max(0.0, self.total_mips - sum(self._allocated.values()))

    def add_vm(self, vm: Vm) -> None:
        if vm.uid in self._vms:
            raise ConfigurationError(f"VM {vm.uid} is already scheduled on this host")
        self._vms[vm.uid] = vm
        self._allocated[vm.uid] = 0.0
        self._pe_map[vm.uid] = []

    def remove_vm(self, vm: Vm) -> None:
        for pe in self.pes:
            pe.provisioner.release(vm.uid)
        self._vms.pop(vm.uid, None)
        self._allocated.pop(vm.uid, None)
        self._pe_map.pop(vm.uid, None)

    def allocated_mips(self, vm_uid: str) -> float:
        return self._allocated.get(vm_uid, 0.0)

    def pe_map(self, vm_uid: str) -> List[Tuple[int, float]]:
        """(pe_id, mips) pairs backing the VM's current share."""
        return list(self._pe_map.get(vm_uid, []))

    @abstractmethod
    def compute_shares(self, demands: Dict[str, float]) -> Dict[str, float]:
        """Split ``total_mips`` among VMs given their demands (already capped)."""
        pass

    def reallocate(self, demands: Dict[str, float]) -> None:
        """Recompute every VM's share for the next interval."""
        capped = {}
        for uid, vm in self._vms.items():
            capped[uid] = max(0.0, min(demands.get(uid, 0.0), vm.max_mips))

        shares = self.compute_shares(capped)
        self._allocated = {uid: shares.get(uid, 0.0) for uid in self._vms}
        self._map_onto_pes()

        logger.debug(
            "VM shares: " + ", ".join(f"{uid}={mips:.1f}" for uid, mips in self._allocated.items())
        )

    def _map_onto_pes(self) -> None:
        """Back each VM share with PE capacity, filling PEs in order."""
        for pe in self.pes:
            pe.provisioner.release_all()

        pe_iter = iter(self.pes)
        current = next(pe_iter, None)
        for uid in self._vms:
            remaining = self._allocated[uid]
            segments: List[Tuple[int, float]] = []
            while remaining > CAPACITY_TOLERANCE and current is not None:
                take = min(remaining, current.provisioner.available)
                if take > 0:
                    current.provisioner.allocate(uid, current.provisioner.allocated_for(uid) + take)
                    segments.append((current.pe_id, take))
                    remaining -= take
                if current.provisioner.available <= CAPACITY_TOLERANCE:
                    current = next(pe_iter, None)
            self._pe_map[uid] = segments


class VmSchedulerTimeShared(VmScheduler):
    """Time-shares the host's total MIPS among VMs, work-conserving.

    Each VM receives at most what it demands; capacity an idle or
    under-utilising VM leaves unused goes to the others. When the host is
    oversubscribed the split follows ``sharing``.
    """

    def __init__(self, pes: List[Pe], sharing: SharingPolicy = SharingPolicy.EQUAL):
        super().__init__(pes)
        self.sharing = sharing

    def compute_shares(self, demands: Dict[str, float]) -> Dict[str, float]:
        capacity = self.total_mips
        if self.sharing == SharingPolicy.PROPORTIONAL:
            return self._proportional_shares(demands, capacity)
        return self._equal_shares(demands, capacity)

    @staticmethod
    def _equal_shares(demands: Dict[str, float], capacity: float) -> Dict[str, float]:
        shares = {uid: 0.0 for uid in demands}
        pending = [uid for uid, demand in demands.items() if demand > 0]
        remaining = capacity

        while pending:
            fair = remaining / len(pending)
            satisfied = [uid for uid in pending if demands[uid] <= fair]
            if not satisfied:
                for uid in pending:
                    shares[uid] = fair
                break
            for uid in satisfied:
                shares[uid] = demands[uid]
                remaining -= demands[uid]
            pending = [uid for uid in pending if uid not in satisfied]

        return shares

    @staticmethod
    def _proportional_shares(demands: Dict[str, float], capacity: float) -> Dict[str, float]:
        total = sum(demands.values())
        if total <= capacity:
            return dict(demands)
        scale = capacity / total
        return {uid: demand * scale for uid, demand in demands.items()}
