"""Datacenter entity: owns hosts, places VMs and drives cloudlet execution."""

from typing import TYPE_CHECKING, Dict, List, Optional, Tuple
from dataclasses import dataclass, field
import math
from loguru import logger

from .cloudlet import Cloudlet, CloudletStatus
from .engine import SimEntity, SimulationContext
from .errors import ConfigurationError, InsufficientCapacity, InvalidReference
from .events import EventType, SimulationEvent
from .resources import Host
from .storage import Storage
from .vm import Vm

if TYPE_CHECKING:
    from ..scheduling.allocation import VmAllocationPolicy


@dataclass
class DatacenterCharacteristics:
    """Static description of a datacenter and its pricing."""
    architecture: str
    os: str
    vmm: str
    hosts: List[Host] = field(default_factory=list)
    time_zone: float = 0.0
    cost_per_sec: float = 0.0      # per CPU-second
    cost_per_mem: float = 0.0      # per MB of RAM
    cost_per_storage: float = 0.0  # per MB of storage
    cost_per_bw: float = 0.0       # per MB transferred

    def __post_init__(self) -> None:
        if not self.hosts:
            raise ConfigurationError("A datacenter needs at least one host")
        host_ids = [host.host_id for host in self.hosts]
        if len(set(host_ids)) != len(host_ids):
            raise ConfigurationError(f"Duplicate host ids: {host_ids}")
        for name in ("cost_per_sec", "cost_per_mem", "cost_per_storage", "cost_per_bw"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be non-negative")
        if not -12.0 <= self.time_zone <= 14.0:
            raise ConfigurationError(f"Invalid time zone offset: {self.time_zone}")

    @property
    def number_of_hosts(self) -> int:
        return len(self.hosts)

    @property
    def number_of_pes(self) -> int:
        return sum(len(host.pes) for host in self.hosts)

    @property
    def number_of_free_pes(self) -> int:
        return sum(host.free_pes for host in self.hosts)

    @property
    def total_mips(self) -> float:
        return sum(host.total_mips for host in self.hosts)


class Datacenter(SimEntity):
    """Owns a pool of hosts and processes VM and cloudlet lifecycle events."""

    def __init__(
        self,
        context: SimulationContext,
        name: str,
        characteristics: DatacenterCharacteristics,
        allocation_policy: "VmAllocationPolicy",
        storage_list: Optional[List[Storage]] = None,
        scheduling_interval: float = 0.0,
    ):
        if scheduling_interval < 0:
            raise ConfigurationError(f"Scheduling interval must be non-negative, got {scheduling_interval}")

        self.characteristics = characteristics
        self.hosts: Dict[int, Host] = {host.host_id: host for host in characteristics.hosts}
        self.allocation_policy = allocation_policy
        self.storage_list = list(storage_list or [])
        self.scheduling_interval = scheduling_interval

        self.vms: Dict[str, Vm] = {}
        self.pending_transfers: Dict[Tuple[int, int], Cloudlet] = {}
        self.debts: Dict[int, float] = {}
        self._pending_update: Optional[SimulationEvent] = None

        super().__init__(context, name)
        allocation_policy.bind_hosts(characteristics.hosts, name)

        logger.info(f"Datacenter {name} created with {characteristics.number_of_hosts} hosts, "
                    f"{characteristics.number_of_pes} PEs, {characteristics.total_mips:g} MIPS")

    def _setup_event_handlers(self) -> None:
        self.handlers = {
            EventType.RESOURCE_CHARACTERISTICS_REQUEST: self._handle_characteristics_request,
            EventType.VM_CREATE: self._handle_vm_create,
            EventType.VM_DESTROY: self._handle_vm_destroy,
            EventType.CLOUDLET_SUBMIT: self._handle_cloudlet_submit,
            EventType.CLOUDLET_TRANSFER_COMPLETE: self._handle_transfer_complete,
            EventType.CLOUDLET_CANCEL: self._handle_cloudlet_cancel,
            EventType.VM_DATACENTER_EVENT: self._handle_processing_update,
        }

    # ------------------------------------------------------------- handlers

    def _handle_characteristics_request(self, event: SimulationEvent) -> None:
        self.send(event.source, EventType.RESOURCE_CHARACTERISTICS, {
            "datacenter_id": self.id,
            "characteristics": self.characteristics,
        })

    def _handle_vm_create(self, event: SimulationEvent) -> None:
        vm: Vm = event.data["vm"]
        result = {"vm": vm, "datacenter_id": self.id}
        try:
            host = self.allocate_host_for_vm(vm)
            result.update(success=True, host_id=host.host_id)
        except InsufficientCapacity as e:
            result.update(success=False, error=e)

        if event.data.get("ack", True):
            self.send(event.source, EventType.VM_CREATE_ACK, result)

    def _handle_vm_destroy(self, event: SimulationEvent) -> None:
        vm_uid = event.data["vm_uid"]
        vm = self.vms.get(vm_uid)
        if vm is None:
            raise InvalidReference("vm", vm_uid)
        self.destroy_vm(vm)
        if event.data.get("ack", False):
            self.send(event.source, EventType.VM_DESTROY_ACK, {"vm": vm, "success": True})

    def _handle_cloudlet_submit(self, event: SimulationEvent) -> None:
        self.process_cloudlet_submission(event.data["cloudlet"])

    def _handle_transfer_complete(self, event: SimulationEvent) -> None:
        cloudlet: Cloudlet = event.data["cloudlet"]
        if self.pending_transfers.pop((cloudlet.user_id, cloudlet.cloudlet_id), None) is None:
            # Canceled or failed while its files were in flight
            return
        vm = self.vms.get(f"{cloudlet.user_id}-{cloudlet.vm_id}")
        if vm is None:
            self._fail_cloudlet(cloudlet, f"VM {cloudlet.user_id}-{cloudlet.vm_id} no longer exists")
            return
        self._start_cloudlet(cloudlet, vm)

    def _handle_cloudlet_cancel(self, event: SimulationEvent) -> None:
        user_id = event.data.get("user_id", event.source)
        cloudlet_id = event.data["cloudlet_id"]

        pending = self.pending_transfers.pop((user_id, cloudlet_id), None)
        if pending is not None:
            pending.mark_canceled(self.context.now)
            self._return_cloudlet(pending)
            return

        # Progress made up to now still counts
        self._accrue_progress(self.context.now)
        for vm in self.vms.values():
            if vm.user_id == user_id and vm.cloudlet_scheduler.cancel(cloudlet_id) is not None:
                logger.info(f"Cloudlet {cloudlet_id} marked for cancellation on VM {vm.uid}")
                self.update_cloudlet_processing()
                return

        raise InvalidReference("cloudlet", f"{user_id}-{cloudlet_id}")

    def _handle_processing_update(self, event: SimulationEvent) -> None:
        self._pending_update = None
        self.update_cloudlet_processing()

    # ----------------------------------------------------------- operations

    def allocate_host_for_vm(self, vm: Vm) -> Host:
        """Place a VM through the allocation policy; raises InsufficientCapacity."""
        if vm.uid in self.vms:
            raise ConfigurationError(f"VM {vm.uid} already exists in {self.name}")

        host = self.allocation_policy.allocate_host_for_vm(vm)
        self.vms[vm.uid] = vm
        vm.cloudlet_scheduler.previous_time = self.context.now

        cost = self.characteristics.cost_per_mem * vm.ram + self.characteristics.cost_per_storage * vm.size
        self.debts[vm.user_id] = self.debts.get(vm.user_id, 0.0) + cost
        return host

    def process_cloudlet_submission(self, cloudlet: Cloudlet) -> None:
        """Validate the target VM and hand the cloudlet to its scheduler."""
        now = self.context.now
        if cloudlet.is_finished:
            logger.warning(f"Cloudlet {cloudlet.cloudlet_id} is already {cloudlet.status.value}, ignored")
            return

        cloudlet.mark_submitted(now, self.id)
        vm = self.vms.get(f"{cloudlet.user_id}-{cloudlet.vm_id}")
        if vm is None or not vm.created:
            self._fail_cloudlet(cloudlet, str(InvalidReference("vm", f"{cloudlet.user_id}-{cloudlet.vm_id}")))
            return

        transfer_time = self.predict_file_transfer_time(cloudlet)
        if transfer_time > 0:
            cloudlet.set_status(CloudletStatus.QUEUED)
            self.pending_transfers[(cloudlet.user_id, cloudlet.cloudlet_id)] = cloudlet
            self.schedule_self(EventType.CLOUDLET_TRANSFER_COMPLETE, {"cloudlet": cloudlet}, delay=transfer_time)
            logger.debug(f"Cloudlet {cloudlet.cloudlet_id} waits {transfer_time:.4f}s for input files")
            return

        self._start_cloudlet(cloudlet, vm)

    def predict_file_transfer_time(self, cloudlet: Cloudlet) -> float:
        """Time to read the cloudlet's required files from the first storage holding each."""
        total = 0.0
        for file_name in cloudlet.required_files:
            for storage in self.storage_list:
                transfer = storage.transfer_time(file_name)
                if transfer is not None:
                    total += transfer
                    break
            else:
                logger.warning(f"Required file {file_name} of cloudlet {cloudlet.cloudlet_id} not found in storage")
        return total

    def update_cloudlet_processing(self) -> None:
        """Accrue progress everywhere, return finished cloudlets and plan the next update."""
        now = self.context.now
        self._accrue_progress(now)
        self._reshare_and_reschedule(now)

    def destroy_vm(self, vm: Vm) -> None:
        """Fail the VM's remaining cloudlets and give its resources back to the host."""
        now = self.context.now
        self._accrue_progress(now)

        for cloudlet in vm.cloudlet_scheduler.fail_all(now, f"VM {vm.uid} destroyed"):
            self._return_cloudlet(cloudlet)
        for key, cloudlet in list(self.pending_transfers.items()):
            if cloudlet.user_id == vm.user_id and cloudlet.vm_id == vm.vm_id:
                del self.pending_transfers[key]
                self._fail_cloudlet(cloudlet, f"VM {vm.uid} destroyed")

        self.allocation_policy.deallocate_host_for_vm(vm)
        del self.vms[vm.uid]
        logger.info(f"VM {vm.uid} destroyed in {self.name} at {now:.4f}s")
        self._reshare_and_reschedule(now)

    # -------------------------------------------------------------- helpers

    def _start_cloudlet(self, cloudlet: Cloudlet, vm: Vm) -> None:
        now = self.context.now
        self._accrue_progress(now)
        vm.cloudlet_scheduler.submit(cloudlet, now)
        self._reshare_and_reschedule(now)

    def _accrue_progress(self, now: float) -> None:
        finished: List[Cloudlet] = []
        for host_id in sorted(self.hosts):
            finished.extend(self.hosts[host_id].update_vms_processing(now))
        finished.sort(key=lambda c: c.finish_time)
        for cloudlet in finished:
            self._return_cloudlet(cloudlet)

    def _reshare_and_reschedule(self, now: float) -> None:
        next_time = math.inf
        busy = False
        for host_id in sorted(self.hosts):
            host = self.hosts[host_id]
            next_time = min(next_time, host.reallocate_vms(now))
            busy = busy or any(not vm.cloudlet_scheduler.is_idle() for vm in host.vms.values())

        if busy and self.scheduling_interval > 0:
            next_time = min(next_time, now + self.scheduling_interval)

        if self._pending_update is not None:
            self.context.cancel(self._pending_update)
            self._pending_update = None
        if next_time < math.inf:
            self._pending_update = self.schedule_self(
                EventType.VM_DATACENTER_EVENT, delay=max(0.0, next_time - now)
            )

    def _fail_cloudlet(self, cloudlet: Cloudlet, reason: str) -> None:
        cloudlet.mark_failed(self.context.now, reason)
        self._return_cloudlet(cloudlet)

    def _return_cloudlet(self, cloudlet: Cloudlet) -> None:
        chars = self.characteristics
        cloudlet.processing_cost = chars.cost_per_sec * cloudlet.cpu_time
        if cloudlet.status == CloudletStatus.SUCCESS:
            cloudlet.processing_cost += chars.cost_per_bw * (cloudlet.file_size + cloudlet.output_size)
        self.send(cloudlet.user_id, EventType.CLOUDLET_RETURN, {"cloudlet": cloudlet})

    def shutdown(self) -> None:
        running = sum(len(vm.cloudlet_scheduler.running_cloudlets()) for vm in self.vms.values())
        if running or self.pending_transfers:
            logger.warning(f"Datacenter {self.name} stopped with {running} running and "
                           f"{len(self.pending_transfers)} transferring cloudlets")
        logger.info(f"Datacenter {self.name} shut down with {len(self.vms)} VMs still allocated")
