"""Datacenter broker: submits VMs and cloudlets on behalf of a user and collects results."""

from typing import Dict, List, Optional
from enum import Enum
from loguru import logger

from .cloudlet import Cloudlet, CloudletStatus
from .datacenter import Datacenter, DatacenterCharacteristics
from .engine import SimEntity, SimulationContext
from .errors import ConfigurationError, InsufficientCapacity, InvalidReference
from .events import EventType, SimulationEvent
from .vm import Vm


class VmFailurePolicy(Enum):
    """What happens to cloudlets bound to a VM whose creation failed."""
    REBIND = "rebind"  # one retry: round-robin onto the VMs that were created
    FAIL = "fail"      # mark them failed


class DatacenterBroker(SimEntity):
    """User-facing orchestrator of one simulated user's VMs and cloudlets."""

    def __init__(
        self,
        context: SimulationContext,
        name: str,
        datacenter: Optional[Datacenter] = None,
        vm_failure_policy: VmFailurePolicy = VmFailurePolicy.REBIND,
    ):
        self.datacenter = datacenter
        self.vm_failure_policy = vm_failure_policy

        self.vm_list: Dict[int, Vm] = {}
        self.cloudlet_list: Dict[int, Cloudlet] = {}
        self.vms_created: List[Vm] = []
        self.vms_destroyed: List[Vm] = []
        self.vm_creation_failures: Dict[int, InsufficientCapacity] = {}
        self.cloudlet_received: List[Cloudlet] = []

        self.characteristics: Optional[DatacenterCharacteristics] = None
        self.finished = False
        self._held: List[Cloudlet] = []
        self._requested_vms: List[int] = []
        self._vm_acks = 0
        self._round_robin = 0

        super().__init__(context, name)
        logger.info(f"Broker {name} created with id {self.id}")

    def _setup_event_handlers(self) -> None:
        self.handlers = {
            EventType.RESOURCE_CHARACTERISTICS: self._handle_characteristics,
            EventType.VM_CREATE_ACK: self._handle_vm_create_ack,
            EventType.VM_DESTROY: self._handle_destroy_request,
            EventType.VM_DESTROY_ACK: self._handle_vm_destroy_ack,
            EventType.CLOUDLET_CANCEL: self._handle_cancel_request,
            EventType.CLOUDLET_RETURN: self._handle_cloudlet_return,
        }

    # ------------------------------------------------------------ public API

    def submit_vm_list(self, vms: List[Vm]) -> None:
        """Queue VM creation requests, in order."""
        if self.finished:
            raise ConfigurationError(f"Broker {self.name} has already finished")
        for vm in vms:
            if vm.vm_id in self.vm_list:
                raise ConfigurationError(f"Duplicate VM id {vm.vm_id} in broker {self.name}")
            if vm.user_id not in (-1, self.id):
                raise ConfigurationError(f"VM {vm.vm_id} belongs to user {vm.user_id}, not {self.id}")
            vm.user_id = self.id
            self.vm_list[vm.vm_id] = vm

        logger.info(f"Broker {self.name}: {len(vms)} VMs submitted")
        if self.characteristics is not None:
            self._request_vm_creation()

    submit_guest_list = submit_vm_list

    def submit_cloudlet_list(self, cloudlets: List[Cloudlet]) -> None:
        """Queue cloudlets; each is held until its VM is placed."""
        if self.finished:
            raise ConfigurationError(f"Broker {self.name} has already finished")
        for cloudlet in cloudlets:
            if cloudlet.cloudlet_id in self.cloudlet_list:
                raise ConfigurationError(f"Duplicate cloudlet id {cloudlet.cloudlet_id} in broker {self.name}")
            cloudlet.user_id = self.id
            self.cloudlet_list[cloudlet.cloudlet_id] = cloudlet
            self._held.append(cloudlet)

        logger.info(f"Broker {self.name}: {len(cloudlets)} cloudlets submitted")
        if self._all_vms_acknowledged():
            self._dispatch_held()

    def bind_cloudlet_to_vm(self, cloudlet_id: int, vm_id: int) -> None:
        cloudlet = self.cloudlet_list.get(cloudlet_id)
        if cloudlet is None:
            raise InvalidReference("cloudlet", cloudlet_id)
        if vm_id not in self.vm_list:
            raise InvalidReference("vm", vm_id)
        cloudlet.vm_id = vm_id

    def cancel_cloudlet(self, cloudlet_id: int, delay: float = 0.0) -> None:
        """Request cancellation of a cloudlet ``delay`` seconds from now."""
        if cloudlet_id not in self.cloudlet_list:
            raise InvalidReference("cloudlet", cloudlet_id)
        self.schedule_self(EventType.CLOUDLET_CANCEL, {"cloudlet_id": cloudlet_id}, delay=delay)

    def destroy_vm(self, vm_id: int, delay: float = 0.0) -> None:
        """Request destruction of a VM ``delay`` seconds from now."""
        if vm_id not in self.vm_list:
            raise InvalidReference("vm", vm_id)
        self.schedule_self(EventType.VM_DESTROY, {"vm_id": vm_id}, delay=delay)

    def get_cloudlet_received_list(self) -> List[Cloudlet]:
        """Cloudlets that reached a terminal state, in completion order."""
        return list(self.cloudlet_received)

    def get_vms_created_list(self) -> List[Vm]:
        return list(self.vms_created)

    # -------------------------------------------------------------- lifecycle

    def startup(self) -> None:
        if self.datacenter is None:
            datacenters = self.context.entities_of(Datacenter)
            if not datacenters:
                raise ConfigurationError(f"Broker {self.name} found no datacenter to use")
            self.datacenter = datacenters[0]

        logger.info(f"Broker {self.name} bound to datacenter {self.datacenter.name}")
        self.send(self.datacenter.id, EventType.RESOURCE_CHARACTERISTICS_REQUEST)

    def shutdown(self) -> None:
        outstanding = len(self.cloudlet_list) - len(self.cloudlet_received)
        if outstanding:
            logger.warning(f"Broker {self.name} stopped with {outstanding} cloudlets outstanding")
        logger.info(f"Broker {self.name} received {len(self.cloudlet_received)} cloudlets")

    # --------------------------------------------------------------- handlers

    def _handle_characteristics(self, event: SimulationEvent) -> None:
        self.characteristics = event.data["characteristics"]
        self._request_vm_creation()
        if self._all_vms_acknowledged():
            self._dispatch_held()
            self._check_finished()

    def _handle_vm_create_ack(self, event: SimulationEvent) -> None:
        vm: Vm = event.data["vm"]
        self._vm_acks += 1

        if event.data["success"]:
            self.vms_created.append(vm)
            logger.info(f"Broker {self.name}: VM {vm.vm_id} created on host {event.data['host_id']}")
            self._dispatch_bound_to(vm)
        else:
            error: InsufficientCapacity = event.data["error"]
            self.vm_creation_failures[vm.vm_id] = error
            logger.warning(f"Broker {self.name}: VM {vm.vm_id} creation failed: {error}")

        if self._all_vms_acknowledged():
            logger.info(f"Broker {self.name}: {len(self.vms_created)} of {len(self._requested_vms)} VMs created")
            self._dispatch_held()
            self._check_finished()

    def _handle_destroy_request(self, event: SimulationEvent) -> None:
        vm = self.vm_list[event.data["vm_id"]]
        if not vm.created:
            raise InvalidReference("vm", vm.uid)
        self.send(self.datacenter.id, EventType.VM_DESTROY, {"vm_uid": vm.uid, "ack": True})

    def _handle_vm_destroy_ack(self, event: SimulationEvent) -> None:
        vm: Vm = event.data["vm"]
        self.vms_destroyed.append(vm)
        logger.info(f"Broker {self.name}: VM {vm.vm_id} destroyed")

    def _handle_cancel_request(self, event: SimulationEvent) -> None:
        cloudlet = self.cloudlet_list[event.data["cloudlet_id"]]
        if cloudlet.is_finished:
            logger.warning(f"Cloudlet {cloudlet.cloudlet_id} already {cloudlet.status.value}, cancel ignored")
            return
        if cloudlet.status == CloudletStatus.CREATED:
            # Held, or dispatched but still inside its submission delay
            if cloudlet in self._held:
                self._held.remove(cloudlet)
            cloudlet.mark_canceled(self.context.now)
            self._receive(cloudlet)
            return
        self.send(self.datacenter.id, EventType.CLOUDLET_CANCEL, {
            "cloudlet_id": cloudlet.cloudlet_id,
            "user_id": self.id,
        })

    def _handle_cloudlet_return(self, event: SimulationEvent) -> None:
        self._receive(event.data["cloudlet"])

    # ---------------------------------------------------------------- helpers

    def _request_vm_creation(self) -> None:
        for vm_id, vm in self.vm_list.items():
            if vm_id in self._requested_vms:
                continue
            self._requested_vms.append(vm_id)
            self.send(self.datacenter.id, EventType.VM_CREATE, {"vm": vm, "ack": True})
            logger.debug(f"Broker {self.name}: creation of VM {vm_id} requested")

    def _all_vms_acknowledged(self) -> bool:
        return (
            self.characteristics is not None
            and self._vm_acks == len(self._requested_vms)
            and len(self._requested_vms) == len(self.vm_list)
        )

    def _dispatch_bound_to(self, vm: Vm) -> None:
        for cloudlet in list(self._held):
            if cloudlet.vm_id == vm.vm_id:
                self._dispatch(cloudlet, vm)

    def _dispatch_held(self) -> None:
        created_ids = {vm.vm_id for vm in self.vms_created if vm.created}
        for cloudlet in list(self._held):
            if cloudlet.vm_id in created_ids:
                self._dispatch(cloudlet, self.vm_list[cloudlet.vm_id])
            elif cloudlet.vm_id == -1:
                self._dispatch_round_robin(cloudlet, "no VM was created")
            elif cloudlet.vm_id in self.vm_creation_failures:
                if self.vm_failure_policy == VmFailurePolicy.REBIND:
                    logger.info(f"Broker {self.name}: rebinding cloudlet {cloudlet.cloudlet_id} "
                                f"away from failed VM {cloudlet.vm_id}")
                    self._dispatch_round_robin(cloudlet, f"VM {cloudlet.vm_id} was not created")
                else:
                    self._fail(cloudlet, f"VM {cloudlet.vm_id} was not created")
            else:
                self._fail(cloudlet, str(InvalidReference("vm", cloudlet.vm_id)))

    def _dispatch_round_robin(self, cloudlet: Cloudlet, reason_if_none: str) -> None:
        candidates = [vm for vm in self.vms_created if vm.created]
        if not candidates:
            self._fail(cloudlet, reason_if_none)
            return
        vm = candidates[self._round_robin % len(candidates)]
        self._round_robin += 1
        self._dispatch(cloudlet, vm)

    def _dispatch(self, cloudlet: Cloudlet, vm: Vm) -> None:
        cloudlet.vm_id = vm.vm_id
        self._held.remove(cloudlet)
        self.send(self.datacenter.id, EventType.CLOUDLET_SUBMIT, {"cloudlet": cloudlet},
                  delay=cloudlet.submission_delay)
        logger.debug(f"Broker {self.name}: cloudlet {cloudlet.cloudlet_id} sent to VM {vm.vm_id}")

    def _fail(self, cloudlet: Cloudlet, reason: str) -> None:
        if cloudlet in self._held:
            self._held.remove(cloudlet)
        cloudlet.mark_failed(self.context.now, reason)
        self._receive(cloudlet)

    def _receive(self, cloudlet: Cloudlet) -> None:
        if any(c is cloudlet for c in self.cloudlet_received):
            logger.warning(f"Broker {self.name}: cloudlet {cloudlet.cloudlet_id} returned twice, ignored")
            return
        self.cloudlet_received.append(cloudlet)
        logger.debug(f"Broker {self.name}: cloudlet {cloudlet.cloudlet_id} received "
                     f"({cloudlet.status.value})")
        self._check_finished()

    def _check_finished(self) -> None:
        if self.finished or not self._all_vms_acknowledged():
            return
        if self._held or len(self.cloudlet_received) < len(self.cloudlet_list):
            return

        self.finished = True
        logger.info(f"Broker {self.name}: all {len(self.cloudlet_list)} cloudlets done "
                    f"at {self.context.now:.4f}s, destroying VMs")
        for vm in self.vms_created:
            if vm.created:
                self.send(self.datacenter.id, EventType.VM_DESTROY, {"vm_uid": vm.uid, "ack": True})

        if all(broker.finished for broker in self.context.entities_of(DatacenterBroker)):
            self.context.stop()
