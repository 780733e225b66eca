"""Cloudlet (task) model and its lifecycle."""

from typing import List, Optional
from enum import Enum
from loguru import logger

from .errors import ConfigurationError, InvalidStateTransition
from .utilization import UtilizationModel, UtilizationModelFull


class CloudletStatus(Enum):
    """Cloudlet lifecycle states."""
    CREATED = "created"
    SUBMITTED = "submitted"
    QUEUED = "queued"
    INEXEC = "inexec"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (CloudletStatus.SUCCESS, CloudletStatus.FAILED, CloudletStatus.CANCELED)


_ALLOWED_TRANSITIONS = {
    CloudletStatus.CREATED: {CloudletStatus.SUBMITTED, CloudletStatus.FAILED, CloudletStatus.CANCELED},
    CloudletStatus.SUBMITTED: {
        CloudletStatus.QUEUED, CloudletStatus.INEXEC,
        CloudletStatus.FAILED, CloudletStatus.CANCELED,
    },
    CloudletStatus.QUEUED: {CloudletStatus.INEXEC, CloudletStatus.FAILED, CloudletStatus.CANCELED},
    CloudletStatus.INEXEC: {CloudletStatus.SUCCESS, CloudletStatus.FAILED, CloudletStatus.CANCELED},
}


class Cloudlet:
    """A task of fixed instruction length executed inside a VM."""

    def __init__(
        self,
        cloudlet_id: int,
        length: float,
        pes: int = 1,
        file_size: float = 0.0,
        output_size: float = 0.0,
        utilization_cpu: Optional[UtilizationModel] = None,
        utilization_ram: Optional[UtilizationModel] = None,
        utilization_bw: Optional[UtilizationModel] = None,
        user_id: int = -1,
        required_files: Optional[List[str]] = None,
        submission_delay: float = 0.0,
    ):
        if length <= 0:
            raise ConfigurationError(f"Cloudlet {cloudlet_id} length must be positive, got {length}")
        if pes < 1:
            raise ConfigurationError(f"Cloudlet {cloudlet_id} needs at least one PE, got {pes}")
        if file_size < 0 or output_size < 0:
            raise ConfigurationError(f"Cloudlet {cloudlet_id} file sizes must be non-negative")
        if submission_delay < 0:
            raise ConfigurationError(f"Cloudlet {cloudlet_id} submission delay must be non-negative")

        self.cloudlet_id = cloudlet_id
        self.length = float(length)
        self.pes = pes
        self.file_size = file_size
        self.output_size = output_size
        self.utilization_cpu = utilization_cpu or UtilizationModelFull()
        self.utilization_ram = utilization_ram or UtilizationModelFull()
        self.utilization_bw = utilization_bw or UtilizationModelFull()
        self.user_id = user_id
        self.required_files = list(required_files or [])
        self.submission_delay = submission_delay

        # Execution tracking
        self.status = CloudletStatus.CREATED
        self.vm_id: int = -1
        self.datacenter_id: int = -1
        self.submission_time: Optional[float] = None
        self.exec_start_time: Optional[float] = None
        self.finish_time: Optional[float] = None
        self.cpu_time: float = 0.0
        self.finished_so_far: float = 0.0
        self.processing_cost: float = 0.0
        self.failure_reason: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.status.is_terminal

    @property
    def remaining_length(self) -> float:
        return max(0.0, self.length - self.finished_so_far)

    def set_status(self, status: CloudletStatus) -> None:
        """Move to ``status``; terminal states are final."""
        if self.status.is_terminal:
            raise InvalidStateTransition(
                f"Cloudlet {self.cloudlet_id} is already {self.status.value}"
            )
        if status == self.status:
            return
        if status not in _ALLOWED_TRANSITIONS.get(self.status, set()):
            raise InvalidStateTransition(
                f"Cloudlet {self.cloudlet_id}: {self.status.value} -> {status.value} not allowed"
            )
        self.status = status

    def mark_submitted(self, now: float, datacenter_id: int) -> None:
        self.set_status(CloudletStatus.SUBMITTED)
        self.submission_time = now
        self.datacenter_id = datacenter_id

    def mark_started(self, now: float) -> None:
        self.set_status(CloudletStatus.INEXEC)
        self.exec_start_time = now

    def mark_succeeded(self, finish_time: float) -> None:
        self.set_status(CloudletStatus.SUCCESS)
        self.finished_so_far = self.length
        self.finish_time = finish_time
        logger.info(f"Cloudlet {self.cloudlet_id} finished on VM {self.vm_id} at {finish_time:.4f}s")

    def mark_failed(self, now: float, reason: str) -> None:
        self.set_status(CloudletStatus.FAILED)
        self.finish_time = now
        self.failure_reason = reason
        logger.warning(f"Cloudlet {self.cloudlet_id} failed at {now:.4f}s: {reason}")

    def mark_canceled(self, now: float) -> None:
        self.set_status(CloudletStatus.CANCELED)
        self.finish_time = now
        logger.info(f"Cloudlet {self.cloudlet_id} canceled at {now:.4f}s")

    def __repr__(self) -> str:
        return (f"Cloudlet(id={self.cloudlet_id}, status={self.status.value}, "
                f"vm={self.vm_id}, done={self.finished_so_far:g}/{self.length:g})")
