"""Cloudlet schedulers: how a VM's MIPS share is divided among its cloudlets."""

from abc import ABC, abstractmethod
from typing import List, Optional
import math
from loguru import logger

from ..core.cloudlet import Cloudlet

# Relative slack for deciding that a cloudlet has run its full length.
FINISH_TOLERANCE = 1e-9


class ResCloudlet:
    """Execution record of a cloudlet inside a scheduler."""

    def __init__(self, cloudlet: Cloudlet, arrival_time: float):
        self.cloudlet = cloudlet
        self.arrival_time = arrival_time
        self.rate = 0.0
        self.cancel_requested = False


class CloudletScheduler(ABC):
    """Abstract base class for per-VM cloudlet schedulers."""

    def __init__(self):
        self.exec_list: List[ResCloudlet] = []
        self.previous_time = 0.0
        self.capacity = 0.0

    def submit(self, cloudlet: Cloudlet, now: float) -> None:
        """Start executing ``cloudlet``; rates take effect on the next ``apply_capacity``."""
        cloudlet.mark_started(now)
        self.exec_list.append(ResCloudlet(cloudlet, now))
        logger.debug(f"Cloudlet {cloudlet.cloudlet_id} joined VM {cloudlet.vm_id} at {now:.4f}s")

    def running_cloudlets(self) -> List[Cloudlet]:
        return [rc.cloudlet for rc in self.exec_list if not rc.cancel_requested]

    def requested_pes(self) -> int:
        return sum(rc.cloudlet.pes for rc in self.exec_list if not rc.cancel_requested)

    def is_idle(self) -> bool:
        return not self.exec_list

    def cancel(self, cloudlet_id: int) -> Optional[Cloudlet]:
        """Flag a running cloudlet; it leaves at the next update without further progress."""
        for rc in self.exec_list:
            if rc.cloudlet.cloudlet_id == cloudlet_id and not rc.cancel_requested:
                rc.cancel_requested = True
                rc.rate = 0.0
                return rc.cloudlet
        return None

    def fail_all(self, now: float, reason: str) -> List[Cloudlet]:
        """Fail every cloudlet still in the scheduler, e.g. when the VM goes away."""
        failed = []
        for rc in self.exec_list:
            if rc.cancel_requested:
                rc.cloudlet.mark_canceled(now)
            else:
                rc.cloudlet.mark_failed(now, reason)
            failed.append(rc.cloudlet)
        self.exec_list = []
        return failed

    def current_ram_utilization(self, now: float) -> float:
        return min(1.0, sum(c.utilization_ram(now) for c in self.running_cloudlets()))

    def current_bw_utilization(self, now: float) -> float:
        return min(1.0, sum(c.utilization_bw(now) for c in self.running_cloudlets()))

    @abstractmethod
    def update_progress(self, now: float) -> List[Cloudlet]:
        """Accrue progress since the previous update; returns cloudlets that left, in completion order."""
        pass

    @abstractmethod
    def apply_capacity(self, mips: float, now: float) -> float:
        """Set the VM's MIPS share for the next interval; returns the next finish time or inf."""
        pass


class CloudletSchedulerTimeShared(CloudletScheduler):
    """All cloudlets run at once, each getting a slice proportional to its PEs.

    A cloudlet's rate is ``pes / total_pes * vm_share * cpu_utilization(t)``,
    evaluated when the share is applied and held until the next update.
    """

    def update_progress(self, now: float) -> List[Cloudlet]:
        elapsed = now - self.previous_time
        departed: List[Cloudlet] = []
        still_running: List[ResCloudlet] = []

        for rc in self.exec_list:
            cloudlet = rc.cloudlet
            if rc.cancel_requested:
                cloudlet.mark_canceled(now)
                departed.append(cloudlet)
                continue

            if rc.rate <= 0:
                if elapsed > 0:
                    cloudlet.cpu_time += elapsed
                still_running.append(rc)
                continue

            remaining = cloudlet.remaining_length
            progress = rc.rate * max(elapsed, 0.0)
            if progress >= remaining - FINISH_TOLERANCE * cloudlet.length:
                finish_time = min(now, self.previous_time + remaining / rc.rate)
                cloudlet.cpu_time += max(0.0, finish_time - self.previous_time)
                cloudlet.mark_succeeded(finish_time)
                departed.append(cloudlet)
                continue

            if elapsed > 0:
                cloudlet.finished_so_far += progress
                cloudlet.cpu_time += elapsed
            still_running.append(rc)

        self.exec_list = still_running
        self.previous_time = max(self.previous_time, now)
        departed.sort(key=lambda c: c.finish_time)
        return departed

    def apply_capacity(self, mips: float, now: float) -> float:
        self.capacity = mips
        self.previous_time = max(self.previous_time, now)

        total_pes = self.requested_pes()
        next_finish = math.inf
        for rc in self.exec_list:
            if rc.cancel_requested or total_pes == 0:
                rc.rate = 0.0
                continue
            cloudlet = rc.cloudlet
            fraction = cloudlet.pes / total_pes
            rc.rate = fraction * mips * cloudlet.utilization_cpu(now)
            if rc.rate > 0:
                next_finish = min(next_finish, now + cloudlet.remaining_length / rc.rate)
        return next_finish
