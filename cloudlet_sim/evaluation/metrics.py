"""Run analysis: tabulate cloudlet records and summarize a finished simulation."""

from typing import Any, Dict, List
from dataclasses import dataclass, asdict, field
import numpy as np
import pandas as pd
from loguru import logger

from ..core.broker import DatacenterBroker
from ..core.cloudlet import Cloudlet, CloudletStatus
from ..core.datacenter import Datacenter

CLOUDLET_COLUMNS = [
    "cloudlet_id",
    "status",
    "datacenter_id",
    "vm_id",
    "cpu_time",
    "start_time",
    "finish_time",
    "processing_cost",
]


@dataclass
class RunSummary:
    """Aggregate figures of one simulation run."""

    total_cloudlets: int
    succeeded: int
    failed: int
    canceled: int
    makespan: float
    avg_turnaround: float
    avg_cpu_time: float
    total_processing_cost: float
    vms_created: int
    vms_failed: int
    debts: Dict[int, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def cloudlets_to_frame(cloudlets: List[Cloudlet]) -> pd.DataFrame:
    """One row per cloudlet, in the order given."""
    rows = [
        {
            "cloudlet_id": c.cloudlet_id,
            "status": c.status.value.upper(),
            "datacenter_id": c.datacenter_id,
            "vm_id": c.vm_id,
            "cpu_time": c.cpu_time,
            "start_time": c.exec_start_time,
            "finish_time": c.finish_time,
            "processing_cost": c.processing_cost,
        }
        for c in cloudlets
    ]
    return pd.DataFrame(rows, columns=CLOUDLET_COLUMNS)


def summarize_run(broker: DatacenterBroker, datacenter: Datacenter) -> RunSummary:
    """Summarize what the broker received and what the datacenter charged."""
    received = broker.get_cloudlet_received_list()
    by_status = {status: 0 for status in CloudletStatus}
    for cloudlet in received:
        by_status[cloudlet.status] += 1

    succeeded = [c for c in received if c.status == CloudletStatus.SUCCESS]
    if succeeded:
        finish = np.array([c.finish_time for c in succeeded])
        submitted = np.array([c.submission_time for c in succeeded])
        makespan = float(finish.max())
        avg_turnaround = float(np.mean(finish - submitted))
        avg_cpu_time = float(np.mean([c.cpu_time for c in succeeded]))
    else:
        makespan = avg_turnaround = avg_cpu_time = 0.0

    summary = RunSummary(
        total_cloudlets=len(received),
        succeeded=by_status[CloudletStatus.SUCCESS],
        failed=by_status[CloudletStatus.FAILED],
        canceled=by_status[CloudletStatus.CANCELED],
        makespan=makespan,
        avg_turnaround=avg_turnaround,
        avg_cpu_time=avg_cpu_time,
        total_processing_cost=float(sum(c.processing_cost for c in received)),
        vms_created=len(broker.get_vms_created_list()),
        vms_failed=len(broker.vm_creation_failures),
        debts=dict(datacenter.debts),
    )

    logger.info(f"Run summary: {summary.succeeded}/{summary.total_cloudlets} succeeded, "
                f"makespan {summary.makespan:.4f}s, cost {summary.total_processing_cost:.2f}")
    return summary


def host_utilization_frame(datacenter: Datacenter) -> pd.DataFrame:
    """Current per-host resource usage as a frame indexed by host id."""
    now = datacenter.context.now
    rows = []
    for host_id in sorted(datacenter.hosts):
        host = datacenter.hosts[host_id]
        usage = host.utilization(now)
        rows.append({
            "host_id": host_id,
            "vms": len(host.vms),
            "free_pes": host.free_pes,
            **asdict(usage),
        })
    return pd.DataFrame(rows).set_index("host_id")
