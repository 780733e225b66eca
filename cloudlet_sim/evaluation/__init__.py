"""Evaluation and analysis modules."""

from .metrics import RunSummary, cloudlets_to_frame, host_utilization_frame, summarize_run

__all__ = [
    "RunSummary",
    "cloudlets_to_frame",
    "host_utilization_frame",
    "summarize_run",
]
