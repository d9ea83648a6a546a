"""Per-node anomaly flags: state, CPU load, job/core mismatch and free memory."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import AbstractSet, Optional, Tuple

from .config import HealthSettings
from .correlate import NodeAggregate
from .ingest import NodeRecord

logger = logging.getLogger(__name__)

MIXED_STATE = "mixed"
# sinfo suffixes for not responding, powered down, powering up, powering down, etc.
TRANSIENT_STATE_MARKERS = "*~#!%^-+"


class Severity(enum.IntEnum):
    NONE = 0
    WARNING = 1
    CRITICAL = 2


@dataclass(frozen=True)
class NodeFlags:
    state: Severity = Severity.NONE
    load: Severity = Severity.NONE
    jobs: Severity = Severity.NONE
    memory: Severity = Severity.NONE

    def interest(self, include_warnings: bool) -> int:
        """Count flags worth surfacing; warnings count only if requested."""
        count = 0
        for sev in (self.state, self.load, self.jobs, self.memory):
            if sev is Severity.CRITICAL or (include_warnings and sev is Severity.WARNING):
                count += 1
        return count

    def is_interesting(self, include_warnings: bool) -> bool:
        return self.interest(include_warnings) > 0


NO_FLAGS = NodeFlags()


def base_state(state: str) -> str:
    """Drop sinfo's transient suffixes, so ``down*`` reads as ``down``."""
    return state.rstrip(TRANSIENT_STATE_MARKERS)


def state_severity(state: str, problem_states: AbstractSet[str]) -> Severity:
    if state in problem_states or base_state(state) in problem_states:
        return Severity.CRITICAL
    return Severity.NONE


def ideal_load_range(cpus_alloc: int, threads_per_core: int) -> Tuple[float, float]:
    """Normal load interval; with SMT the load may drop to one per physical core."""
    if threads_per_core <= 1:
        return float(cpus_alloc), float(cpus_alloc)
    return cpus_alloc / threads_per_core, float(cpus_alloc)


def load_severity(
    load: Optional[float],
    cpus_alloc: int,
    threads_per_core: int,
    delta_critical: float,
    delta_warning: float,
) -> Severity:
    if load is None:
        return Severity.NONE
    low, high = ideal_load_range(cpus_alloc, threads_per_core)
    if load < low - delta_critical or load > high + delta_critical:
        return Severity.CRITICAL
    if load < low - delta_warning or load > high + delta_warning:
        return Severity.WARNING
    return Severity.NONE


def jobs_severity(job_count: int, cpus_alloc: int, state: str, multi_node_jobs: int) -> Severity:
    if job_count > cpus_alloc:
        return Severity.CRITICAL
    if base_state(state) == MIXED_STATE and multi_node_jobs > 0:
        return Severity.WARNING
    return Severity.NONE


def memory_severity(
    free_mem_mb: Optional[int],
    memory_mb: int,
    crit_fraction: float,
    warn_fraction: float,
) -> Severity:
    if free_mem_mb is None:
        return Severity.NONE
    if free_mem_mb < memory_mb * crit_fraction:
        return Severity.CRITICAL
    if free_mem_mb < memory_mb * warn_fraction:
        return Severity.WARNING
    return Severity.NONE


def in_grace_period(agg: Optional[NodeAggregate], grace_period_s: int) -> bool:
    return agg is not None and agg.min_elapsed_s is not None and agg.min_elapsed_s < grace_period_s


def evaluate_node(
    node: NodeRecord,
    agg: Optional[NodeAggregate],
    settings: HealthSettings,
) -> NodeFlags:
    """Compute the four independent flags for one node.

    A node without an aggregate runs no jobs. A node whose newest job
    started within the grace period is never flagged, since sinfo's load
    average still reflects the time before the job started.
    """
    if in_grace_period(agg, settings.grace_period_s):
        logger.debug("%s: newest job %ss old, within grace period", node.hostname, agg.min_elapsed_s)
        return NO_FLAGS
    job_count = agg.job_count if agg is not None else 0
    multi_node_jobs = agg.multi_node_jobs if agg is not None else 0
    flags = NodeFlags(
        state=state_severity(node.state, settings.problem_states),
        load=load_severity(
            node.cpu_load,
            node.cpus_alloc,
            node.threads_per_core,
            settings.load_delta_critical,
            settings.load_delta_warning,
        ),
        jobs=jobs_severity(job_count, node.cpus_alloc, node.state, multi_node_jobs),
        memory=memory_severity(
            node.free_mem_mb,
            node.memory_mb,
            settings.mem_critical_fraction,
            settings.mem_warning_fraction,
        ),
    )
    if flags != NO_FLAGS:
        logger.debug("%s: %s", node.hostname, flags)
    return flags
