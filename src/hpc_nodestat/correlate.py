"""Fold running jobs into per-node aggregates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from .ingest import JobRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobInfoOptions:
    """Optional per-job columns appended after "<jobid> <user>"."""
    name: bool = False
    start: bool = False
    end: bool = False
    elapsed: bool = False


@dataclass
class NodeAggregate:
    job_info: List[str] = field(default_factory=list)
    job_count: int = 0
    min_elapsed_s: Optional[int] = None
    partition: Optional[str] = None
    multiple_partitions: bool = False
    multi_node_jobs: int = 0
    has_user: bool = False
    has_group: bool = False

    @property
    def job_text(self) -> str:
        return " ".join(self.job_info)


def format_job_info(job: JobRecord, options: JobInfoOptions = JobInfoOptions()) -> str:
    parts = [job.job_id, job.user]
    if options.name:
        parts.append(job.name)
    if options.start:
        parts.append(job.start_time)
    if options.end:
        parts.append(job.end_time)
    if options.elapsed:
        parts.append(job.elapsed)
    return " ".join(parts)


def add_job(agg: NodeAggregate, job: JobRecord, info: str, user_match: bool, group_match: bool) -> None:
    """Apply one job's contribution to one host's aggregate."""
    agg.job_info.append(info)
    if agg.min_elapsed_s is None or job.elapsed_s < agg.min_elapsed_s:
        agg.min_elapsed_s = job.elapsed_s
    if agg.partition is None:
        agg.partition = job.partition
    elif job.partition != agg.partition:
        agg.multiple_partitions = True
    agg.job_count += 1
    if job.num_nodes > 1:
        agg.multi_node_jobs += 1
    agg.has_user = agg.has_user or user_match
    agg.has_group = agg.has_group or group_match


def build_node_aggregates(
    jobs: Iterable[JobRecord],
    hosts_by_job: Mapping[str, List[str]],
    users: Iterable[str] = (),
    groups: Iterable[str] = (),
    info_options: JobInfoOptions = JobInfoOptions(),
) -> Dict[str, NodeAggregate]:
    """Build hostname -> NodeAggregate from the complete job snapshot.

    ``hosts_by_job`` maps each job id to its expanded host list. ``users``
    and ``groups`` are the selected owners whose presence is marked per node.
    """
    users = set(users)
    groups = set(groups)
    aggregates: Dict[str, NodeAggregate] = {}
    for job in jobs:
        info = format_job_info(job, info_options)
        user_match = job.user in users
        group_match = job.group in groups
        for host in dict.fromkeys(hosts_by_job[job.job_id]):
            agg = aggregates.get(host)
            if agg is None:
                agg = aggregates[host] = NodeAggregate()
            add_job(agg, job, info, user_match, group_match)
    for host, agg in aggregates.items():
        if agg.multiple_partitions:
            logger.debug("Node %s runs jobs from partition %s and others", host, agg.partition)
    logger.debug("Aggregated jobs onto %d nodes", len(aggregates))
    return aggregates
