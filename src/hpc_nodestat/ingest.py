"""Query sinfo/squeue and parse their output into typed node and job records."""

from __future__ import annotations

import grp
import logging
import pwd
import subprocess
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .errors import SlurmQueryError, SnapshotParseError

logger = logging.getLogger(__name__)

Runner = Callable[[List[str]], str]

# ---------- Scheduler commands ----------
# %N is the node name Slurm keys jobs by; %n would give the NodeHostname
SINFO_NODE_FORMAT = "%N %P %C %O %m %e %T %Z %G"
SQUEUE_JOB_FORMAT = "%T|%A|%u|%g|%N|%S|%e|%M|%P|%D|%j"
SINFO_CMD = ["sinfo", "-N", "-h", "-a", "-o", SINFO_NODE_FORMAT]
SQUEUE_CMD = ["squeue", "-h", "-t", "running", "-o", SQUEUE_JOB_FORMAT]
HOSTNAMES_CMD = ["scontrol", "show", "hostnames"]

NODE_FIELDS = 9
JOB_FIELDS = 11
NOT_AVAILABLE = "N/A"
EMPTY_JOB_NAME = "(null)"
# sinfo appends these to a state when maintenance or a reboot is pending
PENDING_STATE_MARKERS = "$@"


@dataclass(frozen=True)
class NodeRecord:
    hostname: str
    partition: str
    is_default_partition: bool
    cpus_alloc: int
    cpus_total: int
    cpu_load: Optional[float]
    memory_mb: int
    free_mem_mb: Optional[int]
    state: str
    threads_per_core: int
    gres: str


@dataclass(frozen=True)
class JobRecord:
    state: str
    job_id: str
    user: str
    group: str
    nodelist: str
    start_time: str
    end_time: str
    elapsed: str
    elapsed_s: int
    partition: str
    num_nodes: int
    name: str


# ---------- Command execution ----------
def run(cmd: List[str]) -> str:
    """Run a scheduler command and return stdout; any failure is fatal."""
    logger.debug("Running %s", " ".join(cmd))
    try:
        return subprocess.check_output(cmd, text=True, errors="ignore", stderr=subprocess.PIPE)
    except FileNotFoundError as e:
        raise SlurmQueryError(cmd, f"command not found ({e.strerror})") from e
    except subprocess.CalledProcessError as e:
        detail = (e.stderr or "").strip() or f"exit status {e.returncode}"
        raise SlurmQueryError(cmd, detail, returncode=e.returncode) from e


# ---------- Field parsing ----------
def parse_elapsed_to_seconds(val: str) -> int:
    """Parse squeue elapsed times: S, M:S, H:M:S or D-H:M:S."""
    parts = val.strip().split(":")
    try:
        if len(parts) == 1:
            return _non_negative(parts[0])
        if len(parts) == 2:
            return _non_negative(parts[0]) * 60 + _non_negative(parts[1])
        if len(parts) == 3:
            days = 0
            hours_part = parts[0]
            if "-" in hours_part:
                day_part, hours_part = hours_part.split("-", 1)
                days = _non_negative(day_part)
            hours = _non_negative(hours_part)
            return days * 86400 + hours * 3600 + _non_negative(parts[1]) * 60 + _non_negative(parts[2])
    except ValueError:
        pass
    raise SnapshotParseError(f"unparsable elapsed time {val!r}")


def _non_negative(text: str) -> int:
    if not text.isdigit():
        raise ValueError(text)
    return int(text)


def _int_field(name: str, text: str) -> int:
    try:
        return _non_negative(text)
    except ValueError:
        raise SnapshotParseError(f"field {name} is not a non-negative integer: {text!r}") from None


def normalize_state(token: str) -> str:
    """Lower-case a node state and strip pending maintenance/reboot markers."""
    return token.strip().lower().rstrip(PENDING_STATE_MARKERS)


def parse_cpu_counts(field: str) -> Tuple[int, int]:
    """Return (allocated, total) from sinfo's A/I/O/T cpu field."""
    parts = field.split("/")
    if len(parts) != 4:
        raise SnapshotParseError(f"cpu field must be A/I/O/T, got {field!r}")
    return _int_field("cpus_alloc", parts[0]), _int_field("cpus_total", parts[3])


def parse_cpu_load(text: str) -> Optional[float]:
    if text == NOT_AVAILABLE:
        return None
    try:
        load = float(text)
    except ValueError:
        raise SnapshotParseError(f"cpu load is not a number: {text!r}") from None
    if load < 0:
        raise SnapshotParseError(f"cpu load is negative: {text!r}")
    return load


def parse_node_line(line: str) -> NodeRecord:
    parts = line.split()
    if len(parts) != NODE_FIELDS:
        raise SnapshotParseError(f"expected {NODE_FIELDS} node fields, got {len(parts)}: {line!r}")
    hostname, partition, cpus, load, memory, free_mem, state, threads, gres = parts
    cpus_alloc, cpus_total = parse_cpu_counts(cpus)
    return NodeRecord(
        hostname=hostname,
        partition=partition.rstrip("*"),
        is_default_partition=partition.endswith("*"),
        cpus_alloc=cpus_alloc,
        cpus_total=cpus_total,
        cpu_load=parse_cpu_load(load),
        memory_mb=_int_field("memory", memory),
        free_mem_mb=None if free_mem == NOT_AVAILABLE else _int_field("free_mem", free_mem),
        state=normalize_state(state),
        threads_per_core=max(1, _int_field("threads_per_core", threads)),
        gres=gres,
    )


def parse_job_line(line: str) -> JobRecord:
    parts = line.split("|", JOB_FIELDS - 1)
    if len(parts) != JOB_FIELDS:
        raise SnapshotParseError(f"expected {JOB_FIELDS} job fields, got {len(parts)}: {line!r}")
    parts = [p.strip() for p in parts]
    state, job_id, user, group, nodelist, start, end, elapsed, partition, num_nodes, name = parts
    if not job_id or not nodelist:
        raise SnapshotParseError(f"job line without job id or node list: {line!r}")
    return JobRecord(
        state=state,
        job_id=job_id,
        user=user,
        group=group,
        nodelist=nodelist,
        start_time=start,
        end_time=end,
        elapsed=elapsed,
        elapsed_s=parse_elapsed_to_seconds(elapsed),
        partition=partition,
        num_nodes=_int_field("num_nodes", num_nodes),
        name=name or EMPTY_JOB_NAME,
    )


def _parse_lines(text: str, parse: Callable, kind: str) -> List:
    records = []
    for lineno, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line:
            continue
        try:
            records.append(parse(line))
        except SnapshotParseError as e:
            raise SnapshotParseError(f"{kind} snapshot line {lineno}: {e}") from None
    return records


def parse_node_snapshot(text: str) -> List[NodeRecord]:
    return _parse_lines(text, parse_node_line, "node")


def parse_job_snapshot(text: str) -> List[JobRecord]:
    return _parse_lines(text, parse_job_line, "job")


# ---------- Host lists ----------
def is_compressed_hostlist(expr: str) -> bool:
    return "[" in expr or "," in expr


def expand_hostlist(expr: str, runner: Runner = run) -> List[str]:
    """Expand a Slurm host-list expression such as ``c[01-03],gpu1``."""
    if not is_compressed_hostlist(expr):
        return [expr]
    out = runner(HOSTNAMES_CMD + [expr])
    return [line.strip() for line in out.splitlines() if line.strip()]


def expand_job_hosts(jobs: List[JobRecord], runner: Runner = run) -> Dict[str, List[str]]:
    """Map job id to its expanded host list, expanding each distinct expression once."""
    cache: Dict[str, List[str]] = {}
    hosts_by_job: Dict[str, List[str]] = {}
    for job in jobs:
        if job.nodelist not in cache:
            cache[job.nodelist] = expand_hostlist(job.nodelist, runner)
        hosts_by_job[job.job_id] = cache[job.nodelist]
    return hosts_by_job


# ---------- Snapshots ----------
def query_nodes(runner: Runner = run) -> List[NodeRecord]:
    nodes = parse_node_snapshot(runner(SINFO_CMD))
    logger.debug("Node snapshot: %d rows", len(nodes))
    return nodes


def query_jobs(runner: Runner = run) -> List[JobRecord]:
    jobs = parse_job_snapshot(runner(SQUEUE_CMD))
    logger.debug("Job snapshot: %d running jobs", len(jobs))
    return jobs


# ---------- Directory lookups ----------
def user_exists(name: str) -> bool:
    try:
        pwd.getpwnam(name)
    except KeyError:
        return False
    return True


def group_exists(name: str) -> bool:
    try:
        grp.getgrnam(name)
    except KeyError:
        return False
    return True
