"""Shared fixtures: canned scheduler output and a fake command runner."""

from typing import Dict, List

import pytest

from hpc_nodestat.ingest import NodeRecord, JobRecord


SINFO_OUTPUT = """\
c01 batch* 4/0/0/4 4.10 64000 30000 allocated 1 (null)
c02 batch* 2/2/0/4 9.50 64000 30000 mixed 1 (null)
c03 batch* 0/4/0/4 0.00 64000 3000 idle 1 (null)
c03 long 0/4/0/4 0.00 64000 3000 idle 1 (null)
g01 gpu 8/8/0/16 11.00 128000 100000 mixed 2 gpu:a100:4
d01 batch* 0/0/4/4 N/A 64000 N/A down* 1 (null)
"""

SQUEUE_OUTPUT = """\
RUNNING|101|alice|physics|c01|2026-10-17T08:00:00|2026-10-18T08:00:00|2:00:00|batch|1|sim
RUNNING|102|bob|chem|c[02,03]|2026-10-17T09:00:00|2026-10-17T21:00:00|1-01:00:00|batch|2|
RUNNING|103|carol|physics|g01|2026-10-17T09:58:00|2026-10-17T21:58:00|2:00|gpu|1|train|v2
"""


class FakeRunner:
    """Stands in for ``ingest.run`` and records every command it is given."""

    def __init__(self, outputs: Dict[str, str], hostnames: Dict[str, List[str]] = None):
        self.outputs = outputs
        self.hostnames = hostnames or {}
        self.calls: List[List[str]] = []

    def __call__(self, cmd: List[str]) -> str:
        self.calls.append(list(cmd))
        if cmd[:3] == ["scontrol", "show", "hostnames"]:
            return "\n".join(self.hostnames[cmd[3]]) + "\n"
        return self.outputs[cmd[0]]


@pytest.fixture
def fake_runner():
    return FakeRunner(
        {"sinfo": SINFO_OUTPUT, "squeue": SQUEUE_OUTPUT},
        {"c[02,03]": ["c02", "c03"], "c[01-03]": ["c01", "c02", "c03"]},
    )


def make_node(**kw) -> NodeRecord:
    values = dict(
        hostname="n01",
        partition="batch",
        is_default_partition=False,
        cpus_alloc=4,
        cpus_total=4,
        cpu_load=4.0,
        memory_mb=1000,
        free_mem_mb=500,
        state="allocated",
        threads_per_core=1,
        gres="(null)",
    )
    values.update(kw)
    return NodeRecord(**values)


def make_job(**kw) -> JobRecord:
    values = dict(
        state="RUNNING",
        job_id="1",
        user="alice",
        group="physics",
        nodelist="n01",
        start_time="2026-10-17T08:00:00",
        end_time="2026-10-17T20:00:00",
        elapsed="1:00:00",
        elapsed_s=3600,
        partition="batch",
        num_nodes=1,
        name="job",
    )
    values.update(kw)
    return JobRecord(**values)
