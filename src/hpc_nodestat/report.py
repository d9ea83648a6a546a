"""Render selected nodes as an aligned, optionally colored text table."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence, TextIO, Tuple

from .health import Severity
from .selection import SelectedNode

# ansi shell colors
COLORS = dict(red="31", magenta="35")
SEVERITY_COLORS = {Severity.CRITICAL: COLORS["red"], Severity.WARNING: COLORS["magenta"]}
SEVERITY_MARKERS = {Severity.NONE: "", Severity.WARNING: "+", Severity.CRITICAL: "*"}
# appended to the job list when the node runs jobs from more than one partition
MIXED_PARTITIONS_MARKER = "!"

Cell = Tuple[str, Severity]


@dataclass(frozen=True)
class ReportOptions:
    gres: bool = False
    job_name: bool = False
    start_time: bool = False
    end_time: bool = False
    elapsed_time: bool = False
    color: bool = False


def colorize(text: str, severity: Severity, enabled: bool) -> str:
    code = SEVERITY_COLORS.get(severity)
    if not enabled or not code or not text:
        return text
    return f"\033[1;{code}m{text}\033[0m"


def header_lines(opts: ReportOptions) -> Tuple[List[str], List[str]]:
    """Column titles and the units line below them."""
    titles = ["Hostname", "Partition", "Node", "Num_CPU", "CPUload", "Memsize", "Freemem"]
    units = ["", "", "State", "Use/Tot", "(avg)", "(MB)", "(MB)"]
    if opts.gres:
        titles.append("GRES/node")
        units.append("")
    joblist = ["JobID", "User"]
    if opts.job_name:
        joblist.append("JobName")
    if opts.start_time:
        joblist.append("Start")
    if opts.end_time:
        joblist.append("End")
    if opts.elapsed_time:
        joblist.append("Elapsed")
    titles.append("Joblist")
    units.append(" ".join(joblist) + " ...")
    return titles, units


def fmt_load(load: Optional[float]) -> str:
    return "N/A" if load is None else f"{load:.2f}"


def fmt_mem(mem: Optional[int]) -> str:
    return "N/A" if mem is None else str(mem)


def node_cells(sel: SelectedNode, opts: ReportOptions) -> List[Cell]:
    node = sel.node
    flags = sel.flags
    cells: List[Cell] = [
        (node.hostname, Severity.NONE),
        (sel.partition_label, Severity.NONE),
        (node.state, flags.state),
        (f"{node.cpus_alloc} {node.cpus_total}", Severity.NONE),
        (fmt_load(node.cpu_load), flags.load),
        (str(node.memory_mb), Severity.NONE),
        (fmt_mem(node.free_mem_mb), flags.memory),
    ]
    if opts.gres:
        cells.append((node.gres, Severity.NONE))
    job_text = ""
    if sel.aggregate:
        job_text = sel.aggregate.job_text
        if sel.aggregate.multiple_partitions:
            job_text = f"{job_text} {MIXED_PARTITIONS_MARKER}"
    cells.append((job_text, flags.jobs))
    return cells


def _marked(cell: Cell) -> str:
    text, severity = cell
    marker = SEVERITY_MARKERS[severity]
    if not marker:
        return text
    return f"{text} {marker}" if text else marker


def render(selected: Sequence[SelectedNode], opts: ReportOptions, out: Optional[TextIO] = None) -> None:
    out = out or sys.stdout
    titles, units = header_lines(opts)
    rows = [node_cells(s, opts) for s in selected]
    ncols = len(titles)
    w = [max(len(titles[i]), len(units[i])) for i in range(ncols - 1)]
    for row in rows:
        for i in range(ncols - 1):
            w[i] = max(w[i], len(_marked(row[i])))

    def line(values: Sequence[str], plain: Sequence[str]) -> str:
        padded = [v + " " * (w[i] - len(plain[i])) for i, v in enumerate(values[:-1])]
        return "  ".join(padded + [values[-1]]).rstrip()

    print(line(titles, titles), file=out)
    print(line(units, units), file=out)
    for row in rows:
        plain = [_marked(c) for c in row]
        colored = [colorize(p, c[1], opts.color) for p, c in zip(plain, row)]
        print(line(colored, plain), file=out)
