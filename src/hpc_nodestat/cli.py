#!/usr/bin/env python3
"""Show Slurm node status and flag nodes with unexpected load or memory use."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import Dict, List, Optional, TextIO

from . import __version__
from .config import LOG_DATE_FORMAT, LOG_FORMAT, load_settings
from .correlate import JobInfoOptions, build_node_aggregates
from .errors import NodeStatError, SelectionError
from .health import NodeFlags, evaluate_node
from .ingest import (
    Runner,
    expand_hostlist,
    expand_job_hosts,
    group_exists,
    query_jobs,
    query_nodes,
    run,
    user_exists,
)
from .report import ReportOptions, render
from .selection import (
    FLAGGED_ALL,
    FLAGGED_CRITICAL,
    SelectionOptions,
    check_hosts_known,
    select_nodes,
    split_csv,
    state_set,
    validate_selection,
)

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with appropriate level and format."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


def non_negative_int(val: str) -> int:
    n = int(val)
    if n < 0:
        raise argparse.ArgumentTypeError("must be >= 0")
    return n


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="slurm-node-stats",
        description="Slurm node status with CPU load, memory and job placement flags. "
        "List options accept comma separated values and may be repeated.",
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sel = ap.add_argument_group("Node selection")
    sel.add_argument("-p", "--partition", action="append", help="Only nodes in these partition(s)")
    sel.add_argument("-u", "--user", action="append", help="Only nodes running jobs of these user(s)")
    sel.add_argument("-g", "--group", action="append", help="Only nodes running jobs of these group(s)")
    sel.add_argument("-n", "--nodes", action="append", metavar="HOSTLIST",
                     help="Only these nodes (Slurm host-list expressions such as c[01-04])")
    sel.add_argument("-x", "--exclude-states", action="append", metavar="STATES",
                     help="Hide nodes in these states, e.g. drained,down")
    sel.add_argument("-f", "--flagged", dest="flagged", action="store_const", const=FLAGGED_CRITICAL,
                     help="Only nodes with a critical flag (*)")
    sel.add_argument("-F", "--flagged-all", dest="flagged", action="store_const", const=FLAGGED_ALL,
                     help="Only nodes with a critical (*) or warning (+) flag")
    sel.add_argument("-m", "--free-mem-below", type=non_negative_int, metavar="MB",
                     help="Only nodes with less than MB free memory")
    sel.add_argument("-M", "--free-mem-above", type=non_negative_int, metavar="MB",
                     help="Only nodes with more than MB free memory")
    sel.add_argument("-a", "--all", dest="print_all", action="store_true",
                     help="Print all selected nodes regardless of flags")

    out = ap.add_argument_group("Output")
    out.add_argument("-1", "--unique", dest="unique", action="store_true", default=True,
                     help="One line per node, partitions joined with '+' (default)")
    out.add_argument("-2", "--multi-line", dest="unique", action="store_false",
                     help="One line per node and partition")
    out.add_argument("-G", "--gres", action="store_true", help="Show generic resources per node")
    out.add_argument("-N", "--job-name", action="store_true", help="Show job names")
    out.add_argument("-S", "--start-time", action="store_true", help="Show job start times")
    out.add_argument("-E", "--end-time", action="store_true", help="Show job end times")
    out.add_argument("-T", "--elapsed-time", action="store_true", help="Show job elapsed times")
    out.add_argument("--no-color", action="store_true", help="Disable colored flags")

    cfg = ap.add_argument_group("Configuration")
    cfg.add_argument("--config", metavar="PATH", help="YAML file with thresholds (default: search standard locations)")
    cfg.add_argument("--grace", type=non_negative_int, metavar="SECONDS",
                     help="Do not flag nodes whose newest job is younger than SECONDS")
    cfg.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return ap


def selection_from_args(args: argparse.Namespace) -> SelectionOptions:
    return SelectionOptions(
        users=split_csv(args.user),
        groups=split_csv(args.group),
        partitions=split_csv(args.partition),
        exclude_states=state_set(args.exclude_states),
        flagged=args.flagged,
        free_mem_below=args.free_mem_below,
        free_mem_above=args.free_mem_above,
        print_all=args.print_all,
        unique=args.unique,
    )


def check_directory(opts: SelectionOptions) -> None:
    missing_users = sorted(u for u in opts.users if not user_exists(u))
    if missing_users:
        raise SelectionError(f"unknown user(s): {', '.join(missing_users)}")
    missing_groups = sorted(g for g in opts.groups if not group_exists(g))
    if missing_groups:
        raise SelectionError(f"unknown group(s): {', '.join(missing_groups)}")


def report(args: argparse.Namespace, runner: Optional[Runner] = None, out: Optional[TextIO] = None) -> None:
    """Run the whole snapshot-to-report pipeline; nothing is printed on failure."""
    runner = runner or run
    opts = selection_from_args(args)
    validate_selection(opts)
    settings = load_settings(args.config)
    if args.grace is not None:
        settings = replace(settings, grace_period_s=args.grace).validate()
    check_directory(opts)

    nodes = query_nodes(runner)
    if args.nodes:
        hosts: List[str] = []
        for expr in args.nodes:
            hosts.extend(expand_hostlist(expr, runner))
        check_hosts_known(hosts, nodes)
        opts = replace(opts, hosts=frozenset(hosts))

    jobs = query_jobs(runner)
    hosts_by_job = expand_job_hosts(jobs, runner)
    info_options = JobInfoOptions(
        name=args.job_name, start=args.start_time, end=args.end_time, elapsed=args.elapsed_time,
    )
    aggregates = build_node_aggregates(jobs, hosts_by_job, opts.users, opts.groups, info_options)

    flags: Dict[str, NodeFlags] = {}
    for node in nodes:
        if node.hostname not in flags:
            flags[node.hostname] = evaluate_node(node, aggregates.get(node.hostname), settings)

    selected = select_nodes(nodes, aggregates, flags, opts)
    logger.debug(
        "%d of %d reported rows flagged",
        sum(1 for s in selected if s.flags.is_interesting(opts.include_warnings)),
        len(selected),
    )

    out = out or sys.stdout
    color = not args.no_color and out.isatty()
    render(
        selected,
        ReportOptions(
            gres=args.gres,
            job_name=args.job_name,
            start_time=args.start_time,
            end_time=args.end_time,
            elapsed_time=args.elapsed_time,
            color=color,
        ),
        out,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)
    try:
        report(args)
    except NodeStatError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
