"""Select which evaluated nodes to report."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence

from .correlate import NodeAggregate
from .errors import ConfigurationError, SelectionError
from .health import NodeFlags, base_state
from .ingest import NodeRecord

logger = logging.getLogger(__name__)

FLAGGED_CRITICAL = "critical"
FLAGGED_ALL = "all"


@dataclass(frozen=True)
class SelectionOptions:
    users: FrozenSet[str] = frozenset()
    groups: FrozenSet[str] = frozenset()
    partitions: FrozenSet[str] = frozenset()
    hosts: FrozenSet[str] = frozenset()
    exclude_states: FrozenSet[str] = frozenset()
    flagged: Optional[str] = None
    free_mem_below: Optional[int] = None
    free_mem_above: Optional[int] = None
    print_all: bool = False
    unique: bool = True

    @property
    def include_warnings(self) -> bool:
        return self.flagged == FLAGGED_ALL

    @property
    def memory_filter_active(self) -> bool:
        return self.free_mem_below is not None or self.free_mem_above is not None


@dataclass
class SelectedNode:
    node: NodeRecord
    partition_label: str
    flags: NodeFlags
    aggregate: Optional[NodeAggregate]


@dataclass
class PartitionMembership:
    partitions: List[str] = field(default_factory=list)
    default_partition: Optional[str] = None


def validate_selection(opts: SelectionOptions) -> None:
    """Reject mutually exclusive filters; runs before any scheduler query."""
    if opts.flagged not in (None, FLAGGED_CRITICAL, FLAGGED_ALL):
        raise ConfigurationError(f"unknown flagged mode {opts.flagged!r}")
    if opts.free_mem_below is not None and opts.free_mem_above is not None:
        raise ConfigurationError("free-memory-below and free-memory-above filters cannot be combined")
    if opts.flagged and opts.memory_filter_active:
        raise ConfigurationError("flagged-only output cannot be combined with a free-memory filter")


def check_hosts_known(hosts: Iterable[str], nodes: Sequence[NodeRecord]) -> None:
    known = {n.hostname for n in nodes}
    missing = sorted(set(hosts) - known)
    if missing:
        raise SelectionError(f"unknown node(s): {', '.join(missing)}")


def node_partitions(nodes: Sequence[NodeRecord]) -> Dict[str, PartitionMembership]:
    """Per host, the distinct partitions in snapshot order and the default one."""
    membership: Dict[str, PartitionMembership] = {}
    for node in nodes:
        m = membership.setdefault(node.hostname, PartitionMembership())
        if node.partition not in m.partitions:
            m.partitions.append(node.partition)
        if node.is_default_partition:
            m.default_partition = node.partition
    return membership


def partition_label(partitions: Sequence[str], default_partition: Optional[str] = None) -> str:
    """Join partitions with '+' and mark the default one with '*'."""
    return "+".join(p + "*" if p == default_partition else p for p in partitions)


def _passes_predicates(node: NodeRecord, agg: Optional[NodeAggregate], opts: SelectionOptions) -> bool:
    if opts.users and not (agg and agg.has_user):
        return False
    if opts.groups and not (agg and agg.has_group):
        return False
    if opts.partitions and node.partition not in opts.partitions:
        return False
    if opts.hosts and node.hostname not in opts.hosts:
        return False
    if opts.exclude_states and {node.state, base_state(node.state)} & opts.exclude_states:
        return False
    return True


def _passes_memory(node: NodeRecord, opts: SelectionOptions) -> bool:
    if node.free_mem_mb is None:
        return False
    if opts.free_mem_below is not None:
        return node.free_mem_mb < opts.free_mem_below
    return node.free_mem_mb > opts.free_mem_above


def select_nodes(
    nodes: Sequence[NodeRecord],
    aggregates: Mapping[str, NodeAggregate],
    flags: Mapping[str, NodeFlags],
    opts: SelectionOptions,
) -> List[SelectedNode]:
    """Apply filters in snapshot order and collapse multi-partition nodes.

    Health flags decide inclusion only in flagged-only mode, and only when
    neither a free-memory filter nor print-all is in effect.
    """
    membership = node_partitions(nodes)
    selected: List[SelectedNode] = []
    emitted: set = set()
    for node in nodes:
        agg = aggregates.get(node.hostname)
        node_flags = flags[node.hostname]
        if not _passes_predicates(node, agg, opts):
            continue
        if opts.memory_filter_active:
            if not _passes_memory(node, opts):
                continue
        elif opts.flagged and not opts.print_all:
            if not node_flags.is_interesting(opts.include_warnings):
                continue
        if opts.unique:
            if node.hostname in emitted:
                continue
            emitted.add(node.hostname)
            m = membership[node.hostname]
            label = partition_label(m.partitions, m.default_partition)
        else:
            label = partition_label([node.partition], node.partition if node.is_default_partition else None)
        selected.append(SelectedNode(node=node, partition_label=label, flags=node_flags, aggregate=agg))
    logger.debug("Selected %d of %d node rows", len(selected), len(nodes))
    return selected


def split_csv(values: Optional[Iterable[str]]) -> FrozenSet[str]:
    """Flatten repeated comma-separated option values."""
    items: List[str] = []
    for value in values or ():
        items.extend(v.strip() for v in value.split(","))
    return frozenset(v for v in items if v)


def state_set(values: Optional[Iterable[str]]) -> FrozenSet[str]:
    return frozenset(v.lower() for v in split_csv(values))
