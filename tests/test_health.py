"""Tests for the per-node health flags."""

import pytest

from conftest import make_node
from hpc_nodestat.config import HealthSettings
from hpc_nodestat.correlate import NodeAggregate
from hpc_nodestat.health import (
    NO_FLAGS,
    NodeFlags,
    Severity,
    base_state,
    evaluate_node,
    ideal_load_range,
    jobs_severity,
    load_severity,
    memory_severity,
    state_severity,
)

SETTINGS = HealthSettings(
    load_delta_critical=2.0,
    load_delta_warning=0.5,
    mem_critical_fraction=0.1,
    mem_warning_fraction=0.2,
    grace_period_s=300,
)


class TestLoadFlag:
    @pytest.mark.parametrize(
        "load,expected",
        [
            (4.5, Severity.NONE),
            (4.0, Severity.NONE),
            (4.51, Severity.WARNING),
            (6.0, Severity.WARNING),
            (6.01, Severity.CRITICAL),
            (3.5, Severity.NONE),
            (3.0, Severity.WARNING),
            (1.99, Severity.CRITICAL),
        ],
    )
    def test_boundaries_single_thread(self, load, expected):
        assert load_severity(load, 4, 1, 2.0, 0.5) == expected

    def test_smt_widens_interval(self):
        assert ideal_load_range(8, 2) == (4.0, 8.0)
        assert load_severity(4.0, 8, 2, 2.0, 0.5) == Severity.NONE
        assert load_severity(3.4, 8, 2, 2.0, 0.5) == Severity.WARNING
        assert load_severity(1.9, 8, 2, 2.0, 0.5) == Severity.CRITICAL

    def test_idle_node_with_load(self):
        assert load_severity(3.0, 0, 1, 2.0, 0.5) == Severity.CRITICAL

    def test_unknown_load_never_flags(self):
        assert load_severity(None, 4, 1, 2.0, 0.5) == Severity.NONE


class TestMemoryFlag:
    @pytest.mark.parametrize(
        "free,expected",
        [(99, Severity.CRITICAL), (100, Severity.WARNING), (150, Severity.WARNING), (200, Severity.NONE), (201, Severity.NONE)],
    )
    def test_boundaries(self, free, expected):
        assert memory_severity(free, 1000, 0.1, 0.2) == expected

    def test_unknown_free_memory_never_flags(self):
        assert memory_severity(None, 1000, 0.1, 0.2) == Severity.NONE


class TestJobsFlag:
    def test_more_jobs_than_cores_is_critical(self):
        assert jobs_severity(5, 4, "allocated", 0) == Severity.CRITICAL

    def test_mixed_with_multi_node_job_is_warning(self):
        assert jobs_severity(2, 4, "mixed", 1) == Severity.WARNING

    def test_allocated_with_multi_node_job_is_fine(self):
        assert jobs_severity(1, 4, "allocated", 1) == Severity.NONE

    def test_critical_beats_warning(self):
        assert jobs_severity(5, 4, "mixed", 3) == Severity.CRITICAL


class TestStateFlag:
    @pytest.mark.parametrize("state", ["drained", "down*", "maint", "reserved", "completing", "draining"])
    def test_problem_states(self, state):
        assert state_severity(state, SETTINGS.problem_states) == Severity.CRITICAL

    @pytest.mark.parametrize("state", ["idle", "mixed", "allocated", "idle~"])
    def test_normal_states(self, state):
        assert state_severity(state, SETTINGS.problem_states) == Severity.NONE

    def test_custom_problem_set(self):
        assert state_severity("idle", frozenset({"idle"})) == Severity.CRITICAL

    @pytest.mark.parametrize("state,expected", [("down*", "down"), ("idle~", "idle"), ("mixed#", "mixed"), ("drained", "drained")])
    def test_base_state(self, state, expected):
        assert base_state(state) == expected


class TestEvaluateNode:
    def test_flags_are_independent(self):
        node = make_node(cpu_load=7.0, free_mem_mb=150)
        agg = NodeAggregate(job_count=1, min_elapsed_s=3600)
        flags = evaluate_node(node, agg, SETTINGS)
        assert flags == NodeFlags(
            state=Severity.NONE, load=Severity.CRITICAL, jobs=Severity.NONE, memory=Severity.WARNING
        )

    def test_grace_period_suppresses_everything(self):
        node = make_node(cpu_load=40.0, free_mem_mb=1, state="drained", cpus_alloc=1)
        agg = NodeAggregate(job_count=3, min_elapsed_s=299)
        assert evaluate_node(node, agg, SETTINGS) == NO_FLAGS

    def test_grace_period_boundary_evaluates_normally(self):
        node = make_node(cpu_load=40.0)
        agg = NodeAggregate(job_count=1, min_elapsed_s=300)
        assert evaluate_node(node, agg, SETTINGS).load == Severity.CRITICAL

    def test_node_without_jobs(self):
        node = make_node(cpus_alloc=0, cpu_load=0.0, state="idle")
        assert evaluate_node(node, None, SETTINGS) == NO_FLAGS

    def test_node_without_jobs_has_no_grace(self):
        node = make_node(cpus_alloc=0, cpu_load=5.0, state="idle")
        assert evaluate_node(node, None, SETTINGS).load == Severity.CRITICAL

    def test_zero_grace_disables_exception(self):
        node = make_node(cpu_load=40.0)
        agg = NodeAggregate(job_count=1, min_elapsed_s=0)
        settings = HealthSettings(grace_period_s=0)
        assert evaluate_node(node, agg, settings).load == Severity.CRITICAL


class TestInterest:
    def test_warnings_count_only_when_requested(self):
        flags = NodeFlags(memory=Severity.WARNING, jobs=Severity.WARNING)
        assert flags.interest(include_warnings=False) == 0
        assert flags.interest(include_warnings=True) == 2
        assert not flags.is_interesting(False)
        assert flags.is_interesting(True)

    def test_critical_always_counts(self):
        flags = NodeFlags(state=Severity.CRITICAL, load=Severity.WARNING)
        assert flags.interest(include_warnings=False) == 1
        assert flags.interest(include_warnings=True) == 2
