"""Slurm node status and health flagging.

Correlates sinfo node snapshots with squeue job snapshots and reports
nodes with unexpected load, memory pressure or job placement.
"""

__version__ = "1.0.0"

__all__ = ["cli", "config", "correlate", "errors", "health", "ingest", "report", "selection"]
