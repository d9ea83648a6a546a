"""Exceptions raised by the node status pipeline."""

from typing import List, Optional


class NodeStatError(Exception):
    """Base exception for all fatal node status errors."""
    pass


class SnapshotParseError(NodeStatError):
    """A scheduler snapshot line could not be parsed."""
    pass


class SlurmQueryError(NodeStatError):
    """A scheduler command failed or could not be started."""

    def __init__(self, cmd: List[str], message: str, returncode: Optional[int] = None):
        self.cmd = list(cmd)
        self.returncode = returncode
        super().__init__(f"{' '.join(self.cmd)}: {message}")


class ConfigurationError(NodeStatError):
    """Invalid settings or mutually exclusive options."""
    pass


class SelectionError(NodeStatError):
    """A requested user, group or host does not exist."""
    pass
