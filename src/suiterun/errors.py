# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(eq=False)
class RunError(Exception):
    """
    Structured run error with enough context for:
      - clean CLI output
      - report rendering
      - debugging without full tracebacks
    """
    kind: str
    item: str | None
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.item:
            lines.append(f"item={self.item}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


# ----------------------------------------------------------------------
# Setup errors: raised before anything is dispatched
# ----------------------------------------------------------------------

class SetupError(RunError):
    pass


class DuplicateIdError(SetupError):
    pass


class UnknownItemError(SetupError):
    pass


class CycleError(SetupError):
    pass


class MissingDependencyError(SetupError):
    pass


class SuiteLoadError(SetupError):
    pass


# ----------------------------------------------------------------------
# Execution errors
# ----------------------------------------------------------------------

class ReapError(RunError):
    """wait() failed for a reason other than EINTR/ECHILD. Fatal."""


class ReapIncomplete(RunError):
    """The reaper stopped with children still outstanding (cancellation)."""


class Interrupted(RunError):
    """Raised by bail-out once every live child has been killed and drained."""
