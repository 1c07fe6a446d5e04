from .dsl import case, group, wf, GroupBuilder, build
from .model import Case, Group, Run, Status
from .runner import run_suite, load_suite, RunContext

__all__ = [
    "case", "group", "wf", "GroupBuilder", "build",
    "Case", "Group", "Run", "Status",
    "run_suite", "load_suite", "RunContext",
]
