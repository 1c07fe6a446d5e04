# runner.py
from __future__ import annotations

import runpy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .cancel import Interruption, bail_out
from .config import RunConfig
from .dag import dump, sequence_run
from .errors import Interrupted, ReapError, ReapIncomplete, SuiteLoadError, UnknownItemError
from .model import Case, Group, ItemList, Run, Status, Synopsis, WorkItem, now
from .sandbox import ProcessLauncher, Reaper, default_launcher, launch, run_inline
from .ui.console import get_console


# ----------------------------------------------------------------------
# Suite loading (local file)
# ----------------------------------------------------------------------

def load_suite(path: str | Path) -> List[Group]:
    """
    Load a suite definition from a python file path.

    The file must define either:
      - suite() -> List[Group]
      - GROUPS = [Group, ...]

    Returns:
      List[Group]
    """
    suite_path = Path(path).expanduser().resolve()
    if not suite_path.exists():
        raise SuiteLoadError(
            kind="suite-load", item=None, message=f"Suite file not found: {suite_path}"
        )
    if suite_path.suffix != ".py":
        raise SuiteLoadError(
            kind="suite-load", item=None,
            message=f"Suite must be a .py file, got: {suite_path.name}",
        )

    module_name = f"suiterun_suite_{suite_path.stem}"
    globals_dict = runpy.run_path(str(suite_path), run_name=module_name)

    groups = None
    if "suite" in globals_dict and callable(globals_dict["suite"]):
        groups = globals_dict["suite"]()
    elif "GROUPS" in globals_dict:
        groups = globals_dict["GROUPS"]

    if not isinstance(groups, list) or not all(isinstance(g, Group) for g in groups):
        raise SuiteLoadError(
            kind="suite-load",
            item=None,
            message=(
                "Suite must return/define a List[Group]. "
                "Define suite() -> List[Group] or GROUPS = [Group, ...]."
            ),
            details={"file": str(suite_path)},
        )

    return groups


def select_groups(groups: List[Group], names: Iterable[str]) -> List[Group]:
    """
    Keep only the named groups plus every group they (transitively) depend
    on. No names selects everything. Declaration order is preserved.
    """
    names = list(names)
    if not names:
        return list(groups)

    by_id = {g.id: g for g in groups}
    wanted: set[str] = set()
    todo = list(names)
    while todo:
        name = todo.pop()
        if name in wanted:
            continue
        group = by_id.get(name)
        if group is None:
            raise UnknownItemError(
                kind="unknown-item",
                item=name,
                message=f"no such group '{name}'",
                details={"known": sorted(by_id)},
            )
        wanted.add(name)
        # unknown deps are left for the sequencer to report
        todo.extend(d.target_id for d in group.dependencies if d.target_id in by_id)

    return [g for g in groups if g.id in wanted]


def build_run(groups: List[Group], config: RunConfig, run_id: str) -> Run:
    run = Run(
        id=run_id,
        sandboxed=config.sandboxed,
        max_parallel=config.max_parallel,
        outfile=config.outfile,
        format=config.format,
    )
    for group in select_groups(groups, config.groups):
        run.add_group(group)
    return run


# ----------------------------------------------------------------------
# Run context
# ----------------------------------------------------------------------

@dataclass
class RunContext:
    """Per-run state shared by the scheduler, the reaper and bail-out."""
    sandboxed: bool = True
    max_parallel: int = 1
    interruption: Interruption = field(default_factory=Interruption)
    launcher: Optional[ProcessLauncher] = None
    barriers: int = 0   # reap barriers crossed so far

    def __post_init__(self) -> None:
        if self.max_parallel < 1:
            raise ValueError(f"max_parallel must be >= 1, got {self.max_parallel}")
        if self.launcher is None:
            self.launcher = default_launcher(self.interruption)
        elif hasattr(self.launcher, "interruption"):
            # a wait in progress must see the same flag as the handlers
            self.launcher.interruption = self.interruption
        self.reaper = Reaper(self.launcher, self.interruption)

    @classmethod
    def for_run(cls, run: Run, launcher: Optional[ProcessLauncher] = None) -> RunContext:
        return cls(
            sandboxed=run.sandboxed,
            max_parallel=run.max_parallel,
            launcher=launcher,
        )


# ----------------------------------------------------------------------
# Scheduling
# ----------------------------------------------------------------------

def skip(item: WorkItem, reason: str) -> None:
    """Mark `item` skipped. A skipped group takes all of its cases along."""
    item.status = Status.SKIPPED
    get_console().print_skipped(item, reason)
    if isinstance(item, Group):
        for case in item.cases:
            case.status = Status.SKIPPED


def _ready(item: WorkItem) -> bool:
    if item.deps_satisfied():
        return True
    failed = [
        d.target_id for d in item.dependencies
        if d.target is None or not d.target.succeeded
    ]
    skip(item, f"depends on {', '.join(failed)}")
    return False


def schedule(
    items: ItemList,
    dispatch: Callable[[WorkItem, RunContext], None],
    ctx: RunContext,
) -> None:
    """
    Simple regime: rank by rank, dispatch every ready item synchronously,
    one at a time, in declaration order.
    """
    for rank in range(items.max_rank + 1):
        if ctx.interruption.requested:
            break
        for item in items:
            if item.rank == rank and _ready(item):
                dispatch(item, ctx)


def _barrier(items: ItemList, ctx: RunContext) -> bool:
    """Block until the current chunk is drained. False means: stop."""
    ctx.barriers += 1
    try:
        ctx.reaper.reap(items)
    except ReapIncomplete as e:
        if ctx.interruption.requested:
            get_console().print_debug(str(e))
            return False
        raise ReapError(
            kind="reap", item=None, message=e.message, details=e.details
        ) from e
    return True


def schedule_sandboxed(items: ItemList, ctx: RunContext) -> None:
    """
    Sandboxed regime: rank by rank, start ready cases in chunks of at most
    `max_parallel` children and reap each chunk before going on.
    """
    for rank in range(items.max_rank + 1):
        if ctx.interruption.requested:
            return

        live = 0
        for item in items:
            if item.rank != rank or not _ready(item):
                continue
            if launch(item, ctx.launcher):
                live += 1
            if live == ctx.max_parallel:
                if not _barrier(items, ctx):
                    return
                live = 0

        if live and not _barrier(items, ctx):
            return


def _run_case(case: Case, ctx: RunContext) -> None:
    run_inline(case)


def _run_group(group: Group, ctx: RunContext) -> None:
    console = get_console()
    console.print_group_start(group)

    group.start = now()
    if ctx.sandboxed:
        schedule_sandboxed(group.cases, ctx)
    else:
        schedule(group.cases, _run_case, ctx)
    group.stop = now()

    update_group(group)
    console.print_group_result(group)

    if ctx.interruption.requested:
        bail_out(group.cases, ctx.launcher, ctx.interruption.describe())


# ----------------------------------------------------------------------
# Synoptical counters
# ----------------------------------------------------------------------

def update_group(group: Group) -> Synopsis:
    """Recount `group` from its cases. A group passes only if all cases did."""
    synopsis = Synopsis()
    for case in group.cases:
        synopsis.count(case)
    group.synopsis = synopsis
    if not synopsis.all_passed:
        group.status = Status.FAILURE
    return synopsis


def aggregate(run: Run) -> Synopsis:
    """Recompute every group's counters and the run totals from scratch."""
    total = Synopsis()
    for group in run.groups:
        total.merge(update_group(group))
    run.synopsis = total
    return total


def exit_code(run: Run) -> int:
    """0 iff every group and case ended in success."""
    for group in run.groups:
        if not group.succeeded:
            return 1
        if not all(case.succeeded for case in group.cases):
            return 1
    return 0


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_suite(run: Run, ctx: Optional[RunContext] = None) -> int:
    """
    Sequence, schedule and account a run. Returns the process exit code.

    Setup errors are raised before anything is dispatched; ReapError and
    Interrupted abort the run midway.
    """
    console = get_console()
    ctx = ctx or RunContext.for_run(run)

    sequence_run(run)
    console.print_graph(dump(run))

    ctx.interruption.install()
    run.start = now()
    try:
        schedule(run.groups, _run_group, ctx)
        if ctx.interruption.requested:
            # cancelled between groups, nothing left to kill
            raise Interrupted(
                kind="interrupted",
                item=None,
                message=f"run {ctx.interruption.describe()}",
                details={},
            )
    finally:
        run.stop = now()
        ctx.interruption.restore()
        aggregate(run)

    return exit_code(run)
