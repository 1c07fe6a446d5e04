# dag.py
from __future__ import annotations

from typing import List, Optional

from .errors import CycleError, MissingDependencyError
from .model import Group, ItemList, Run, WorkItem


def _pick_top(items: ItemList) -> Optional[WorkItem]:
    """
    Top element: the first (in declaration order) item not yet sequenced
    whose dependencies have all been resolved.
    """
    for item in items:
        if not item.sequenced and item.dry:
            # record the reached depth: it is used by the dependents of `item`
            items.max_rank = max(items.max_rank, item.rank)
            return item
    return None


def _evict(items: ItemList, top: WorkItem) -> None:
    """
    Mark `top` sequenced and resolve every dependency naming it, pushing the
    dependents one rank below.
    """
    top.sequenced = True
    for item in items:
        for dep in item.dependencies:
            if dep.target is None and dep.target_id == top.id:
                dep.target = top
                item.rank = max(item.rank, top.rank + 1)


def _stuck_error(items: ItemList, stuck: List[WorkItem]):
    known = {i.id for i in items}
    for item in stuck:
        missing = [d.target_id for d in item.dependencies if d.target_id not in known]
        if missing:
            return MissingDependencyError(
                kind="missing-dependency",
                item=item.id,
                message=f"{item.kind.value} '{item.id}' depends on missing {item.kind.value} '{missing[0]}'",
                details={"known": sorted(known)},
            )
    item = stuck[0]
    pending = [d.target_id for d in item.dependencies if not d.resolved]
    return CycleError(
        kind="cycle",
        item=item.id,
        message=f"{item.id} not sequenced: dependency loop !",
        details={"waiting_on": pending},
    )


def sequence(items: ItemList) -> None:
    """
    Rank a sibling list (a variation on topological sorting).

    Items at the same dependency depth get the same rank so the scheduler
    can run each rank pool in parallel; ranks also give a total order for
    the sequential scheduler. Higher ranks mean lower priority.

    A list of groups recurses into each group's cases, which are ranked in
    their own, per-group, rank space.

    Raises:
      CycleError / MissingDependencyError if an item can never be sequenced.
    """
    items.max_rank = 0

    while True:
        top = _pick_top(items)
        if top is None:
            break
        _evict(items, top)

    # leaving the loop with unsequenced items means a loop in deps
    stuck = [item for item in items if not item.sequenced]
    if stuck:
        raise _stuck_error(items, stuck)

    for item in items:
        if isinstance(item, Group):
            sequence(item.cases)


def sequence_run(run: Run) -> None:
    sequence(run.groups)


def levels(items: ItemList) -> List[List[WorkItem]]:
    """
    Group a sequenced list into rank "levels" (stages), declaration order
    inside each level. Each level can run in parallel.
    """
    return [items.at_rank(r) for r in range(items.max_rank + 1) if items.at_rank(r)]


# ----------------------------------------------------------------------
# Debug dump
# ----------------------------------------------------------------------

def _dump_item(lines: List[str], indent: int, item: WorkItem) -> None:
    pad = " " * indent
    lines.append(f"{pad}=> [{item.kind.value}] {item.id}")
    lines.append(f"{pad}    .rank = {item.rank}")
    lines.append(f"{pad}    .seq = {'true' if item.sequenced else 'false'}")
    for dep in item.dependencies:
        lines.append(f"{pad}    .<dep> = {dep.target_id}")


def dump(run: Run) -> str:
    """Render the (sequenced) graph for `suiterun -d`."""
    lines = [f"[run] {run.id}"]
    for group in run.groups:
        _dump_item(lines, 4, group)
        for case in group.cases:
            _dump_item(lines, 8, case)
    return "\n".join(lines)
