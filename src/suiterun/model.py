# model.py
from __future__ import annotations

import platform
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Callable, ClassVar, Dict, Iterator, List, Optional

from .errors import DuplicateIdError, UnknownItemError


class Status(IntEnum):
    """Final status of a work item. The codes double as child exit codes."""
    SUCCESS = 0
    FAILURE = 1
    ABORTED = 2   # set by the reaper/backend, never returned by a case
    SKIPPED = 3   # set by the scheduler

    @property
    def label(self) -> str:
        return status_label(self)


_LABELS = {
    0: "PASS",
    1: "FAIL",
    2: "ABRT",
    3: "SKIP",
}


def status_label(code: int) -> str:
    """Report label for a status; unexpected exit codes render as `E<code>`."""
    return _LABELS.get(int(code), f"E{int(code)}")


def now() -> datetime:
    return datetime.now(timezone.utc)


class Kind(str, Enum):
    GROUP = "group"
    CASE = "case"


@dataclass
class Dependency:
    """A named reference to a sibling item, resolved by the sequencer."""
    target_id: str
    target: Optional["WorkItem"] = field(default=None, repr=False)

    @property
    def resolved(self) -> bool:
        return self.target is not None


@dataclass(frozen=True)
class Usage:
    """Resource usage of a reaped child (subset of struct rusage)."""
    utime: float
    stime: float
    maxrss: int
    minflt: int = 0
    majflt: int = 0
    nvcsw: int = 0
    nivcsw: int = 0

    @classmethod
    def from_rusage(cls, ru) -> Usage:
        return cls(
            utime=ru.ru_utime,
            stime=ru.ru_stime,
            maxrss=ru.ru_maxrss,
            minflt=ru.ru_minflt,
            majflt=ru.ru_majflt,
            nvcsw=ru.ru_nvcsw,
            nivcsw=ru.ru_nivcsw,
        )


@dataclass
class Synopsis:
    """Synoptical counters: totals by status."""
    total: int = 0
    passed: int = 0
    failed: int = 0
    aborted: int = 0
    skipped: int = 0
    not_run: int = 0

    def count(self, item: WorkItem) -> None:
        self.total += 1
        if item.not_run:
            self.not_run += 1
        elif item.status == Status.SUCCESS:
            self.passed += 1
        elif item.status == Status.ABORTED:
            self.aborted += 1
        elif item.status == Status.SKIPPED:
            self.skipped += 1
        else:
            # FAILURE and any unexpected exit code
            self.failed += 1

    def merge(self, other: Synopsis) -> None:
        self.total += other.total
        self.passed += other.passed
        self.failed += other.failed
        self.aborted += other.aborted
        self.skipped += other.skipped
        self.not_run += other.not_run

    @property
    def all_passed(self) -> bool:
        return self.passed == self.total

    def as_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "pass": self.passed,
            "fail": self.failed,
            "abrt": self.aborted,
            "skip": self.skipped,
            "notrun": self.not_run,
        }


# ----------------------------------------------------------------------
# Work items
# ----------------------------------------------------------------------

@dataclass(eq=False)
class WorkItem:
    """
    Attributes shared by groups and cases.

    `rank` and `sequenced` are written by the sequencer; `status`, `start`
    and `stop` are written once during scheduling.
    """
    kind: ClassVar[Kind]

    id: str
    dependencies: List[Dependency] = field(default_factory=list)
    status: Status = Status.SUCCESS
    rank: int = 0
    sequenced: bool = False
    start: Optional[datetime] = None
    stop: Optional[datetime] = None
    not_run: bool = False
    parent: Optional[ItemList] = field(default=None, repr=False)

    def depends_on(self, dep_id: str) -> Dependency:
        """Record a dependency on sibling `dep_id` (no-op if already recorded)."""
        for dep in self.dependencies:
            if dep.target_id == dep_id:
                return dep
        dep = Dependency(dep_id)
        self.dependencies.append(dep)
        return dep

    @property
    def dry(self) -> bool:
        """True once every dependency has been resolved."""
        return all(d.resolved for d in self.dependencies)

    @property
    def succeeded(self) -> bool:
        return self.status == Status.SUCCESS and not self.not_run

    def deps_satisfied(self) -> bool:
        return all(d.target is not None and d.target.succeeded for d in self.dependencies)

    @property
    def duration(self) -> Optional[float]:
        if self.start is None or self.stop is None:
            return None
        return (self.stop - self.start).total_seconds()


@dataclass(eq=False)
class Case(WorkItem):
    """A leaf work item bound to a runnable function."""
    kind: ClassVar[Kind] = Kind.CASE

    func: Optional[Callable[[Case], Optional[int]]] = field(default=None, repr=False)
    pid: Optional[int] = None
    usage: Optional[Usage] = None


@dataclass(eq=False)
class Group(WorkItem):
    """A named collection of cases. Schedulable on its own."""
    kind: ClassVar[Kind] = Kind.GROUP

    cases: ItemList = field(default_factory=lambda: ItemList())
    synopsis: Synopsis = field(default_factory=Synopsis)

    def __post_init__(self) -> None:
        self.cases.owner = self

    def add_case(self, case: Case) -> Case:
        self.cases.add(case)
        return case

    def register(self, case_id: str, func: Optional[Callable] = None) -> Case:
        return self.add_case(Case(case_id, func=func))

    def case_depends_on(self, case_id: str, dep_id: str) -> Dependency:
        return self.cases.depends_on(case_id, dep_id)


class ItemList:
    """
    An ordered sibling list (groups of a run, cases of a group).

    Declaration order is preserved and is the tie-break used by both the
    sequencer and the scheduler.
    """

    def __init__(self, owner: Optional[object] = None):
        self.owner = owner
        self.items: List[WorkItem] = []
        self.max_rank = 0       # scope-max rank reached while sequencing
        self.outstanding = 0    # live children not yet reaped

    def add(self, item: WorkItem) -> WorkItem:
        if self.get(item.id) is not None:
            raise DuplicateIdError(
                kind="duplicate-id",
                item=item.id,
                message=f"{item.kind.value} '{item.id}' is already defined in this list",
            )
        item.parent = self
        self.items.append(item)
        return item

    def get(self, item_id: str) -> Optional[WorkItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def depends_on(self, item_id: str, dep_id: str) -> Dependency:
        # the dependent must already be in place
        item = self.get(item_id)
        if item is None:
            raise UnknownItemError(
                kind="unknown-item",
                item=item_id,
                message=f"cannot add dependency on '{dep_id}': '{item_id}' is not defined",
            )
        return item.depends_on(dep_id)

    def by_pid(self, pid: int) -> Optional[Case]:
        for item in self.items:
            if getattr(item, "pid", None) == pid:
                return item
        return None

    def at_rank(self, rank: int) -> List[WorkItem]:
        return [i for i in self.items if i.rank == rank]

    def __iter__(self) -> Iterator[WorkItem]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass(eq=False)
class Run:
    """
    The top container: groups, sandbox/parallelism knobs, output
    configuration, global counters and the three report hooks.

    Hooks left as None fall back to the renderer selected by `format`.
    """
    id: str
    groups: ItemList = field(default_factory=ItemList)
    sandboxed: bool = True
    max_parallel: int = 1
    outfile: str = "report.txt"
    format: str = "txt"
    synopsis: Synopsis = field(default_factory=Synopsis)
    host: str = field(default_factory=platform.node)
    start: Optional[datetime] = None
    stop: Optional[datetime] = None

    run_rep: Optional[Callable] = field(default=None, repr=False)
    group_rep: Optional[Callable] = field(default=None, repr=False)
    case_rep: Optional[Callable] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.groups.owner = self

    def add_group(self, group: Group) -> Group:
        self.groups.add(group)
        return group

    def group_depends_on(self, group_id: str, dep_id: str) -> Dependency:
        return self.groups.depends_on(group_id, dep_id)

    def cases(self) -> Iterator[Case]:
        for group in self.groups:
            yield from group.cases
