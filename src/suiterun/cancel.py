# cancel.py
from __future__ import annotations

import signal
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator

from .errors import Interrupted
from .model import Case, Status, now
from .ui.console import get_console

CANCEL_SIGNALS = (signal.SIGINT, signal.SIGTERM, getattr(signal, "SIGQUIT", None))


class Interruption:
    """
    The process-wide interruption flag.

    Signal handlers only assert the flag. The one exception is while the
    controller is blocked inside wait(): there the handler raises
    InterruptedError so the wait returns, just like EINTR would.
    """

    def __init__(self):
        self.requested = False
        self.signum: int | None = None
        self._blocking = False
        self._saved: Dict[int, object] = {}

    def _handler(self, signum, frame):
        self.requested = True
        self.signum = signum
        if self._blocking:
            raise InterruptedError(signum, "interrupted by signal")

    def install(self) -> None:
        for signum in CANCEL_SIGNALS:
            if signum is None:
                continue
            self._saved[signum] = signal.signal(signum, self._handler)

    def restore(self) -> None:
        for signum, previous in self._saved.items():
            signal.signal(signum, previous)
        self._saved.clear()

    @contextmanager
    def blocking(self) -> Iterator[None]:
        """Mark a blocking wait in progress (see class docstring)."""
        self._blocking = True
        try:
            yield
        finally:
            self._blocking = False

    def describe(self) -> str:
        if self.signum is None:
            return "interrupted"
        return f"interrupted by {signal.Signals(self.signum).name}"

    def request(self) -> None:
        """Programmatic cancellation (same effect as a signal)."""
        self.requested = True

    def __bool__(self) -> bool:
        return self.requested


def restore_default_signals() -> None:
    """Used by forked children: they must die on the usual signals."""
    for signum in CANCEL_SIGNALS:
        if signum is not None:
            signal.signal(signum, signal.SIG_DFL)


def bail_out(cases: Iterable[Case], launcher, reason: str = "interrupted") -> None:
    """
    Forcefully terminate every live child of `cases`, collect each of them,
    drain whatever else remains, then abort the whole run.

    This is the only place where SIGKILL is used; ordinary completion
    always goes through the reaper.
    """
    console = get_console()
    live = [case for case in cases if case.pid is not None]

    for case in live:
        console.print_debug(f"bail-out: killing {case.id} (pid={case.pid})")
        launcher.kill(case.pid)

    for case in live:
        try:
            done = launcher.wait(case.pid)
        except ChildProcessError:
            # collected by an interrupted wait_any()
            done = None
        case.pid = None
        case.stop = now()
        case.status = Status.ABORTED
        if done is not None:
            case.usage = done.usage
        if case.parent is not None:
            case.parent.outstanding = 0

    # anything else still around: results ignored, never leaked
    drained = launcher.drain()
    console.print_debug(f"bail-out: drained {drained} more child process(es)")

    raise Interrupted(
        kind="interrupted",
        item=None,
        message=f"run {reason}, outstanding children killed",
        details={"killed": [case.id for case in live], "drained": drained},
    )
