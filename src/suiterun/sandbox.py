# sandbox.py
from __future__ import annotations

import os
import signal
import sys
import traceback
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional, Protocol

from .cancel import Interruption, restore_default_signals
from .errors import ReapError, ReapIncomplete
from .model import Case, ItemList, Status, Usage, now
from .ui.console import get_console


@dataclass(frozen=True)
class Completion:
    """What wait() learned about one child."""
    pid: int
    exit_code: Optional[int] = None
    signal: Optional[int] = None
    usage: Optional[Usage] = None
    stopped: bool = False

    @property
    def result(self) -> int:
        # signal death is an abnormal termination, whatever the signal
        if self.signal is not None:
            return Status.ABORTED
        return self.exit_code if self.exit_code is not None else Status.ABORTED


class ProcessLauncher(Protocol):
    """
    The sandboxing capability used by the scheduler.

    start() must never block on the case; results are collected by the
    Reaper through wait_any().
    """

    def start(self, case: Case) -> int: ...

    def wait(self, pid: int) -> Completion: ...

    def wait_any(self) -> Optional[Completion]: ...

    def kill(self, pid: int) -> None: ...

    def drain(self) -> int: ...


# ----------------------------------------------------------------------
# Calling a case function
# ----------------------------------------------------------------------

MAX_EXIT_CODE = 255


def call_case(case: Case) -> int:
    """
    Call the case function and turn its outcome into an exit code.

    None counts as success and a failed assertion as failure. Codes that
    do not fit an exit status (0..255) count as failure. Any other
    exception is left to the caller (it is an abnormal termination).
    """
    if case.func is None:
        # placeholder case
        return Status.SUCCESS
    try:
        rc = case.func(case)
    except AssertionError:
        return Status.FAILURE
    if rc is None:
        return Status.SUCCESS
    rc = int(rc)
    if not 0 <= rc <= MAX_EXIT_CODE:
        # would be truncated by the exit status of a sandboxed child
        get_console().print_warning(f"{case.id}: exit status {rc} out of range, counted as failure")
        return Status.FAILURE
    return rc


def as_status(case: Case, code: int):
    """Map an exit code onto Status, keeping (and flagging) unexpected ones."""
    if code not in (Status.SUCCESS, Status.FAILURE, Status.ABORTED):
        get_console().print_warning(f"{case.id}: suspicious exit status {code}")
    try:
        return Status(code)
    except ValueError:
        return code


def run_inline(case: Case) -> None:
    """Non-sandboxed execution: call the function in the controller itself."""
    case.start = now()
    try:
        rc = call_case(case)
    except (Exception, SystemExit) as e:
        get_console().print_warning(f"{case.id}: raised {type(e).__name__}: {e}")
        case.status = Status.ABORTED
    else:
        case.status = as_status(case, rc)
    case.stop = now()
    get_console().print_case_result(case)


# ----------------------------------------------------------------------
# POSIX backend
# ----------------------------------------------------------------------

def _completion(pid: int, status: int, ru) -> Completion:
    if os.WIFSTOPPED(status):
        return Completion(pid=pid, stopped=True)
    usage = Usage.from_rusage(ru) if ru is not None else None
    if os.WIFSIGNALED(status):
        return Completion(pid=pid, signal=os.WTERMSIG(status), usage=usage)
    return Completion(pid=pid, exit_code=os.WEXITSTATUS(status), usage=usage)


class ForkLauncher:
    """Run each case in a forked child; its exit status is the case status."""

    def __init__(self, interruption: Optional[Interruption] = None):
        self.interruption = interruption or Interruption()

    def start(self, case: Case) -> int:
        # don't let the child inherit (and flush twice) buffered output
        sys.stdout.flush()
        sys.stderr.flush()

        pid = os.fork()
        if pid == 0:
            rc = Status.ABORTED
            try:
                restore_default_signals()
                rc = call_case(case)
                sys.stdout.flush()
            except BaseException:
                traceback.print_exc()
            finally:
                os._exit(int(rc))
        return pid

    def wait(self, pid: int) -> Completion:
        _pid, status, ru = os.wait4(pid, 0)
        return _completion(_pid, status, ru)

    def wait_any(self) -> Optional[Completion]:
        waited = None
        try:
            with self.interruption.blocking():
                waited = os.wait4(-1, os.WUNTRACED)
        except ChildProcessError:
            return None
        except InterruptedError:
            # the signal can land after wait4() returned: keep that child.
            # One landing before the assignment loses the status; bail-out
            # still marks the case aborted since its pid stays set.
            if waited is None:
                raise
        return _completion(*waited)

    def kill(self, pid: int) -> None:
        try:
            os.kill(pid, signal.SIGKILL)
        except ProcessLookupError:
            pass

    def drain(self) -> int:
        """Blocking wait on every remaining child, results ignored."""
        n = 0
        while True:
            try:
                os.wait4(-1, 0)
            except InterruptedError:
                continue
            except ChildProcessError:
                return n
            n += 1


# ----------------------------------------------------------------------
# In-process backend (no fork available)
# ----------------------------------------------------------------------

class InProcessLauncher:
    """
    Runs the case synchronously inside start() and queues its completion,
    so the scheduler and the reaper work unchanged. Exceptions map to
    Aborted.
    """

    def __init__(self):
        self._next_pid = 1
        self._done: Deque[Completion] = deque()

    def start(self, case: Case) -> int:
        pid = self._next_pid
        self._next_pid += 1
        try:
            rc = call_case(case)
        except (Exception, SystemExit) as e:
            get_console().print_warning(f"{case.id}: raised {type(e).__name__}: {e}")
            self._done.append(Completion(pid=pid, signal=signal.SIGABRT))
        else:
            self._done.append(Completion(pid=pid, exit_code=rc))
        return pid

    def wait(self, pid: int) -> Completion:
        for done in self._done:
            if done.pid == pid:
                self._done.remove(done)
                return done
        raise ChildProcessError(f"no such child: {pid}")

    def wait_any(self) -> Optional[Completion]:
        if not self._done:
            return None
        return self._done.popleft()

    def kill(self, pid: int) -> None:
        # already finished by construction
        return None

    def drain(self) -> int:
        n = len(self._done)
        self._done.clear()
        return n

    @property
    def pending(self) -> int:
        return len(self._done)


def default_launcher(interruption: Optional[Interruption] = None) -> ProcessLauncher:
    if hasattr(os, "fork"):
        return ForkLauncher(interruption)
    return InProcessLauncher()


def launch(case: Case, launcher: ProcessLauncher) -> bool:
    """
    Start `case` in the sandbox. Never blocks.

    A failure to create the child is reported and leaves the case not run;
    it does not abort the run.
    """
    items = case.parent
    case.start = now()
    try:
        pid = launcher.start(case)
    except OSError as e:
        get_console().print_error(
            "Spawn failed",
            f"could not start a child process for case '{case.id}'",
            details=[str(e)],
        )
        case.not_run = True
        case.stop = now()
        return False

    case.pid = pid
    if items is not None:
        items.outstanding += 1
    return True


# ----------------------------------------------------------------------
# Reaper
# ----------------------------------------------------------------------

class Reaper:
    """Drains the outstanding children of a sibling list."""

    def __init__(self, launcher: ProcessLauncher, interruption: Interruption):
        self.launcher = launcher
        self.interruption = interruption

    def reap(self, items: ItemList) -> int:
        """
        Wait until every outstanding child of `items` has been collected.

        Returns the number of children reaped.

        Raises:
          ReapError       wait() failed for any reason but EINTR/ECHILD
          ReapIncomplete  left with children outstanding (e.g. cancellation)
        """
        console = get_console()
        reaped = 0

        while items.outstanding > 0 and not self.interruption.requested:
            try:
                done = self.launcher.wait_any()
            except InterruptedError:
                continue
            except OSError as e:
                raise ReapError(
                    kind="reap",
                    item=None,
                    message=f"wait failed: {e}",
                    details={"errno": e.errno, "outstanding": items.outstanding},
                ) from e

            if done is None:
                # no more children
                break

            case = items.by_pid(done.pid)
            if case is None:
                console.print_debug(f"reaped unknown child (pid={done.pid})")
                continue

            if done.stopped:
                console.print_debug(f"{case.id} stopped (pid={done.pid}), still waiting")
                continue

            items.outstanding -= 1
            case.pid = None
            case.stop = now()
            if done.signal is not None:
                console.print_debug(f"{case.id} killed by signal {done.signal}")
                case.status = Status.ABORTED
            else:
                case.status = as_status(case, done.result)
            case.usage = done.usage
            console.print_case_result(case)
            reaped += 1

        if items.outstanding > 0:
            raise ReapIncomplete(
                kind="reap-incomplete",
                item=None,
                message=f"{items.outstanding} child process(es) still outstanding",
                details={"outstanding": items.outstanding},
            )

        return reaped
