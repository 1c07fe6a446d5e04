"""Console output formatting utilities for SuiteRun."""

from __future__ import annotations

import sys
from typing import Optional

from ..model import Case, Group, Run, WorkItem, status_label


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, verbose: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            verbose: If True, print a line per case/group as results come in
        """
        self.debug = debug
        self.verbose = verbose or debug

    def print_run_started(
        self,
        run: Run,
        suite_file: str,
    ) -> None:
        """Print run start information."""
        ncases = sum(len(g.cases) for g in run.groups)
        mode = f"sandboxed (max {run.max_parallel} in parallel)" if run.sandboxed else "simple"
        print("\nRUN STARTED")
        print(f"Run: {run.id}")
        print(f"Suite: {suite_file}")
        print(f"Groups: {len(run.groups)}")
        print(f"Cases: {ncases}")
        print(f"Mode: {mode}")
        print()

    def print_group_start(self, group: Group) -> None:
        """Print group start message."""
        if self.verbose:
            print(f"\nGROUP STARTED: {group.id} (rank {group.rank})")

    def print_case_result(self, case: Case) -> None:
        """Print the outcome of a single case (verbose only)."""
        if not self.verbose:
            return
        if case.not_run:
            print(f"  {case.id}: NOT RUN")
            return
        duration = case.duration
        took = f" ({duration:.3f}s)" if duration is not None else ""
        print(f"  {case.id}: {status_label(case.status)}{took}")

    def print_skipped(self, item: WorkItem, reason: str) -> None:
        """Print item skipped message."""
        if self.verbose:
            print(f"  {item.id}: SKIP ({reason})")

    def print_group_result(self, group: Group) -> None:
        """Print group completion message."""
        if self.verbose:
            s = group.synopsis
            print(
                f"GROUP {status_label(group.status)}: {group.id} "
                f"({s.passed}/{s.total} passed)"
            )

    def print_graph(self, text: str) -> None:
        """Print the sequenced dependency graph (debug only)."""
        if self.debug:
            print(text, file=sys.stderr)

    def print_results(self, run: Run) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for group in run.groups:
            print(f"  {group.id}: {status_label(group.status)}")
        s = run.synopsis
        print(
            f"\n{s.total} case(s): {s.passed} passed, {s.failed} failed, "
            f"{s.aborted} aborted, {s.skipped} skipped"
            + (f", {s.not_run} not run" if s.not_run else "")
        )

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_warning(self, message: str) -> None:
        """Print a warning to stderr."""
        print(f"WARNING: {message}", file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
