# cli.py
from __future__ import annotations

import sys
from pathlib import Path

import click
from pydantic import ValidationError

from suiterun.config import DEFAULT_FORMAT, DEFAULT_OUTPUT, DEFAULT_SIMPLE, RunConfig
from suiterun.errors import Interrupted, ReapError, RunError, SetupError
from suiterun.report import write_report
from suiterun.runner import RunContext, build_run, load_suite, run_suite
from suiterun.ui.console import Console, get_console, set_console


DEFAULT_SUITE = "suiterun_suite.py"
SUITE_GLOB = "*_suite.py"


def find_suite_files(root: Path = Path(".")) -> list[Path]:
    """Suite files in `root`: the default one wins over any `*_suite.py`."""
    default = root / DEFAULT_SUITE
    if default.is_file():
        return [default]
    return sorted(p for p in root.glob(SUITE_GLOB) if p.is_file())


def discover_suite(suite_arg: str | None) -> Path:
    """
    Resolve the suite file to run. An explicit argument may omit the `.py`
    suffix; otherwise the current directory must hold exactly one suite.

    Exits with status 1 when no single suite can be chosen.
    """
    console = get_console()

    if suite_arg:
        candidates = [Path(suite_arg), Path(suite_arg + ".py")]
        for path in candidates:
            if path.is_file():
                return path
        console.print_error(
            "Suite file not found",
            f"{suite_arg} is not a suite file.",
            suggestion="A suite file defines suite() or GROUPS, e.g.:\n  suiterun tests/net_suite.py",
        )
        sys.exit(1)

    found = find_suite_files()
    if len(found) == 1:
        return found[0]

    if not found:
        console.print_error(
            "No suite file found",
            f"Neither {DEFAULT_SUITE} nor any {SUITE_GLOB} in the current directory.",
            suggestion=f"Create {DEFAULT_SUITE} or pass a suite file:\n  suiterun path/to/my_suite.py",
        )
    else:
        console.print_error(
            "Ambiguous suite",
            f"{len(found)} suite files match {SUITE_GLOB}; pick one:",
            details=[str(p) for p in found],
        )
    sys.exit(1)


def _print_listing(groups) -> None:
    console = get_console()
    for g in groups:
        deps = ", ".join(d.target_id for d in g.dependencies)
        console.print_info(f"{g.id}" + (f" (needs: {deps})" if deps else ""))
        for c in g.cases:
            deps = ", ".join(d.target_id for d in c.dependencies)
            console.print_info(f"    {c.id}" + (f" (needs: {deps})" if deps else ""))


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("suite_file", required=False)
@click.option("-o", "--output", "output", default=DEFAULT_OUTPUT, show_default=True,
              help='Report destination ("-" for standard output)')
@click.option("-f", "--format", "fmt", type=click.Choice(["txt", "xml"]),
              default=DEFAULT_FORMAT, show_default=True, help="Report format")
@click.option("-p", "--parallel", "parallel", type=int, default=None,
              help="Max number of sandboxed cases running at once")
@click.option("-s", "--simple/--sandboxed", default=DEFAULT_SIMPLE, show_default=True,
              help="Run cases inside the runner (simple) or in forked children")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Be verbose")
@click.option("-d", "--debug", is_flag=True, default=False,
              help="Dump the sequenced graph and show stack traces")
@click.option("-g", "--group", "groups", multiple=True,
              help="Only run this group (and what it depends on); repeatable")
@click.option("--list", "list_only", is_flag=True, default=False,
              help="List groups and cases without running them")
def cli(suite_file, output, fmt, parallel, simple, verbose, debug, groups, list_only):
    """SuiteRun: rank-scheduled, sandboxed test suite runner."""
    console = Console(debug=debug, verbose=verbose)
    set_console(console)

    settings = dict(
        outfile=output,
        format=fmt,
        simple=simple,
        verbose=verbose,
        debug=debug,
        groups=list(groups),
    )
    if parallel is not None:
        settings["max_parallel"] = parallel
    try:
        config = RunConfig(**settings)
    except ValidationError as e:
        console.print_error(
            "Invalid options",
            "The run configuration is not valid.",
            details=[f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()],
        )
        sys.exit(2)

    suite_path = discover_suite(suite_file)

    try:
        all_groups = load_suite(suite_path)

        if list_only:
            _print_listing(all_groups)
            return

        run = build_run(all_groups, config, run_id=suite_path.stem)
        console.print_run_started(run, suite_file=suite_path.name)

        rc = run_suite(run, RunContext.for_run(run))

        write_report(run)
        console.print_results(run)
        if run.outfile != "-":
            console.print_info(f"Report written to {run.outfile}")

        sys.exit(rc)

    except SetupError as e:
        console.print_error("Setup failed", "Nothing was run.", details=str(e).splitlines())
        sys.exit(1)
    except Interrupted as e:
        console.print_info(f"\n{e.message}")
        sys.exit(1)
    except ReapError as e:
        console.print_error("Process management failed", "The run was aborted.", details=str(e).splitlines())
        sys.exit(1)
    except RunError as e:
        console.print_exception(e)
        sys.exit(1)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
