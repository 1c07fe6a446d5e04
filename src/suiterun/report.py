# report.py
from __future__ import annotations

import sys
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import IO, Callable, Dict, Iterator, Optional, Tuple
from xml.sax.saxutils import quoteattr

from .model import Case, Group, Run, Synopsis, status_label


class Tag(str, Enum):
    HEAD = "head"
    TAIL = "tail"


def _ts(when: Optional[datetime]) -> str:
    return when.isoformat(timespec="milliseconds") if when is not None else "-"


def _secs(item) -> str:
    d = item.duration
    return f"{d:.3f}s" if d is not None else "-"


def _counts(s: Synopsis) -> str:
    return " ".join(f"{k}={v}" for k, v in s.as_dict().items())


# ----------------------------------------------------------------------
# Plain text
# ----------------------------------------------------------------------

def run_rep_txt(fp: IO[str], run: Run, tag: Tag) -> None:
    if tag is Tag.HEAD:
        fp.write(f"{run.id}\n")
        fp.write(f"host: {run.host}\n")
        fp.write(f"mode: {'sandboxed' if run.sandboxed else 'simple'}\n")
        fp.write(f"started: {_ts(run.start)}\n")
        fp.write(f"stopped: {_ts(run.stop)}\n")
        return
    fp.write(f"\n{_counts(run.synopsis)}\n")


def group_rep_txt(fp: IO[str], group: Group, tag: Tag) -> None:
    if tag is Tag.TAIL:
        return
    fp.write(
        f"\t{group.id}: {status_label(group.status)} "
        f"[{_secs(group)}] {_counts(group.synopsis)}\n"
    )


def case_rep_txt(fp: IO[str], case: Case) -> None:
    label = "NOTRUN" if case.not_run else status_label(case.status)
    line = f"\t\t{case.id}: {label} [{_secs(case)}]"
    if case.usage is not None:
        u = case.usage
        line += f" utime={u.utime:.3f} stime={u.stime:.3f} maxrss={u.maxrss}"
    fp.write(line + "\n")


# ----------------------------------------------------------------------
# XML
# ----------------------------------------------------------------------

def _synopsis_xml(s: Synopsis) -> str:
    attrs = " ".join(f"{k}={quoteattr(str(v))}" for k, v in s.as_dict().items())
    return f"<synopsis {attrs}/>"


def run_rep_xml(fp: IO[str], run: Run, tag: Tag) -> None:
    if tag is Tag.HEAD:
        fp.write('<?xml version="1.0" encoding="UTF-8"?>\n')
        fp.write(
            f"<run id={quoteattr(run.id)} host={quoteattr(run.host)} "
            f"sandboxed={quoteattr(str(run.sandboxed).lower())} "
            f"start={quoteattr(_ts(run.start))} stop={quoteattr(_ts(run.stop))}>\n"
        )
        return
    fp.write(f"  {_synopsis_xml(run.synopsis)}\n")
    fp.write("</run>\n")


def group_rep_xml(fp: IO[str], group: Group, tag: Tag) -> None:
    if tag is Tag.HEAD:
        fp.write(
            f"  <group id={quoteattr(group.id)} "
            f"status={quoteattr(status_label(group.status))} rank=\"{group.rank}\" "
            f"start={quoteattr(_ts(group.start))} stop={quoteattr(_ts(group.stop))}>\n"
        )
        return
    fp.write(f"    {_synopsis_xml(group.synopsis)}\n")
    fp.write("  </group>\n")


def case_rep_xml(fp: IO[str], case: Case) -> None:
    label = "NOTRUN" if case.not_run else status_label(case.status)
    head = (
        f"    <case id={quoteattr(case.id)} status={quoteattr(label)} "
        f"rank=\"{case.rank}\" start={quoteattr(_ts(case.start))} "
        f"stop={quoteattr(_ts(case.stop))}"
    )
    if case.usage is None:
        fp.write(head + "/>\n")
        return
    u = case.usage
    fp.write(head + ">\n")
    fp.write(
        f"      <usage utime=\"{u.utime:.6f}\" stime=\"{u.stime:.6f}\" "
        f"maxrss=\"{u.maxrss}\" minflt=\"{u.minflt}\" majflt=\"{u.majflt}\" "
        f"nvcsw=\"{u.nvcsw}\" nivcsw=\"{u.nivcsw}\"/>\n"
    )
    fp.write("    </case>\n")


RENDERERS: Dict[str, Tuple[Callable, Callable, Callable]] = {
    "txt": (run_rep_txt, group_rep_txt, case_rep_txt),
    "xml": (run_rep_xml, group_rep_xml, case_rep_xml),
}


# ----------------------------------------------------------------------
# Graph walk
# ----------------------------------------------------------------------

def hooks_for(run: Run) -> Tuple[Callable, Callable, Callable]:
    """The run's own hooks, falling back to the renderer for `run.format`."""
    try:
        dflt = RENDERERS[run.format]
    except KeyError:
        raise ValueError(f"Unknown report format: {run.format!r}") from None
    return (
        run.run_rep or dflt[0],
        run.group_rep or dflt[1],
        run.case_rep or dflt[2],
    )


def render(fp: IO[str], run: Run) -> None:
    """Walk the finished graph in declaration order calling the hooks."""
    run_rep, group_rep, case_rep = hooks_for(run)

    run_rep(fp, run, Tag.HEAD)
    for group in run.groups:
        group_rep(fp, group, Tag.HEAD)
        for case in group.cases:
            case_rep(fp, case)
        group_rep(fp, group, Tag.TAIL)
    run_rep(fp, run, Tag.TAIL)


@contextmanager
def _open_output(outfile: str) -> Iterator[IO[str]]:
    if outfile == "-":
        yield sys.stdout
        sys.stdout.flush()
        return
    with open(outfile, "w", encoding="utf-8") as fp:
        yield fp


def write_report(run: Run) -> None:
    """Write the report of a finished run to `run.outfile` ("-" = stdout)."""
    with _open_output(run.outfile) as fp:
        render(fp, run)
