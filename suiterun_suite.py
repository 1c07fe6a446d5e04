# suiterun_suite.py
# Suite for checking suiterun itself: graph, scheduling and reporting
from __future__ import annotations

import io
import os
import tempfile

from suiterun import Run, Status, build, case, group, run_suite, wf
from suiterun.errors import CycleError
from suiterun.report import render


def check_ranks(c):
    g = group("G", case("A"), case("B", needs=["A"]), case("C", needs=["B"]))
    run = Run("ranks", sandboxed=False)
    run.add_group(g)
    run_suite(run)
    assert [x.rank for x in g.cases] == [0, 1, 2]


def check_cycle(c):
    run = Run("cycle", sandboxed=False)
    run.add_group(group("G", case("A", needs=["B"]), case("B", needs=["A"])))
    try:
        run_suite(run)
    except CycleError:
        return Status.SUCCESS
    return Status.FAILURE


def check_skip(c):
    g = group("G", case("bad", lambda _: 1), case("after", needs=["bad"]))
    run = Run("skip", sandboxed=False)
    run.add_group(g)
    assert run_suite(run) == 1
    assert g.cases.get("after").status == Status.SKIPPED


def check_txt(c):
    run = Run("txt", sandboxed=False)
    run.add_group(group("G", case("A")))
    run_suite(run)
    buf = io.StringIO()
    render(buf, run)
    assert "\t\tA: PASS" in buf.getvalue()


def check_xml(c):
    run = Run("xml", sandboxed=False, format="xml")
    run.add_group(group("G", case("A")))
    run_suite(run)
    buf = io.StringIO()
    render(buf, run)
    assert buf.getvalue().rstrip().endswith("</run>")


def check_tmpdir(c):
    assert os.access(tempfile.gettempdir(), os.W_OK)


def suite():
    return wf(
        # Environment the other groups rely on
        group("env", case("tmpdir", check_tmpdir)),

        # Sequencer
        group(
            "graph",
            case("ranks", check_ranks),
            case("cycle", check_cycle),
            needs=["env"],
        ),

        # Scheduler, built with the builder API
        build("sched")
        .depends_on("graph")
        .register("skip", check_skip)
        .build(),

        # Reports
        group(
            "report",
            case("txt", check_txt),
            case("xml", check_xml, needs=["txt"]),
            needs=["sched"],
        ),
    )
