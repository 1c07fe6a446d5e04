# src/suiterun/dsl.py
from __future__ import annotations

from typing import Callable, List, Optional

from .model import Case, Group


# ---------------------------------------------------------------------
# Functional helpers
# ---------------------------------------------------------------------

def case(
    name: str,
    func: Optional[Callable[[Case], Optional[int]]] = None,
    *,
    needs: Optional[List[str]] = None,
) -> Case:
    """Create a case. `needs` names sibling cases that must pass first."""
    c = Case(name, func=func)
    for dep in needs or []:
        c.depends_on(dep)
    return c


def group(
    name: str,
    *cases: Case,  # allow: group("x", case(...), case(...))
    cases_list: Optional[List[Case]] = None,  # allow: group("x", cases_list=[...])
    needs: Optional[List[str]] = None,
) -> Group:
    g = Group(name)
    for c in list(cases_list or []) + list(cases):
        g.add_case(c)
    for dep in needs or []:
        g.depends_on(dep)
    return g


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class GroupBuilder:
    """
    Example:
        build("net")
            .register("connect", check_connect)
            .register("send", check_send)
            .case_depends_on("send", "connect")
            .build()
    """

    def __init__(self, name: str):
        self.name = name
        self._group = Group(name)

    def depends_on(self, *group_names: str):
        for dep in group_names:
            self._group.depends_on(dep)
        return self

    def register(self, case_id: str, func: Optional[Callable] = None):
        self._group.register(case_id, func)
        return self

    def case_depends_on(self, case_id: str, *dep_ids: str):
        # the case must be registered first
        for dep in dep_ids:
            self._group.case_depends_on(case_id, dep)
        return self

    def build(self) -> Group:
        return self._group


def build(name: str) -> GroupBuilder:
    """Convenience: build('net').register(...).build()"""
    return GroupBuilder(name)


# ---------------------------------------------------------------------
# Suite helper (single-file story)
# ---------------------------------------------------------------------

def wf(*groups: Group) -> List[Group]:
    """
    Suite definition helper.

    Users can write:
        from suiterun import wf, group, case

        def suite():
            return wf(
                group("G1", case("A", check_a), case("B", check_b, needs=["A"])),
                group("G2", case("C", check_c), needs=["G1"]),
            )

    Or use GROUPS directly:
        GROUPS = wf(group(...), group(...))
    """
    return list(groups)
