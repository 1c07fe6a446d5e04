# config.py
from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field

DEFAULT_OUTPUT = os.environ.get("SUITERUN_OUTPUT", "report.txt")
DEFAULT_FORMAT = os.environ.get("SUITERUN_FORMAT", "txt")
DEFAULT_SIMPLE = os.environ.get("SUITERUN_SIMPLE", "0").lower() in ("1", "true", "yes")


def _default_parallel():
    env = os.environ.get("SUITERUN_PARALLEL")
    if env:
        # validated (and converted) by RunConfig
        return env
    c = os.cpu_count() or 2
    return max(1, c - 1)


class RunConfig(BaseModel):
    """Everything the driver needs to build and run a Run."""
    outfile: str = Field(default=DEFAULT_OUTPUT, min_length=1)  # "-" = stdout
    format: Literal["txt", "xml"] = DEFAULT_FORMAT
    max_parallel: int = Field(default_factory=_default_parallel, ge=1, validate_default=True)
    simple: bool = DEFAULT_SIMPLE
    verbose: bool = False
    debug: bool = False
    groups: list[str] = Field(default_factory=list)

    @property
    def sandboxed(self) -> bool:
        return not self.simple
