from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List

from savesvc.core.config.models import DEFAULT_HEADER

_LINE = re.compile(r"^(?:\[(?P<instance>[1-9][0-9]*)\])?(?P<name>[^=\[\]][^=]*)=(?P<value>.*)$")


@dataclass(frozen=True)
class SavedEntry:
    name: str
    value: str
    instance: int = 0


def parse_saved_config(text: str, *, header: str = DEFAULT_HEADER) -> List[SavedEntry]:
    """
    Parse the text written by the save service.

    The first line must be the header. Blank lines are skipped. Raises
    ValueError on anything that is not `name=value` or `[id]name=value`.
    """
    lines = text.split("\n")
    if not lines or lines[0] != header:
        raise ValueError("missing configuration header")
    out: List[SavedEntry] = []
    for lineno, line in enumerate(lines[1:], start=2):
        if not line:
            continue
        m = _LINE.match(line)
        if m is None:
            raise ValueError(f"line {lineno}: malformed entry: {line[:80]!r}")
        inst = m.group("instance")
        out.append(SavedEntry(name=m.group("name"), value=m.group("value"), instance=int(inst) if inst else 0))
    return out


def read_saved_config(path: str, *, header: str = DEFAULT_HEADER) -> List[SavedEntry]:
    with open(path, "r", encoding="utf-8") as f:
        return parse_saved_config(f.read(), header=header)
