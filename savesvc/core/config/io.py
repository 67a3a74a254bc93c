from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ReadResult:
    ok: bool
    data: Dict[str, Any]
    error: Optional[str] = None


def read_json_file(path: str) -> ReadResult:
    if not os.path.exists(path):
        return ReadResult(ok=False, data={}, error="missing")
    try:
        with open(path, "r", encoding="utf-8") as f:
            obj = json.load(f)
        if not isinstance(obj, dict):
            return ReadResult(ok=False, data={}, error="not_object")
        return ReadResult(ok=True, data=obj)
    except json.JSONDecodeError as e:
        return ReadResult(ok=False, data={}, error=f"corrupt_json:{e}")
    except (OSError, ValueError) as e:
        return ReadResult(ok=False, data={}, error=str(e))
