from __future__ import annotations

import json
import sys
from dataclasses import asdict

from savesvc.core.config.models import DEFAULT_OUTPUT_FILENAME
from savesvc.core.saved_config import read_saved_config


def main() -> None:
    path = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_OUTPUT_FILENAME
    entries = read_saved_config(path)
    print(json.dumps([asdict(e) for e in entries], indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
