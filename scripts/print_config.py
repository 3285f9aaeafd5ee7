from __future__ import annotations

import json
import sys
from typing import List, Optional

from doorkeeper.core.config.manager import DEFAULT_CONFIG_PATH, ConfigManager


def main(argv: Optional[List[str]] = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    cm = ConfigManager(path=args[0] if args else DEFAULT_CONFIG_PATH, read_only=True)
    cfg = cm.load()
    print(json.dumps(cfg.model_dump(mode="json"), indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
