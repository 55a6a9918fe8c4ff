"""
Run one poll cycle for the demo project and print what was received.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

from dropsync.config import build_settings, load_config
from dropsync.service.runner import SyncService
from dropsync.sync.types import StagedFile
from dropsync.utils.logging import setup_logging_from_config


def on_file(staged: StagedFile) -> None:
    print(f"received {staged.original_name} ({staged.path.stat().st_size} bytes)")


def main() -> None:
    project_dir = Path(__file__).parent
    config = load_config(project_dir)
    settings = build_settings(config)
    setup_logging_from_config(config.data)

    result = asyncio.run(SyncService(settings, handler=on_file).run_once())
    print(json.dumps(result.to_dict(), indent=2))


if __name__ == "__main__":
    main()
