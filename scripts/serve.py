#!/usr/bin/env python3
from __future__ import annotations

import os
import sys
from pathlib import Path


REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from fortune.app import create_from_config  # noqa: E402
from fortune.config.load_config import ConfigError, load_app_config, load_options_from_env  # noqa: E402
from fortune.exceptions import AdapterConnectionError  # noqa: E402
from fortune.utils.logger import get_logger, setup_logging  # noqa: E402


logger = get_logger("fortune.serve")


def main() -> int:
    log_level = os.getenv("FORTUNE_LOG_LEVEL", "info")
    setup_logging(level=log_level, format_type=os.getenv("FORTUNE_LOG_FORMAT", "text"))
    host = os.getenv("FORTUNE_HOST", "127.0.0.1")
    port = int(os.getenv("FORTUNE_PORT", "1337"))

    try:
        app = create_from_config(load_app_config(), load_options_from_env())
    except (ConfigError, AdapterConnectionError) as e:
        logger.error("%s", e)
        return 1

    app.listen(port, host=host, log_level=log_level.lower())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
