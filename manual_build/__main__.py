from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console

from manual_build.app_factory import create_app
from manual_build.config.ini_config import IniConfig
from manual_build.log_setup import setup_logging


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="manual-build",
        description="Watch index.html, src/main.scss and src/main.js, build them into public/ and serve it.",
    )
    parser.add_argument("--config", type=Path, default=None, help="INI file (default: $MANUAL_BUILD_INI or ./manual_build.ini)")
    parser.add_argument("--log-level", default=None, help="Override [logging] level, e.g. DEBUG")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    err = Console(stderr=True)

    settings = IniConfig.from_env_or_default(root=Path.cwd(), explicit=args.config).load_settings()
    setup_logging((args.log_level or settings.log_level).upper(), err, settings.log_file)

    app = create_app(settings, err=err)
    try:
        return asyncio.run(app.run())
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
