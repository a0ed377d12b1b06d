"""MindCanvas launcher.

Provides a stable entry point that runs preflight checks before importing
GTK-related modules, which gives clearer error messages on new systems.
"""

from __future__ import annotations

import logging


def main() -> int:
    from mindcanvas.preflight import run_preflight_or_die

    run_preflight_or_die(require_display=True, check_deps=True)

    from mindcanvas.config import Config
    from mindcanvas.logging_setup import configure_logging

    config = Config.from_env()
    log_path = configure_logging(config)
    logging.getLogger(__name__).info("Logging to %s", log_path)

    from mindcanvas.app import main as app_main

    return int(app_main(config=config))


if __name__ == "__main__":
    raise SystemExit(main())
