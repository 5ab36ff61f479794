# hydrolink/cli/main.py
from __future__ import annotations

from typing import Optional

from hydrolink.app.config import load_config
from hydrolink.common.logging_config import configure_logging
from hydrolink.core.errors import HydroLinkError

from hydrolink.cli.args import parse_args
from hydrolink.cli.commands import (
    cmd_aggregated,
    cmd_devices,
    cmd_history,
    cmd_monitor,
    cmd_poll,
    cmd_scan,
    cmd_send,
)

COMMANDS = {
    "scan": cmd_scan,
    "monitor": cmd_monitor,
    "send": cmd_send,
    "poll": cmd_poll,
    "devices": cmd_devices,
    "history": cmd_history,
    "aggregated": cmd_aggregated,
}


def main(argv: Optional[list[str]] = None) -> int:
    try:
        args = parse_args(argv)
        cfg = load_config(args.config)
        configure_logging(args.log_level or cfg.logging.level, cfg.logging.file)

        handler = COMMANDS.get(args.cmd)
        if handler is None:
            return 2
        return handler(args, cfg)
    except HydroLinkError as e:
        print(f"ERROR: {e.message}")
        if e.hint:
            print(f"Hint: {e.hint}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
