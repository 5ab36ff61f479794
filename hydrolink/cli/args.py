# hydrolink/cli/args.py
from __future__ import annotations

import argparse
from typing import Optional

from hydrolink.model.remote import AggregationInterval


def _on_off(v: str) -> bool:
    s = str(v).strip().lower()
    if s in ("1", "on", "true"):
        return True
    if s in ("0", "off", "false"):
        return False
    raise argparse.ArgumentTypeError(f"Invalid switch value '{v}' (use on/off)")


def _hour(v: str) -> int:
    h = int(v)
    if not 0 <= h <= 23:
        raise argparse.ArgumentTypeError(f"Hour must be 0..23, got {h}")
    return h


def _positive_int(v: str) -> int:
    n = int(v)
    if n <= 0:
        raise argparse.ArgumentTypeError(f"Expected a positive integer, got {n}")
    return n


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hydrolink")
    parser.add_argument("--config", default=None, help="YAML config file (defaults apply when omitted).")
    parser.add_argument("--log-level", default=None, help="Override logging.level from the config.")

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_scan = sub.add_parser("scan", help="List advertising controllers.")
    p_scan.add_argument("--secs", type=float, default=None, help="Scan window (default: device.scan_timeout_s).")

    p_mon = sub.add_parser("monitor", help="Connect and print live telemetry.")
    p_mon.add_argument("--device", default=None, help="Device id (default: stored default device).")
    p_mon.add_argument("--secs", type=float, default=None)
    p_mon.add_argument("--set-default", action="store_true", help="Remember --device as default.")

    p_send = sub.add_parser("send", help="Send one command to a controller.")
    p_send.add_argument("--device", default=None, help="Device id (default: stored default device).")
    actions = p_send.add_subparsers(dest="action", required=True)
    actions.add_parser("water-pump").add_argument("state", type=_on_off)
    actions.add_parser("air-pump").add_argument("state", type=_on_off)
    actions.add_parser("dose").add_argument("duration_ms", type=_positive_int)
    p_lights = actions.add_parser("lights")
    p_lights.add_argument("on_hour", type=_hour)
    p_lights.add_argument("off_hour", type=_hour)
    actions.add_parser("calibrate").add_argument("sensor")
    actions.add_parser("reboot")
    actions.add_parser("status")

    p_poll = sub.add_parser("poll", help="Poll the sensor API.")
    p_poll.add_argument("--secs", type=float, default=None)
    p_poll.add_argument("--once", action="store_true", help="Single refresh, then exit.")

    sub.add_parser("devices", help="List devices known to the sensor API.")

    p_hist = sub.add_parser("history", help="Print reading history from the sensor API.")
    p_hist.add_argument("--device", required=True)
    p_hist.add_argument("--hours", type=_positive_int, default=24)

    p_agg = sub.add_parser("aggregated", help="Print aggregated readings from the sensor API.")
    p_agg.add_argument("--device", required=True)
    p_agg.add_argument(
        "--interval",
        choices=[i.value for i in AggregationInterval],
        default=AggregationInterval.HOUR.value,
    )
    p_agg.add_argument("--hours", type=_positive_int, default=24)

    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)
