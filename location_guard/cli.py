"""Command-line interface for location_guard.

Run:
    python -m location_guard validate --lat 12.97 --lon 77.59 --accuracy 8
    python -m location_guard audit --csv track.csv --out audit.csv
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import replace
from typing import Any

from location_guard.audit import audit_samples, summarize_audit, write_audit_csv
from location_guard.config import KMH_PER_MPS, ValidatorConfig, load_config, region_from_value
from location_guard.csv_io import load_track_samples
from location_guard.models import DEFAULT_TZ, VisitEvent
from location_guard.timeutils import now_ms, parse_time_ms
from location_guard.validation import detect_location_jump, get_location_quality, validate_location

logger = logging.getLogger(__name__)


def _config_from_args(args: argparse.Namespace) -> ValidatorConfig:
    cfg = load_config(args.config) if args.config else ValidatorConfig()
    overrides: dict[str, Any] = {}
    if args.max_speed_kmh is not None:
        overrides["max_speed_mps"] = args.max_speed_kmh / KMH_PER_MPS
    if args.max_accuracy_m is not None:
        overrides["max_accuracy_m"] = args.max_accuracy_m
    if args.coarse_accuracy_m is not None:
        overrides["coarse_accuracy_m"] = args.coarse_accuracy_m
    if args.stale_after_s is not None:
        overrides["stale_after_s"] = args.stale_after_s
    if args.max_jump_km is not None:
        overrides["max_jump_distance_m"] = args.max_jump_km * 1000.0
    if args.region is not None:
        overrides["expected_region"] = region_from_value(args.region)
    return replace(cfg, **overrides) if overrides else cfg


def _sample_from_args(args: argparse.Namespace, prefix: str = "") -> dict[str, Any]:
    time_text = getattr(args, f"{prefix}time")
    return {
        "latitude": getattr(args, f"{prefix}lat"),
        "longitude": getattr(args, f"{prefix}lon"),
        "accuracy": getattr(args, f"{prefix}accuracy"),
        "timestamp": now_ms() if time_text is None else parse_time_ms(time_text, args.tz),
        "source": getattr(args, f"{prefix}source"),
    }


def _geocoder_from_args(args: argparse.Namespace):
    from location_guard.geocode import (
        LOCATIONIQ_REVERSE_URL,
        NOMINATIM_REVERSE_URL,
        JsonDiskCache,
        NominatimConfig,
        NominatimReverseGeocoder,
    )

    api_key = os.environ.get("LOCATIONIQ_KEY") or None
    cfg = NominatimConfig(
        base_url=args.geocode_url or (LOCATIONIQ_REVERSE_URL if api_key else NOMINATIM_REVERSE_URL),
        accept_language=args.geocode_lang,
        timeout_seconds=args.geocode_timeout_seconds,
        min_interval_seconds=args.geocode_min_interval,
        user_agent=args.geocode_user_agent,
        api_key=api_key,
        provider="locationiq" if api_key else "nominatim",
    )
    cache = JsonDiskCache(args.geocode_cache) if args.geocode_cache else None
    return NominatimReverseGeocoder(cfg, cache=cache), cache


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _cmd_validate(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args)
    raw = _sample_from_args(args)
    validation = validate_location(raw, cfg)
    payload: dict[str, Any] = {"sample": raw, "validation": validation.to_dict()}
    if validation.sample is None:
        _print_json(payload)
        return 1

    payload["quality"] = get_location_quality(validation.sample, cfg).to_dict()
    if args.geocode:
        from location_guard.geocode import GeocodingError

        geocoder, cache = _geocoder_from_args(args)
        try:
            payload["geocode"] = geocoder.reverse_geocode(validation.sample.latitude, validation.sample.longitude).to_dict()
        except GeocodingError as exc:
            # location is still valid; only the address lookup failed
            payload["geocode_error"] = str(exc)
        if cache is not None:
            cache.flush()
    _print_json(payload)
    return 0


def _cmd_jump(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args)
    prev_raw = _sample_from_args(args, "prev_")
    next_raw = _sample_from_args(args)
    prev_v = validate_location(prev_raw, cfg)
    next_v = validate_location(next_raw, cfg)
    if prev_v.sample is None or next_v.sample is None:
        _print_json(
            {
                "message": "one or both locations are invalid",
                "previousLocationErrors": list(prev_v.errors),
                "newLocationErrors": list(next_v.errors),
            }
        )
        return 1

    jump = detect_location_jump(prev_v.sample, next_v.sample, config=cfg)
    _print_json(
        {
            "jump": jump.to_dict(),
            "speedKmh": round(jump.speed_mps * KMH_PER_MPS, 1),
            "previousLocation": {
                "warnings": list(prev_v.warnings),
                "quality": get_location_quality(prev_v.sample, cfg).to_dict(),
            },
            "newLocation": {
                "warnings": list(next_v.warnings),
                "quality": get_location_quality(next_v.sample, cfg).to_dict(),
            },
        }
    )
    return 1 if jump.is_unrealistic else 0


def _cmd_audit(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args)
    raw_samples, csv_summary = load_track_samples(args.csv)
    ref_ms = parse_time_ms(args.now, args.tz) if args.now else None
    rows = audit_samples(raw_samples, cfg, now_ms=ref_ms)
    write_audit_csv(rows, args.out, args.tz)
    s = summarize_audit(rows)

    print(f"rows={s.rows}, valid={s.valid}, invalid={s.invalid}, with_warnings={s.with_warnings}")
    print(f"unrealistic_jumps={s.unrealistic_jumps} (max speed {cfg.max_speed_kmh:.0f} km/h)")
    print("quality: " + ", ".join(f"{k}={v}" for k, v in s.tiers.items()))
    if s.sampling is not None:
        print(
            f"sampling interval (s): median={s.sampling.median_s:.1f}, "
            f"p95={s.sampling.p95_s:.1f}, max={s.sampling.max_s:.1f}"
        )
    if csv_summary.rows_with_bad_numbers:
        print(f"rows with unparseable numbers: {csv_summary.rows_with_bad_numbers}")
    print(f"written: {args.out}")
    return 0


def _cmd_checkin(args: argparse.Namespace) -> int:
    from location_guard.checkin import CheckinStatus, record_visit_event
    from location_guard.visit_log import VisitLogError, VisitLogStore

    cfg = _config_from_args(args)
    store = VisitLogStore(args.log)
    geocoder, cache = _geocoder_from_args(args) if args.geocode else (None, None)
    try:
        outcome = record_visit_event(
            store,
            _sample_from_args(args),
            ticket_id=args.ticket,
            user_id=args.user,
            event=args.event,
            geocoder=geocoder,
            config=cfg,
            reject_jumps=not args.allow_jumps,
        )
    except VisitLogError as exc:
        print(f"visit log error: {exc}", file=sys.stderr)
        return 2
    finally:
        if cache is not None:
            cache.flush()

    _print_json(outcome.to_dict())
    return 0 if outcome.status == CheckinStatus.RECORDED else 1


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("--tz", type=str, default=DEFAULT_TZ, help="Timezone (IANA) for datetime input/output")
    p.add_argument("--config", type=str, default=None, help="JSON file with validator thresholds")
    p.add_argument("--max-speed-kmh", type=float, default=None, help="Jump threshold (default 200 km/h)")
    p.add_argument("--max-accuracy-m", type=float, default=None, help="Accuracy above this is unusable")
    p.add_argument("--coarse-accuracy-m", type=float, default=None, help="Accuracy above this gives a warning")
    p.add_argument("--stale-after-s", type=float, default=None, help="Older fixes give a stale warning")
    p.add_argument("--max-jump-km", type=float, default=None, help="Flag any jump longer than this distance")
    p.add_argument("--region", type=str, default=None, help="Expected operating region (e.g. india)")


def _add_sample(p: argparse.ArgumentParser, prefix: str = "", label: str = "") -> None:
    p.add_argument(f"--{prefix}lat", type=float, required=True, help=f"{label}latitude")
    p.add_argument(f"--{prefix}lon", type=float, required=True, help=f"{label}longitude")
    p.add_argument(f"--{prefix}accuracy", type=float, default=None, help=f"{label}accuracy in meters")
    p.add_argument(
        f"--{prefix}time",
        type=str,
        default=None,
        help=f"{label}time: epoch ms or '2025-09-15 09:30:00' (default now)",
    )
    p.add_argument(f"--{prefix}source", type=str, default="gps", help=f"{label}source: gps/network/manual")


def _add_geocode(p: argparse.ArgumentParser) -> None:
    p.add_argument("--geocode", action="store_true", help="Reverse geocode the location")
    p.add_argument("--geocode-url", type=str, default=None, help="Reverse API URL (Nominatim compatible)")
    p.add_argument("--geocode-cache", type=str, default="geocode_cache.json", help="Geocode cache file ('' disables)")
    p.add_argument("--geocode-lang", type=str, default="en", help="Address language")
    p.add_argument("--geocode-timeout-seconds", type=float, default=10.0, help="Per-request timeout")
    p.add_argument("--geocode-min-interval", type=float, default=1.0, help="Minimum seconds between requests")
    p.add_argument(
        "--geocode-user-agent",
        type=str,
        default="location-guard/0.1.0 (reverse-geocode; set your own UA)",
        help="HTTP User-Agent",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""

    p = argparse.ArgumentParser(prog="location_guard")
    p.add_argument("--log-level", type=str, default="WARNING", help="Logging level (DEBUG/INFO/WARNING)")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_val = sub.add_parser("validate", help="Validate one location fix and grade its quality")
    _add_sample(p_val)
    _add_common(p_val)
    _add_geocode(p_val)
    p_val.set_defaults(func=_cmd_validate)

    p_jump = sub.add_parser("jump", help="Check whether moving between two fixes is plausible")
    _add_sample(p_jump, "prev-", "previous ")
    _add_sample(p_jump, "", "next ")
    _add_common(p_jump)
    p_jump.set_defaults(func=_cmd_jump)

    p_aud = sub.add_parser("audit", help="Audit a recorded track CSV and export a report")
    p_aud.add_argument("--csv", type=str, default="track.csv", help="Input track CSV")
    p_aud.add_argument("--out", type=str, default="audit.csv", help="Output report CSV")
    p_aud.add_argument(
        "--now",
        type=str,
        default=None,
        help="Reference time for stale/future checks (default: wall clock)",
    )
    _add_common(p_aud)
    p_aud.set_defaults(func=_cmd_audit)

    p_chk = sub.add_parser("checkin", help="Record an onsite visit event in the visit log")
    p_chk.add_argument("--log", type=str, default="visit_log.csv", help="Visit log CSV")
    p_chk.add_argument("--ticket", type=int, required=True, help="Ticket id")
    p_chk.add_argument("--user", type=int, required=True, help="Technician user id")
    p_chk.add_argument("--event", type=str, required=True, choices=[e.value for e in VisitEvent])
    p_chk.add_argument("--allow-jumps", action="store_true", help="Record even if the jump check fails")
    _add_sample(p_chk)
    _add_common(p_chk)
    _add_geocode(p_chk)
    p_chk.set_defaults(func=_cmd_checkin)

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        return int(args.func(args))
    except (ValueError, KeyError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
