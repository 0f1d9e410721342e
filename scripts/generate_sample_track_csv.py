from __future__ import annotations

import argparse
import csv
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Final

from zoneinfo import ZoneInfo


TZ: Final[str] = "Asia/Kolkata"


@dataclass(frozen=True, slots=True)
class Site:
    name: str
    lat: float
    lon: float


def _epoch_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def generate_samples(
    *,
    rows: int,
    seed: int,
    start_local: datetime,
    sites: list[Site],
) -> list[dict[str, str]]:
    """Generate a fake technician track: drives between customer sites plus some bad fixes."""

    rng = random.Random(seed)
    cur = start_local.replace(tzinfo=ZoneInfo(TZ))

    out: list[dict[str, str]] = []
    site = rng.choice(sites)

    for _ in range(rows):
        # Move to the next customer site now and then (plausible drive, time advances a lot)
        if rng.random() < 0.05:
            site = rng.choice(sites)
            cur = cur + timedelta(minutes=rng.uniform(40, 120))
        else:
            cur = cur + timedelta(seconds=rng.uniform(30, 300))

        lat = site.lat + rng.uniform(-0.001, 0.001)
        lon = site.lon + rng.uniform(-0.001, 0.001)
        accuracy = rng.choice([4.0, 6.0, 9.0, 15.0, 30.0, 65.0, 150.0])
        source = "gps"

        roll = rng.random()
        if roll < 0.02:
            # Spoofed fix: far-away city a few seconds later
            lat, lon = 28.6139 + rng.uniform(-0.01, 0.01), 77.2090 + rng.uniform(-0.01, 0.01)
        elif roll < 0.05:
            accuracy = rng.choice([450.0, 1200.0, 5000.0])
            source = "network"
        elif roll < 0.06:
            lat = 91.0 + rng.random()

        out.append(
            {
                "timestamp": str(_epoch_ms(cur)),
                "latitude": f"{lat:.7f}",
                "longitude": f"{lon:.7f}",
                "accuracy": f"{accuracy:.1f}",
                "source": source,
            }
        )

    # one unparseable row, as real exports have
    if out:
        out[rng.randrange(len(out))]["latitude"] = "n/a"

    out.sort(key=lambda r: int(r["timestamp"]))
    return out


def main() -> int:
    p = argparse.ArgumentParser(description="Generate a fake technician track CSV for demo/testing (privacy-safe).")
    p.add_argument("--out", type=str, default="sample_data/track.csv", help="Output CSV path")
    p.add_argument("--rows", type=int, default=500, help="Number of rows")
    p.add_argument("--seed", type=int, default=42, help="Random seed (reproducible)")
    p.add_argument(
        "--start",
        type=str,
        default="2025-09-15 08:00:00",
        help="Start local time in Asia/Kolkata, e.g. '2025-09-15 08:00:00'",
    )
    args = p.parse_args()

    start_local = datetime.fromisoformat(args.start)
    sites = [
        Site("bengaluru_whitefield", 12.9698000, 77.7500000),
        Site("bengaluru_koramangala", 12.9352000, 77.6245000),
        Site("bengaluru_peenya", 13.0285000, 77.5197000),
        Site("hosur_plant", 12.7409000, 77.8253000),
    ]

    rows = generate_samples(rows=args.rows, seed=args.seed, start_local=start_local, sites=sites)
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    with out_path.open("w", encoding="utf-8", newline="") as f:
        w = csv.DictWriter(f, fieldnames=["timestamp", "latitude", "longitude", "accuracy", "source"])
        w.writeheader()
        w.writerows(rows)

    print(f"Generated: {out_path} (rows={len(rows)}, seed={args.seed})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
