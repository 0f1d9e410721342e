from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any

import streamlit as st

from location_guard.audit import AuditRow, audit_row_dict, audit_samples, summarize_audit, write_audit_csv
from location_guard.config import KMH_PER_MPS, ValidatorConfig, region_from_value
from location_guard.csv_io import load_track_samples
from location_guard.models import DEFAULT_TZ


@st.cache_data(show_spinner=False)
def _load_track(track_csv: str, mtime: float) -> list[dict[str, Any]]:
    _ = mtime  # part of cache key so updated files reload automatically
    samples, _summary = load_track_samples(track_csv)
    return samples


def _config_from_sidebar() -> ValidatorConfig:
    defaults = ValidatorConfig()
    max_speed_kmh = st.number_input("Max plausible speed (km/h)", value=round(defaults.max_speed_kmh, 1), step=10.0)
    max_accuracy_m = st.number_input("Unusable accuracy above (m)", value=defaults.max_accuracy_m, step=100.0)
    coarse_accuracy_m = st.number_input("Coarse accuracy warning above (m)", value=defaults.coarse_accuracy_m, step=10.0)
    region = st.selectbox("Expected region", options=["(none)", "india"], index=0)
    with st.expander("Advanced", expanded=False):
        stale_after_s = st.number_input("Stale after (s)", value=defaults.stale_after_s, step=60.0)
        max_jump_km = st.number_input("Max jump distance (km, 0 = off)", value=0.0, step=50.0)
    return replace(
        defaults,
        max_speed_mps=float(max_speed_kmh) / KMH_PER_MPS,
        max_accuracy_m=float(max_accuracy_m),
        coarse_accuracy_m=float(coarse_accuracy_m),
        stale_after_s=float(stale_after_s),
        max_jump_distance_m=float(max_jump_km) * 1000.0 if max_jump_km > 0 else None,
        expected_region=None if region == "(none)" else region_from_value(region),
    )


def main() -> None:
    st.set_page_config(page_title="Location audit", layout="wide")
    st.title("Technician track audit: invalid fixes and GPS jumps")

    with st.sidebar:
        st.subheader("Data")
        tz_name = st.text_input("Timezone (IANA)", value=DEFAULT_TZ)
        track_csv = st.text_input("Track CSV path", value="sample_data/track.csv")
        audit_csv = st.text_input("Audit report output path", value="audit.csv")

        st.subheader("Thresholds")
        try:
            cfg = _config_from_sidebar()
        except ValueError as exc:
            st.error(str(exc))
            return

    p = Path(track_csv)
    if not p.exists():
        st.error(f"File not found: {track_csv!r}. Generate one with scripts/generate_sample_track_csv.py.")
        return

    try:
        samples = _load_track(track_csv, p.stat().st_mtime)
    except (KeyError, OSError) as exc:
        st.exception(exc)
        return

    # recorded tracks are historical: judge staleness against the last fix, not the wall clock
    times = [s["timestamp"] for s in samples if isinstance(s.get("timestamp"), int)]
    ref_ms = max(times) if times else None
    rows: list[AuditRow] = audit_samples(samples, cfg, now_ms=ref_ms)
    summary = summarize_audit(rows)

    st.subheader("Summary")
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Rows", str(summary.rows))
    c2.metric("Invalid fixes", str(summary.invalid))
    c3.metric("With warnings", str(summary.with_warnings))
    c4.metric("Unrealistic jumps", str(summary.unrealistic_jumps))

    st.subheader("Quality tiers")
    st.bar_chart({"tier": list(summary.tiers), "rows": list(summary.tiers.values())}, x="tier", y="rows")

    if summary.sampling is not None:
        st.caption(
            f"Sampling interval: median {summary.sampling.median_s:.0f}s, "
            f"p95 {summary.sampling.p95_s:.0f}s, max {summary.sampling.max_s:.0f}s"
        )

    table = [audit_row_dict(r, tz_name) for r in rows]
    only_flagged = st.checkbox("Show only flagged rows", value=True)
    if only_flagged:
        table = [t for t in table if not t["valid"] or t["unrealistic_jump"] or t["warnings"]]
    st.subheader("Rows")
    st.dataframe(table, use_container_width=True, height=520)

    valid = [r.validation.sample for r in rows if r.validation.sample is not None]
    if valid:
        st.subheader("Valid fixes")
        st.map({"lat": [s.latitude for s in valid], "lon": [s.longitude for s in valid]})

    if st.button("Export audit report", type="primary"):
        write_audit_csv(rows, audit_csv, tz_name)
        st.success(f"Written: {audit_csv}")


if __name__ == "__main__":
    main()
