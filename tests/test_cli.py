import json

import pytest

from location_guard.cli import main

NOW = 1_757_920_000_000


def _json_out(capsys):
    return json.loads(capsys.readouterr().out)


def test_validate_clean_sample(capsys):
    rc = main(["validate", "--lat", "12.9", "--lon", "77.6", "--accuracy", "5"])

    out = _json_out(capsys)
    assert rc == 0
    assert out["validation"] == {"isValid": True, "errors": [], "warnings": []}
    assert out["quality"]["level"] == "excellent"


def test_validate_invalid_sample(capsys):
    rc = main(["validate", "--lat", "91", "--lon", "0"])

    out = _json_out(capsys)
    assert rc == 1
    assert out["validation"]["errors"] == ["latitude out of range [-90, 90]: 91.0"]
    assert "quality" not in out


def test_validate_with_region_override(capsys):
    rc = main(["validate", "--lat", "51.5", "--lon", "-0.12", "--accuracy", "5", "--region", "india"])

    assert rc == 0
    assert _json_out(capsys)["validation"]["warnings"] == ["location is outside the expected region"]


def test_jump_unrealistic(capsys):
    rc = main(
        [
            "jump",
            "--prev-lat", "12.0", "--prev-lon", "77.6", "--prev-time", str(NOW),
            "--lat", "12.45", "--lon", "77.6", "--time", str(NOW + 5 * 60_000),
        ]
    )

    out = _json_out(capsys)
    assert rc == 1
    assert out["jump"]["isUnrealistic"] is True
    assert out["speedKmh"] > 500


def test_jump_realistic_with_higher_limit(capsys):
    rc = main(
        [
            "jump",
            "--prev-lat", "12.0", "--prev-lon", "77.6", "--prev-time", str(NOW),
            "--lat", "12.45", "--lon", "77.6", "--time", str(NOW + 5 * 60_000),
            "--max-speed-kmh", "1000",
        ]
    )

    assert rc == 0
    assert _json_out(capsys)["jump"]["isUnrealistic"] is False


def test_jump_with_invalid_location(capsys):
    rc = main(["jump", "--prev-lat", "95", "--prev-lon", "0", "--lat", "1", "--lon", "1"])

    out = _json_out(capsys)
    assert rc == 1
    assert out["previousLocationErrors"] == ["latitude out of range [-90, 90]: 95.0"]


def test_audit_command(tmp_path, capsys):
    track = tmp_path / "track.csv"
    track.write_text(
        "timestamp,latitude,longitude,accuracy,source\n"
        f"{NOW},12.9698,77.75,8,gps\n"
        f"{NOW + 60_000},28.6139,77.2090,8,gps\n",
        encoding="utf-8",
    )
    out_csv = tmp_path / "audit.csv"

    rc = main(["audit", "--csv", str(track), "--out", str(out_csv), "--now", str(NOW + 60_000)])

    stdout = capsys.readouterr().out
    assert rc == 0
    assert out_csv.exists()
    assert "rows=2, valid=2, invalid=0" in stdout
    assert "unrealistic_jumps=1" in stdout


def test_checkin_records_then_rejects_jump(tmp_path, capsys):
    log = tmp_path / "visit_log.csv"
    base = ["checkin", "--log", str(log), "--ticket", "42", "--user", "7", "--accuracy", "8"]

    rc1 = main(base + ["--event", "STARTED", "--lat", "12.9698", "--lon", "77.75"])
    first = _json_out(capsys)
    rc2 = main(base + ["--event", "REACHED", "--lat", "28.6139", "--lon", "77.2090"])
    second = _json_out(capsys)

    assert rc1 == 0
    assert first["status"] == "recorded"
    assert first["record"]["id"] == 1
    assert rc2 == 1
    assert second["status"] == "rejected_jump"


def test_checkin_store_failure_exit_code(tmp_path, capsys):
    rc = main(["checkin", "--log", str(tmp_path), "--ticket", "1", "--user", "1", "--event", "STARTED", "--lat", "1", "--lon", "1"])

    assert rc == 2
    assert "visit log error" in capsys.readouterr().err


def test_missing_config_file(tmp_path, capsys):
    rc = main(["validate", "--lat", "1", "--lon", "1", "--config", str(tmp_path / "missing.json")])

    assert rc == 2
    assert capsys.readouterr().err.startswith("error:")


def test_unknown_subcommand_exits():
    with pytest.raises(SystemExit):
        main(["teleport"])
