import json

import pytest
from typer.testing import CliRunner

from app.importers.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def memory_backend(monkeypatch):
    monkeypatch.delenv("REFSTORE_BACKEND", raising=False)


def test_normalize_command():
    result = runner.invoke(app, ["normalize", "cpt 99213"])
    assert result.exit_code == 0
    assert "99213" in result.stdout
    assert "valid=True" in result.stdout


def test_search_command_json():
    result = runner.invoke(app, ["search", "colonoscopy biopsy", "--json"])
    assert result.exit_code == 0
    candidates = json.loads(result.stdout)
    assert candidates[0]["code"] == "45380"
    assert candidates[0]["confidence"] == "high"


def test_resolve_command_reports_invalid_queries():
    result = runner.invoke(app, ["resolve", "knee", "--json"])
    assert result.exit_code == 0
    assert json.loads(result.stdout)["is_valid_query"] is False


def test_scan_command_falls_back_to_filename(tmp_path):
    path = tmp_path / "statement_62704.txt"
    path.write_text("", encoding="utf-8")

    result = runner.invoke(app, ["scan", str(path), "--json"])

    assert result.exit_code == 0
    body = json.loads(result.stdout)
    assert (body["zip5"], body["state_abbr"]) == ("62704", "IL")


def test_import_zip_command(tmp_path):
    path = tmp_path / "zip5.csv"
    path.write_text(
        "STATE,ZIP CODE,CARRIER,LOCALITY,YEAR/QTR\n"
        "IL,62704,06102,16,20261\n"
        "MA,02115,14312,01,20261\n"
        "MA,02115,14312,01,20254\n",
        encoding="utf-8",
    )

    result = runner.invoke(app, ["import", "zip", str(path)])

    assert result.exit_code == 0
    assert "imported 2/2 rows" in result.stdout
    assert "skipped 1 duplicates" in result.stdout


def test_import_zip_command_rejects_bad_header(tmp_path):
    path = tmp_path / "zip5.csv"
    path.write_text("STATE,CODE\nIL,62704\n", encoding="utf-8")

    result = runner.invoke(app, ["import", "zip", str(path)])

    assert result.exit_code == 1


def test_status_command_json():
    result = runner.invoke(app, ["status", "--json"])

    assert result.exit_code == 0
    statuses = json.loads(result.stdout)
    assert [s["dataset"] for s in statuses] == ["mpfs", "gpci", "zip", "opps", "dmepos"]
    assert all(s["row_count"] == 0 and s["error"] is None for s in statuses)


def test_import_opps_command(tmp_path):
    path = tmp_path / "addendum_b.csv"
    path.write_text(
        "Addendum B.-Final OPPS Payment by HCPCS Code,,,,\n"
        "HCPCS Code,Short Descriptor,SI,APC,Payment Rate\n"
        '29880,Knee arthroscopy/surgery,J1,5114,"$8,107.69"\n'
        "C1713,Anchor/screw bn/bn,N,,\n",
        encoding="utf-8",
    )

    result = runner.invoke(app, ["import", "opps", str(path), "--year", "2026"])

    assert result.exit_code == 0
    assert "Parsed 2 opps records" in result.stdout
    assert "imported 2/2 rows" in result.stdout


def test_import_dmepos_command_rejects_file_without_header(tmp_path):
    path = tmp_path / "dmepos.csv"
    path.write_text("Code,Description\nE0114,Crutches\n", encoding="utf-8")

    result = runner.invoke(app, ["import", "dmepos", str(path)])

    assert result.exit_code == 1
