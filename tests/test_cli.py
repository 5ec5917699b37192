from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from framecast.cli import app
from framecast.integrity import PAYLOAD_PATH
from framecast.store import Store

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("FRAMECAST_TYPE_CHECKER", "FRAMECAST_DB_PATH", "FRAMECAST_OUTPUT_ROOT", "FRAMECAST_FPS"):
        monkeypatch.delenv(name, raising=False)


def test_convert_given_timer_artifact_when_run_then_project_ledger_and_report_are_written(
    tmp_path,
    counter_source,
) -> None:
    # Given
    source = tmp_path / "counter.tsx"
    source.write_text(counter_source, encoding="utf-8")
    db_path = tmp_path / "ledger.db"

    # When
    result = runner.invoke(
        app,
        [
            "convert",
            str(source),
            "--project",
            str(tmp_path / "video"),
            "--db",
            str(db_path),
            "--out",
            str(tmp_path / "out"),
        ],
    )

    # Then
    assert result.exit_code == 0, result.output
    assert "[1/4] Reading artifact" in result.output
    assert "[4/4] Rendering conversion report" in result.output
    assert "Conversion complete." in result.output
    assert "useCurrentFrame" in (tmp_path / "video" / PAYLOAD_PATH).read_text(encoding="utf-8")

    rows = Store(db_path).list_conversions()
    assert len(rows) == 1
    assert rows[0]["identifier"] == "counter"
    assert rows[0]["integrity_state"] == "recovered"
    report = json.loads((tmp_path / "out" / rows[0]["conversion_id"] / "conversion.json").read_text(encoding="utf-8"))
    assert report["bindings"][0]["name"] == "count"


def test_convert_given_no_db_flag_when_run_then_nothing_is_persisted(tmp_path, static_source) -> None:
    # Given
    source = tmp_path / "title.tsx"
    source.write_text(static_source, encoding="utf-8")

    # When
    result = runner.invoke(app, ["convert", str(source), "--no-db", "--out", str(tmp_path / "out")])

    # Then
    assert result.exit_code == 0, result.output
    assert "--no-db enabled" in result.output
    assert not (tmp_path / ".framecast").exists()
    assert len(list((tmp_path / "out").iterdir())) == 1


def test_validate_given_undeclared_identifier_when_run_then_exits_nonzero(tmp_path) -> None:
    # Given
    source = tmp_path / "broken.tsx"
    source.write_text("export default function B() {\n  return <div>{undeclaredVar}</div>;\n}\n", encoding="utf-8")

    # When
    result = runner.invoke(app, ["validate", str(source)])

    # Then
    assert result.exit_code == 1
    assert "variable_flow/unresolved-identifier" in result.output
    assert "valid=False findings=1" in result.output


def test_validate_given_unknown_type_checker_when_run_then_reports_bad_parameter(tmp_path, static_source) -> None:
    # Given
    source = tmp_path / "title.tsx"
    source.write_text(static_source, encoding="utf-8")

    # When
    result = runner.invoke(app, ["validate", str(source), "--type-checker", "flow"])

    # Then
    assert result.exit_code != 0
    assert "type_checker" in result.output


def test_repair_given_write_flag_when_run_then_file_is_fixed_in_place(tmp_path) -> None:
    # Given
    source = tmp_path / "style.tsx"
    source.write_text("const s = { fontSize: ''42px' };\n", encoding="utf-8")

    # When
    result = runner.invoke(app, ["repair", str(source), "--write"])

    # Then
    assert result.exit_code == 0, result.output
    assert "Repaired 1 corruption(s)" in result.output
    assert source.read_text(encoding="utf-8") == "const s = { fontSize: '42px' };\n"


def test_check_and_recover_given_partial_project_when_run_then_project_becomes_complete(tmp_path) -> None:
    # Given
    project = tmp_path / "video"
    project.mkdir()
    (project / "remotion.config.ts").write_text("import { Config } from '@remotion/cli/config';\n", encoding="utf-8")

    # When
    before = runner.invoke(app, ["check", str(project)])
    recovered = runner.invoke(app, ["recover", str(project)])
    after = runner.invoke(app, ["check", str(project)])

    # Then
    assert before.exit_code == 1
    assert before.output.count("missing: ") == 5
    assert recovered.exit_code == 0, recovered.output
    assert "state=recovered final=complete" in recovered.output
    assert after.exit_code == 0
    assert "state=healthy" in after.output


def test_history_given_missing_database_when_run_then_reports_bad_parameter(tmp_path) -> None:
    # Given
    db_path = tmp_path / "absent.db"

    # When
    result = runner.invoke(app, ["history", "--db", str(db_path)])

    # Then
    assert result.exit_code != 0
    assert "Database not found" in result.output


def test_doctor_given_default_settings_when_run_then_prints_diagnostics(tmp_path) -> None:
    # Given
    db_path = tmp_path / "ledger.db"

    # When
    result = runner.invoke(app, ["doctor", "--db", str(db_path)])

    # Then
    assert result.exit_code == 0
    assert f"DB exists: False ({db_path})" in result.output
    assert "Type checker: none" in result.output
    assert "Composition: VideoComposition 1920x1080@30fps" in result.output
