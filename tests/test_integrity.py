from __future__ import annotations

import contextlib
import shutil

import pytest

from framecast import integrity
from framecast.errors import ProjectLockError, RecoveryExhaustedError
from framecast.integrity import (
    PAYLOAD_PATH,
    auto_recover_project,
    check_project_integrity,
    ensure_recovered,
    project_lock,
    write_payload,
    write_text_atomic,
)
from framecast.models import ManifestEntry, ProjectManifest
from framecast.templates import config_template, placeholder_composition
from framecast.validator import validate


def _snapshot(project_dir):
    return {
        path.relative_to(project_dir).as_posix(): (path.stat().st_mtime_ns, path.read_bytes())
        for path in sorted(project_dir.rglob("*"))
        if path.is_file()
    }


def test_check_project_integrity_given_only_config_when_checked_then_five_entries_missing(
    tmp_path,
    manifest,
) -> None:
    # Given
    project = tmp_path / "video"
    project.mkdir()
    (project / "remotion.config.ts").write_text(config_template(), encoding="utf-8")

    # When
    report = check_project_integrity(project, manifest)

    # Then
    assert report.final_state == "still_incomplete"
    assert report.state == "checked"
    assert report.missing == ["src/", "public/", PAYLOAD_PATH, "src/Root.tsx", "src/index.ts"]
    assert report.malformed == []


def test_auto_recover_project_given_only_config_when_recovered_then_all_entries_exist(
    tmp_path,
    manifest,
    counter_source,
) -> None:
    # Given
    project = tmp_path / "video"
    project.mkdir()
    (project / "remotion.config.ts").write_text(config_template(), encoding="utf-8")

    # When
    report = auto_recover_project(project, manifest, payload_text=counter_source)
    recheck = check_project_integrity(project, manifest)

    # Then
    assert report.state == "recovered"
    assert report.final_state == "complete"
    assert report.attempts == 1
    assert len(report.actions_taken) == 5
    assert report.actions_taken[0] == "Created src directory"
    assert (project / PAYLOAD_PATH).read_text(encoding="utf-8") == counter_source
    assert "registerRoot(RemotionRoot);" in (project / "src/index.ts").read_text(encoding="utf-8")
    assert (project / "public").is_dir()
    assert recheck.final_state == "complete"
    assert recheck.state == "healthy"
    assert recheck.missing == []


def test_auto_recover_project_given_missing_directory_when_recovered_then_placeholder_payload_is_written(
    tmp_path,
    manifest,
) -> None:
    # Given
    project = tmp_path / "fresh"

    # When
    report = auto_recover_project(project, manifest)

    # Then
    assert report.final_state == "complete"
    payload = (project / PAYLOAD_PATH).read_text(encoding="utf-8")
    assert "export default VideoComposition;" in payload
    assert "useCurrentFrame()" in payload


def test_auto_recover_project_given_healthy_project_when_recovered_then_nothing_is_written(
    tmp_path,
    manifest,
) -> None:
    # Given
    project = tmp_path / "video"
    auto_recover_project(project, manifest)
    before = _snapshot(project)

    # When
    report = auto_recover_project(project, manifest)

    # Then
    assert report.state == "healthy"
    assert report.actions_taken == []
    assert report.attempts == 0
    assert _snapshot(project) == before


def test_auto_recover_project_given_malformed_payload_when_recovered_then_it_is_replaced(
    tmp_path,
    manifest,
    static_source,
) -> None:
    # Given
    project = tmp_path / "video"
    auto_recover_project(project, manifest)
    (project / PAYLOAD_PATH).write_text("export default function ( {", encoding="utf-8")
    (project / "src/Root.tsx").write_text("   \n", encoding="utf-8")

    # When
    checked = check_project_integrity(project, manifest)
    report = auto_recover_project(project, manifest, payload_text=static_source)

    # Then
    assert checked.missing == [PAYLOAD_PATH, "src/Root.tsx"]
    assert checked.malformed == [PAYLOAD_PATH, "src/Root.tsx"]
    assert report.actions_taken == [f"Replaced malformed {PAYLOAD_PATH}", "Replaced malformed src/Root.tsx"]
    assert (project / PAYLOAD_PATH).read_text(encoding="utf-8") == static_source


def test_ensure_recovered_given_entry_without_template_when_recovered_then_raises_after_budget(tmp_path) -> None:
    # Given
    manifest = ProjectManifest(
        entries=(
            ManifestEntry(relative_path="src", kind="directory"),
            ManifestEntry(relative_path="assets/logo.png", kind="required_file"),
        )
    )

    # When
    with pytest.raises(RecoveryExhaustedError) as excinfo:
        ensure_recovered(tmp_path / "video", manifest, max_attempts=2)

    # Then
    report = excinfo.value.report
    assert report.state == "partially_recovered"
    assert report.final_state == "still_incomplete"
    assert report.attempts == 2
    assert report.missing == ["assets/logo.png"]
    assert (tmp_path / "video" / "src").is_dir()


def test_write_payload_given_existing_project_when_written_then_payload_is_replaced(
    tmp_path,
    manifest,
    static_source,
) -> None:
    # Given
    project = tmp_path / "video"
    auto_recover_project(project, manifest)

    # When
    target = write_payload(project, manifest, static_source)

    # Then
    assert target == project / PAYLOAD_PATH
    assert target.read_text(encoding="utf-8") == static_source
    assert not (project / (PAYLOAD_PATH + ".tmp")).exists()


def test_project_lock_given_held_lock_when_acquired_again_then_times_out(tmp_path) -> None:
    # Given
    project = tmp_path / "video"

    # When / Then
    with project_lock(project):
        with pytest.raises(ProjectLockError):
            with project_lock(project, timeout_seconds=0.1):
                pass


def test_auto_recover_project_given_project_completed_while_waiting_for_lock_when_recovered_then_nothing_is_written(
    tmp_path,
    manifest,
    monkeypatch,
) -> None:
    # Given
    other_payload = "export const Other = 2;\n"
    finished = tmp_path / "finished"
    auto_recover_project(finished, manifest, payload_text=other_payload)
    project = tmp_path / "video"
    real_lock = integrity.project_lock

    @contextlib.contextmanager
    def lock_after_other_writer(project_dir, timeout_seconds=integrity.LOCK_TIMEOUT_SECONDS):
        shutil.copytree(finished, project_dir, dirs_exist_ok=True)
        with real_lock(project_dir, timeout_seconds):
            yield None

    monkeypatch.setattr(integrity, "project_lock", lock_after_other_writer)

    # When
    report = auto_recover_project(project, manifest, payload_text="export const Mine = 1;\n")

    # Then
    assert report.state == "healthy"
    assert report.final_state == "complete"
    assert report.actions_taken == []
    assert report.attempts == 0
    assert (project / PAYLOAD_PATH).read_text(encoding="utf-8") == other_payload


def test_write_text_atomic_given_failing_replace_when_written_then_temporary_file_is_removed(
    tmp_path,
    monkeypatch,
) -> None:
    # Given
    target = tmp_path / "src" / "Root.tsx"

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(integrity.os, "replace", failing_replace)

    # When
    with pytest.raises(OSError):
        write_text_atomic(target, "export const Root = () => null;\n")

    # Then
    assert not target.exists()
    assert list(target.parent.iterdir()) == []


def test_placeholder_composition_given_title_with_newline_and_quotes_when_rendered_then_output_parses(
    composition,
) -> None:
    # Given
    title = "it's a \"demo\"\nline two \\ end"

    # When
    text = placeholder_composition(composition, title=title)
    report = validate(text, identifier="placeholder")

    # Then
    assert report.is_valid is True
    assert report.by_layer("syntax") == []
    assert '{"it\'s a \\"demo\\"\\nline two \\\\ end"}' in text
