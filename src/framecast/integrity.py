"""Check a project directory against its manifest and rebuild what is missing."""

from __future__ import annotations

import contextlib
import fcntl
import logging
import os
import time
from collections.abc import Iterator
from pathlib import Path

from framecast.errors import ProjectLockError, RecoveryExhaustedError
from framecast.models import IntegrityReport, ManifestEntry, ProjectManifest
from framecast.parser import try_parse
from framecast.templates import (
    CompositionSettings,
    config_template,
    entry_template,
    placeholder_composition,
    root_template,
)

logger = logging.getLogger(__name__)

DEFAULT_RECOVERY_ATTEMPTS = 3
LOCK_TIMEOUT_SECONDS = 10.0
PAYLOAD_PATH = "src/VideoComposition.tsx"


def default_manifest(settings: CompositionSettings | None = None) -> ProjectManifest:
    """The six entries a renderable Remotion project needs."""
    settings = settings or CompositionSettings()
    return ProjectManifest(
        entries=(
            ManifestEntry(relative_path="src", kind="directory"),
            ManifestEntry(relative_path="public", kind="directory"),
            ManifestEntry(
                relative_path=PAYLOAD_PATH,
                kind="required_file",
                template=placeholder_composition(settings),
                primary_payload=True,
            ),
            ManifestEntry(relative_path="src/Root.tsx", kind="required_file", template=root_template(settings)),
            ManifestEntry(relative_path="src/index.ts", kind="required_file", template=entry_template()),
            ManifestEntry(relative_path="remotion.config.ts", kind="required_file", template=config_template()),
        )
    )


def check_project_integrity(project_dir: Path, manifest: ProjectManifest) -> IntegrityReport:
    """Compare ``project_dir`` with ``manifest`` without writing anything.

    Empty files, entries of the wrong kind and a primary payload that does
    not parse are reported both as missing and as malformed.
    """
    project_dir = Path(project_dir)
    missing: list[str] = []
    malformed: list[str] = []
    for entry in manifest.entries:
        problem = _entry_problem(project_dir, entry)
        if problem is None:
            continue
        missing.append(entry.display_path)
        if problem != "absent":
            malformed.append(entry.display_path)
            logger.debug("%s is malformed: %s", entry.display_path, problem)

    complete = not missing
    return IntegrityReport(
        project_dir=project_dir,
        state="healthy" if complete else "checked",
        missing=missing,
        malformed=malformed,
        final_state="complete" if complete else "still_incomplete",
    )


def _entry_problem(project_dir: Path, entry: ManifestEntry) -> str | None:
    path = project_dir / entry.relative_path
    if not path.exists():
        return "absent"
    if entry.kind == "directory":
        return None if path.is_dir() else "expected a directory"
    if not path.is_file():
        return "expected a file"
    text = path.read_text(encoding="utf-8", errors="replace")
    if not text.strip():
        return "empty"
    if entry.primary_payload and try_parse(text) is None:
        return "does not parse"
    return None


def auto_recover_project(
    project_dir: Path,
    manifest: ProjectManifest,
    payload_text: str | None = None,
    max_attempts: int = DEFAULT_RECOVERY_ATTEMPTS,
) -> IntegrityReport:
    """Create or replace every missing manifest entry.

    A healthy project is left untouched. Otherwise each attempt rewrites the
    entries that are still missing and re-checks, up to ``max_attempts``.

    Args:
        project_dir: Project root; created if absent.
        manifest: Entries the project must contain.
        payload_text: Content for the primary payload. Falls back to the
            entry's placeholder template when omitted.
        max_attempts: Upper bound on write-then-check cycles.

    Returns:
        The final report with ``state`` ``healthy``, ``recovered`` or
        ``partially_recovered`` and every action taken, in order.
    """
    project_dir = Path(project_dir)
    report = check_project_integrity(project_dir, manifest)
    if report.final_state == "complete":
        logger.info("project %s is healthy", project_dir)
        return report

    actions: list[str] = []
    attempts = 0
    with project_lock(project_dir):
        # Another writer may have completed the project while this one waited.
        report = check_project_integrity(project_dir, manifest)
        if report.final_state == "complete":
            logger.info("project %s became healthy while waiting for the lock", project_dir)
            return report
        initially_missing = list(report.missing)
        initially_malformed = list(report.malformed)
        while attempts < max(1, max_attempts) and report.final_state != "complete":
            attempts += 1
            logger.info("recovering %s (attempt %d): missing %s", project_dir, attempts, ", ".join(report.missing))
            for entry in manifest.entries:
                if entry.display_path not in report.missing:
                    continue
                action = _restore_entry(project_dir, entry, payload_text, entry.display_path in report.malformed)
                if action is not None:
                    actions.append(action)
            report = check_project_integrity(project_dir, manifest)

    complete = report.final_state == "complete"
    return report.model_copy(
        update={
            "state": "recovered" if complete else "partially_recovered",
            "missing": initially_missing if complete else report.missing,
            "malformed": initially_malformed if complete else report.malformed,
            "actions_taken": actions,
            "attempts": attempts,
        }
    )


def ensure_recovered(
    project_dir: Path,
    manifest: ProjectManifest,
    payload_text: str | None = None,
    max_attempts: int = DEFAULT_RECOVERY_ATTEMPTS,
) -> IntegrityReport:
    """``auto_recover_project`` that raises when the project stays incomplete."""
    report = auto_recover_project(project_dir, manifest, payload_text=payload_text, max_attempts=max_attempts)
    if report.final_state != "complete":
        raise RecoveryExhaustedError(report)
    return report


def write_payload(project_dir: Path, manifest: ProjectManifest, payload_text: str) -> Path:
    """Replace the primary payload with ``payload_text`` under the project lock."""
    entry = manifest.primary_payload
    if entry is None:
        raise ValueError("manifest has no primary payload entry")
    target = Path(project_dir) / entry.relative_path
    with project_lock(Path(project_dir)):
        write_text_atomic(target, payload_text)
    logger.info("wrote payload %s (%d chars)", target, len(payload_text))
    return target


def _restore_entry(project_dir: Path, entry: ManifestEntry, payload_text: str | None, malformed: bool) -> str | None:
    path = project_dir / entry.relative_path
    verb = "Replaced malformed" if malformed else "Created"
    if entry.kind == "directory":
        if path.exists() and not path.is_dir():
            path.unlink()
        path.mkdir(parents=True, exist_ok=True)
        return f"{verb} {entry.relative_path.rstrip('/')} directory"

    content = payload_text if entry.primary_payload and payload_text is not None else entry.template
    if content is None:
        logger.warning("no template for %s; cannot recreate it", entry.relative_path)
        return None
    if path.is_dir():
        try:
            path.rmdir()
        except OSError:
            logger.warning("%s is a non-empty directory; leaving it in place", entry.relative_path)
            return None
    write_text_atomic(path, content)
    return f"{verb} {entry.relative_path}"


def write_text_atomic(path: Path, text: str) -> None:
    """Write plain text atomically to the target path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    try:
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


@contextlib.contextmanager
def project_lock(project_dir: Path, timeout_seconds: float = LOCK_TIMEOUT_SECONDS) -> Iterator[None]:
    """Exclusive advisory lock serializing writers of one project directory."""
    project_dir = project_dir.resolve()
    lock_path = project_dir.parent / f".{project_dir.name}.framecast.lock"
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    fh = lock_path.open("a+")
    start = time.monotonic()
    while True:
        try:
            fcntl.flock(fh, fcntl.LOCK_EX | fcntl.LOCK_NB)
            break
        except BlockingIOError:
            if time.monotonic() - start >= timeout_seconds:
                fh.close()
                raise ProjectLockError(f"project lock timeout after {timeout_seconds}s: {lock_path}")
            time.sleep(0.05)
    try:
        yield None
    finally:
        try:
            fcntl.flock(fh, fcntl.LOCK_UN)
        finally:
            fh.close()
