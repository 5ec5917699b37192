"""Typer-based CLI for converting, validating, and recovering Remotion artifacts."""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError

from framecast.config import PipelineConfig, Settings
from framecast.errors import ProjectLockError, RecoveryExhaustedError
from framecast.integrity import auto_recover_project, check_project_integrity
from framecast.logging_config import setup_logging
from framecast.models import Artifact, ConversionRecord, IntegrityReport, PipelineOutcome, ValidationReport
from framecast.oracle import TscTypeChecker
from framecast.pipeline import ConversionPipeline
from framecast.renderer import flatten_findings, render_conversion
from framecast.repair import repair as repair_text
from framecast.store import Store
from framecast.validator import validate as validate_text

app = typer.Typer(add_completion=False, help="framecast: turn interactive TSX artifacts into deterministic video compositions")


def _echo_step(step: int, total: int, message: str) -> None:
    """Print a normalized progress step line."""
    typer.echo(f"[{step}/{total}] {message}")


def _load_settings(**overrides: Any) -> Settings:
    """Build settings from the environment, letting explicit CLI options win."""
    try:
        settings = Settings(**{key: value for key, value in overrides.items() if value is not None})
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    setup_logging(settings.log_level)
    return settings


def _read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise typer.BadParameter(f"Cannot read {path}: {exc}") from exc


def _echo_findings(report: ValidationReport) -> None:
    for finding in report.findings:
        where = f" {finding.span.label()}" if finding.span else ""
        typer.echo(f"    {finding.severity:<8} {finding.layer}/{finding.rule}{where}: {finding.message}")


def _echo_integrity(report: IntegrityReport) -> None:
    typer.echo(f"    state={report.state} final={report.final_state} attempts={report.attempts}")
    for path in report.missing:
        marker = "malformed" if path in report.malformed else "missing"
        typer.echo(f"    {marker}: {path}")
    for action in report.actions_taken:
        typer.echo(f"    action: {action}")


def _build_conversion_record(source_text: str, outcome: PipelineOutcome, project_dir: Path | None) -> ConversionRecord:
    """Flatten a pipeline outcome into the row persisted in the ledger."""
    rewrite = outcome.rewrite
    integrity = outcome.integrity
    return ConversionRecord(
        conversion_id=uuid.uuid4().hex[:12],
        identifier=outcome.identifier,
        created_at=datetime.now(timezone.utc),
        source_sha256=hashlib.sha256(source_text.encode("utf-8")).hexdigest(),
        source_text=source_text,
        output_text=outcome.output_text,
        is_valid=outcome.report.is_valid,
        confidence=rewrite.confidence if rewrite else None,
        bindings_total=rewrite.bindings_total if rewrite else 0,
        bindings_rewritten=rewrite.bindings_rewritten if rewrite else 0,
        used_placeholder=outcome.used_placeholder,
        input_fix_count=outcome.input_repair.fix_count if outcome.input_repair else 0,
        output_fix_count=outcome.repair.fix_count,
        notes=list(rewrite.notes) if rewrite else [],
        project_dir=str(project_dir) if project_dir is not None else None,
        integrity_state=integrity.state if integrity else None,
    )


@app.command("convert")
def convert(
    source: Path = typer.Argument(..., help="TSX artifact to convert"),
    identifier: str | None = typer.Option(None, help="Name for this conversion (defaults to the file stem)"),
    project: Path | None = typer.Option(None, "--project", help="Remotion project directory to write into"),
    db_path: Path | None = typer.Option(None, "--db", help="SQLite database path"),
    output_root: Path | None = typer.Option(None, "--out", help="Conversion report output directory"),
    type_checker: str | None = typer.Option(None, "--type-checker", help="Type-check oracle: tsc or none"),
    fps: int | None = typer.Option(None, min=1, help="Frames per second of the composition"),
    no_db: bool = typer.Option(False, "--no-db", help="Do not persist the conversion to SQLite"),
) -> None:
    """Convert one artifact, validate it, and optionally write it into a project."""
    total_steps = 4
    settings = _load_settings(type_checker=type_checker, fps=fps, db_path=db_path, output_root=output_root)

    _echo_step(1, total_steps, "Reading artifact")
    source_text = _read_source(source)
    artifact = Artifact(source_text=source_text, identifier=identifier or source.stem)

    _echo_step(2, total_steps, "Running conversion pipeline")
    pipeline = ConversionPipeline(PipelineConfig.from_settings(settings))
    try:
        outcome = pipeline.convert(artifact, project_dir=project)
    except (RecoveryExhaustedError, ProjectLockError) as exc:
        typer.echo(f"Project recovery failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    rewrite = outcome.rewrite
    if rewrite is not None:
        typer.echo(
            f"    bindings={rewrite.bindings_rewritten}/{rewrite.bindings_total} "
            f"confidence={rewrite.confidence:.2f} placeholder={outcome.used_placeholder}"
        )
    _echo_findings(outcome.report)
    if outcome.integrity is not None:
        _echo_integrity(outcome.integrity)

    record = _build_conversion_record(source_text, outcome, project if outcome.integrity else None)
    findings = flatten_findings(outcome.report.findings)

    _echo_step(3, total_steps, "Persisting conversion")
    render_input: dict[str, Any]
    if no_db:
        typer.echo("    --no-db enabled: skipping conversion persistence")
        render_input = record.model_dump(mode="json")
    else:
        store = Store(settings.db_path)
        store.init_db()
        store.save_conversion(record, outcome.report.findings)
        saved = store.get_conversion(record.conversion_id)
        if not saved:
            raise RuntimeError("Conversion insert failed unexpectedly")
        render_input = saved
        findings = store.get_findings(record.conversion_id)

    _echo_step(4, total_steps, "Rendering conversion report")
    out_dir = render_conversion(render_input, findings, output_root=settings.output_root, bindings=outcome.bindings)
    typer.echo(f"Conversion complete. id={record.conversion_id} valid={record.is_valid} path={out_dir}")
    if not outcome.report.is_valid:
        raise typer.Exit(code=1)


@app.command("validate")
def validate(
    source: Path = typer.Argument(..., help="TSX file to validate"),
    type_checker: str | None = typer.Option(None, "--type-checker", help="Type-check oracle: tsc or none"),
) -> None:
    """Run every validation layer over a file without rewriting it."""
    settings = _load_settings(type_checker=type_checker)
    checker = PipelineConfig.from_settings(settings).type_checker
    report = validate_text(_read_source(source), identifier=source.stem, type_checker=checker)
    _echo_findings(report)
    typer.echo(f"valid={report.is_valid} findings={len(report.findings)}")
    if not report.is_valid:
        raise typer.Exit(code=1)


@app.command("repair")
def repair(
    source: Path = typer.Argument(..., help="TSX file to repair"),
    write: bool = typer.Option(False, "--write", help="Overwrite the file with the repaired text"),
) -> None:
    """Fix doubled or stray quotes around literal values."""
    _load_settings()
    result = repair_text(_read_source(source))
    for fix in result.fixes:
        typer.echo(f"    {fix}")
    if write and result.fix_count:
        source.write_text(result.text, encoding="utf-8")
        typer.echo(f"Repaired {result.fix_count} corruption(s) in {source}")
    elif not write:
        typer.echo(result.text, nl=False)
    else:
        typer.echo(f"No corruption found in {source}")


@app.command("check")
def check(
    project: Path = typer.Argument(..., help="Remotion project directory"),
) -> None:
    """Report which required project files are missing or malformed."""
    settings = _load_settings()
    report = check_project_integrity(project, PipelineConfig.from_settings(settings).manifest)
    _echo_integrity(report)
    if report.final_state != "complete":
        raise typer.Exit(code=1)


@app.command("recover")
def recover(
    project: Path = typer.Argument(..., help="Remotion project directory"),
    payload: Path | None = typer.Option(None, "--payload", help="Composition to install as the primary payload"),
    attempts: int | None = typer.Option(None, "--attempts", min=1, help="Maximum recovery attempts"),
) -> None:
    """Recreate missing or malformed project files from templates."""
    settings = _load_settings(recovery_attempts=attempts)
    config = PipelineConfig.from_settings(settings)
    payload_text = _read_source(payload) if payload is not None else None
    try:
        report = auto_recover_project(
            project, config.manifest, payload_text=payload_text, max_attempts=config.recovery_attempts
        )
    except ProjectLockError as exc:
        raise typer.BadParameter(str(exc)) from exc
    _echo_integrity(report)
    if report.final_state != "complete":
        raise typer.Exit(code=1)


@app.command("history")
def history(
    db_path: Path | None = typer.Option(None, "--db", help="SQLite database path"),
    identifier: str | None = typer.Option(None, help="Optional identifier filter"),
    limit: int = typer.Option(20, min=1, help="Maximum rows to show"),
) -> None:
    """List recent conversions from the ledger."""
    settings = _load_settings(db_path=db_path)
    if not settings.db_path.exists():
        raise typer.BadParameter(f"Database not found: {settings.db_path}")
    rows = Store(settings.db_path).list_conversions(identifier=identifier, limit=limit)
    if not rows:
        typer.echo("No conversions recorded.")
    for row in rows:
        confidence = "n/a" if row["confidence"] is None else f"{row['confidence']:.2f}"
        typer.echo(
            f"{row['conversion_id']} {row['created_at']} {row['identifier']} "
            f"valid={row['is_valid']} confidence={confidence} "
            f"bindings={row['bindings_rewritten']}/{row['bindings_total']}"
        )


@app.command("doctor")
def doctor(
    db_path: Path | None = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Print local environment diagnostics used by the CLI."""
    settings = _load_settings(db_path=db_path)
    typer.echo(f"DB exists: {settings.db_path.exists()} ({settings.db_path})")
    typer.echo(f"Type checker: {settings.type_checker}")
    if settings.type_checker == "tsc":
        checker = TscTypeChecker(command=settings.tsc_command, timeout_seconds=settings.type_check_timeout_seconds)
        typer.echo(f"tsc available: {checker.is_available()} ({settings.tsc_command})")
    typer.echo(f"Composition: {settings.composition_id} {settings.width}x{settings.height}@{settings.fps}fps")


if __name__ == "__main__":
    app()
