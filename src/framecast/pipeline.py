"""End-to-end conversion: repair, parse, classify, rewrite, validate, recover."""

from __future__ import annotations

import logging
from pathlib import Path

from framecast.classifier import classify
from framecast.config import PipelineConfig
from framecast.errors import ArtifactSyntaxError
from framecast.integrity import ensure_recovered, write_payload
from framecast.models import Artifact, Finding, IntegrityReport, PipelineOutcome, RepairResult, ValidationReport
from framecast.parser import parse
from framecast.repair import repair
from framecast.rewriter import rewrite
from framecast.templates import placeholder_composition
from framecast.validator import validate

logger = logging.getLogger(__name__)


class ConversionPipeline:
    """Runs one artifact through every stage with a fixed configuration."""

    def __init__(self, config: PipelineConfig):
        self.config = config

    def convert(self, artifact: Artifact, project_dir: Path | None = None) -> PipelineOutcome:
        """Convert ``artifact`` and, when it validates, materialize the project.

        Args:
            artifact: Source to convert.
            project_dir: Project root to check and repair. Nothing is written
                when omitted or when validation fails.

        Returns:
            The outcome, always carrying a validation report. Unparseable
            input yields an invalid report rather than an exception.

        Raises:
            RecoveryExhaustedError: The project stayed incomplete after every
                recovery attempt.
        """
        identifier = artifact.identifier
        input_repair = repair(artifact.source_text)
        if input_repair.fix_count:
            logger.info("%s: repaired %d corruption(s) in input", identifier, input_repair.fix_count)

        try:
            tree = parse(input_repair.text)
        except ArtifactSyntaxError as exc:
            logger.warning("%s: input does not parse: %s", identifier, exc)
            finding = Finding(layer="syntax", severity="critical", rule="syntax-error", message=str(exc), span=exc.span)
            report = ValidationReport(identifier=identifier, is_valid=False, findings=[finding])
            return PipelineOutcome(
                identifier=identifier,
                report=report,
                repair=RepairResult(text=input_repair.text),
                input_repair=input_repair,
            )

        bindings = classify(tree)
        result = rewrite(tree, bindings, fps=self.config.fps)
        used_placeholder = False
        if bindings and result.confidence == 0:
            logger.warning("%s: no binding could be rewritten; using placeholder composition", identifier)
            result = result.model_copy(
                update={
                    "output_text": placeholder_composition(self.config.composition, title=identifier),
                    "notes": [*result.notes, "No binding could be made deterministic; emitted a static placeholder"],
                }
            )
            used_placeholder = True

        output_repair = repair(result.output_text)
        result = result.model_copy(update={"output_text": output_repair.text})
        report = validate(output_repair.text, identifier, self.config.type_checker)
        logger.info(
            "%s: %d binding(s), confidence %.2f, %d finding(s), valid=%s",
            identifier,
            len(bindings),
            result.confidence,
            len(report.findings),
            report.is_valid,
        )

        integrity = None
        if report.is_valid and project_dir is not None:
            integrity = self.materialize(Path(project_dir), output_repair.text)

        return PipelineOutcome(
            identifier=identifier,
            report=report,
            repair=output_repair,
            input_repair=input_repair,
            rewrite=result,
            integrity=integrity,
            bindings=[binding.model_dump(mode="json") for binding in bindings],
            used_placeholder=used_placeholder,
        )

    def materialize(self, project_dir: Path, payload_text: str) -> IntegrityReport:
        """Recover the project around ``payload_text`` and refresh the payload file."""
        manifest = self.config.manifest
        integrity = ensure_recovered(
            project_dir, manifest, payload_text=payload_text, max_attempts=self.config.recovery_attempts
        )
        payload = manifest.primary_payload
        if payload is not None and payload.display_path not in integrity.missing:
            write_payload(project_dir, manifest, payload_text)
        return integrity
