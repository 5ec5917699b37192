from __future__ import annotations

from framecast.config import PipelineConfig, Settings
from framecast.integrity import PAYLOAD_PATH, check_project_integrity
from framecast.models import Artifact
from framecast.oracle import NullTypeChecker, TscTypeChecker
from framecast.pipeline import ConversionPipeline


def test_convert_given_timer_artifact_when_converted_then_project_holds_rewritten_payload(
    tmp_path,
    pipeline_config,
    counter_source,
) -> None:
    # Given
    project = tmp_path / "video"
    pipeline = ConversionPipeline(pipeline_config)

    # When
    outcome = pipeline.convert(Artifact(source_text=counter_source, identifier="counter"), project_dir=project)

    # Then
    assert outcome.report.is_valid
    assert outcome.rewrite is not None
    assert outcome.rewrite.confidence == 1.0
    assert outcome.used_placeholder is False
    assert outcome.integrity is not None
    assert outcome.integrity.final_state == "complete"
    assert (project / PAYLOAD_PATH).read_text(encoding="utf-8") == outcome.output_text
    assert outcome.bindings[0]["name"] == "count"
    assert outcome.bindings[0]["mutation_rule"] == "periodic_timer"
    assert check_project_integrity(project, pipeline_config.manifest).state == "healthy"


def test_convert_given_bare_ampersand_in_jsx_text_when_converted_then_text_survives_and_output_is_valid(
    pipeline_config,
    counter_source,
) -> None:
    # Given
    source = counter_source.replace("<div>{count}</div>", "<p>AI & Developer Tools {count}</p>")

    # When
    outcome = ConversionPipeline(pipeline_config).convert(Artifact(source_text=source, identifier="banner"))

    # Then
    assert outcome.report.is_valid
    assert outcome.rewrite is not None
    assert outcome.rewrite.bindings_rewritten == 1
    assert outcome.used_placeholder is False
    assert "<p>AI & Developer Tools {count}</p>" in outcome.output_text


def test_convert_given_corrupted_quotes_when_converted_then_input_repair_is_reported(pipeline_config) -> None:
    # Given
    source = """import { AbsoluteFill } from 'remotion';
export default function Label() {
  return <AbsoluteFill style={{ fontSize: ''42px' }}>Hi</AbsoluteFill>;
}
"""

    # When
    outcome = ConversionPipeline(pipeline_config).convert(Artifact(source_text=source, identifier="label"))

    # Then
    assert outcome.input_repair is not None
    assert outcome.input_repair.fix_count == 1
    assert "fontSize: '42px'" in outcome.output_text
    assert outcome.report.is_valid
    assert outcome.integrity is None


def test_convert_given_unparseable_input_when_converted_then_invalid_report_without_exception(
    tmp_path,
    pipeline_config,
) -> None:
    # Given
    project = tmp_path / "video"
    artifact = Artifact(source_text="export default () => <div>", identifier="broken")

    # When
    outcome = ConversionPipeline(pipeline_config).convert(artifact, project_dir=project)

    # Then
    assert outcome.report.is_valid is False
    assert outcome.report.findings[0].layer == "syntax"
    assert outcome.rewrite is None
    assert outcome.output_text is None
    assert not project.exists()


def test_convert_given_invalid_output_when_converted_then_project_is_not_touched(tmp_path, pipeline_config) -> None:
    # Given
    project = tmp_path / "video"
    source = """export default function Broken() {
  return <div>{undeclaredVar}</div>;
}
"""

    # When
    outcome = ConversionPipeline(pipeline_config).convert(Artifact(source_text=source), project_dir=project)

    # Then
    assert outcome.report.is_valid is False
    assert outcome.integrity is None
    assert not project.exists()


def test_convert_given_only_unclassified_bindings_when_converted_then_placeholder_is_emitted(
    pipeline_config,
) -> None:
    # Given
    source = """import { useState } from 'react';
export default function Loop() {
  const [n, setN] = useState(0);
  setN(n + 1);
  return <span>{n}</span>;
}
"""

    # When
    outcome = ConversionPipeline(pipeline_config).convert(Artifact(source_text=source, identifier="loop"))

    # Then
    assert outcome.used_placeholder is True
    assert outcome.rewrite is not None
    assert outcome.rewrite.confidence == 0
    assert "export default VideoComposition;" in outcome.output_text
    assert any("placeholder" in note for note in outcome.rewrite.notes)
    assert outcome.report.is_valid


def test_pipeline_config_given_settings_when_built_then_oracle_and_composition_follow_them() -> None:
    # Given
    settings = Settings(fps=60, type_checker="tsc", tsc_command="npx tsc", recovery_attempts=5, _env_file=None)

    # When
    config = PipelineConfig.from_settings(settings)

    # Then
    assert config.fps == 60
    assert config.recovery_attempts == 5
    assert isinstance(config.type_checker, TscTypeChecker)
    assert config.type_checker.command == "npx tsc"
    assert len(config.manifest.entries) == 6
    assert "fps={60}" in config.manifest.entries[3].template


def test_settings_given_environment_when_loaded_then_prefixed_variables_apply(monkeypatch) -> None:
    # Given
    monkeypatch.setenv("FRAMECAST_FPS", "24")
    monkeypatch.setenv("FRAMECAST_LOG_LEVEL", "debug")

    # When
    settings = Settings(_env_file=None)
    config = PipelineConfig.from_settings(settings)

    # Then
    assert settings.fps == 24
    assert settings.log_level == "DEBUG"
    assert isinstance(config.type_checker, NullTypeChecker)
