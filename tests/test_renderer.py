from __future__ import annotations

import json

from framecast.renderer import PAYLOAD_FILENAME, flatten_findings, render_conversion


def test_render_conversion_given_payload_when_rendered_then_writes_expected_outputs(
    tmp_path,
    conversion_record_model,
    sample_findings,
) -> None:
    # Given
    output_root = tmp_path / "conversions"
    conversion = conversion_record_model.model_dump(mode="json")
    findings = flatten_findings(sample_findings)

    # When
    target_dir = render_conversion(conversion, findings, output_root=output_root, bindings=[{"name": "count"}])

    # Then
    assert target_dir == output_root / "conv00000001"
    assert (target_dir / "conversion.md").exists()
    assert (target_dir / "conversion.json").exists()
    assert (target_dir / PAYLOAD_FILENAME).read_text(encoding="utf-8") == conversion["output_text"]

    markdown = (target_dir / "conversion.md").read_text(encoding="utf-8")
    assert markdown.startswith("# counter\n")
    assert "- Confidence: `0.50`" in markdown
    assert "- Bindings rewritten: `1/2`" in markdown
    assert "**major** `variable_flow/unresolved-identifier` at 3:5" in markdown
    assert "## Notes" in markdown
    assert "```tsx" in markdown

    payload = json.loads((target_dir / "conversion.json").read_text(encoding="utf-8"))
    assert payload["conversion"]["conversion_id"] == "conv00000001"
    assert len(payload["findings"]) == 2
    assert payload["bindings"] == [{"name": "count"}]


def test_render_conversion_given_no_output_and_no_findings_when_rendered_then_payload_file_is_skipped(
    tmp_path,
    conversion_record_model,
) -> None:
    # Given
    conversion = conversion_record_model.model_copy(
        update={"output_text": None, "confidence": None, "notes": []}
    ).model_dump(mode="json")

    # When
    target_dir = render_conversion(conversion, [], output_root=tmp_path)

    # Then
    markdown = (target_dir / "conversion.md").read_text(encoding="utf-8")
    assert "No findings." in markdown
    assert "- Confidence: `n/a`" in markdown
    assert "## Output" not in markdown
    assert not (target_dir / PAYLOAD_FILENAME).exists()
    assert "bindings" not in json.loads((target_dir / "conversion.json").read_text(encoding="utf-8"))


def test_flatten_findings_given_models_when_flattened_then_span_becomes_line_and_column(sample_findings) -> None:
    # Given
    findings = sample_findings

    # When
    flat = flatten_findings(findings)

    # Then
    assert flat[0] == {
        "layer": "variable_flow",
        "severity": "major",
        "rule": "unresolved-identifier",
        "message": "'undeclaredVar' is not declared in any enclosing scope",
        "line": 3,
        "column": 5,
    }
    assert flat[1]["line"] is None
