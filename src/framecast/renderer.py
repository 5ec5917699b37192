"""Render a conversion into a reviewable Markdown/JSON bundle plus the TSX output."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

PAYLOAD_FILENAME = "VideoComposition.tsx"


def render_conversion(
    conversion: dict[str, Any],
    findings: list[dict[str, Any]],
    output_root: Path,
    bindings: list[dict[str, Any]] | None = None,
) -> Path:
    """Write a conversion package to disk and return the output directory.

    Args:
        conversion: Conversion record payload from the database or runtime model.
        findings: Validator findings as flat dicts (layer, severity, rule,
            message, line, column).
        output_root: Root directory where conversion folders are created.
        bindings: Optional classified bindings to include in the JSON payload.

    Returns:
        The conversion-specific directory containing rendered files.
    """
    conversion_id = conversion["conversion_id"]
    target_dir = output_root / conversion_id
    target_dir.mkdir(parents=True, exist_ok=True)

    md_path = target_dir / "conversion.md"
    json_path = target_dir / "conversion.json"

    md_path.write_text(_render_markdown(conversion, findings), encoding="utf-8")

    json_payload: dict[str, Any] = {
        "conversion": conversion,
        "findings": findings,
    }
    if bindings is not None:
        json_payload["bindings"] = bindings
    json_path.write_text(json.dumps(json_payload, indent=2, ensure_ascii=False), encoding="utf-8")

    output_text = conversion.get("output_text")
    if output_text:
        (target_dir / PAYLOAD_FILENAME).write_text(output_text, encoding="utf-8")

    return target_dir


def _render_markdown(conversion: dict[str, Any], findings: list[dict[str, Any]]) -> str:
    """Render a human-readable Markdown summary of one conversion."""
    confidence = conversion.get("confidence")
    lines = [
        f"# {conversion['identifier']}",
        "",
        f"- Conversion ID: `{conversion['conversion_id']}`",
        f"- Created: `{conversion['created_at']}`",
        f"- Valid: `{conversion['is_valid']}`",
        f"- Confidence: `{'n/a' if confidence is None else f'{confidence:.2f}'}`",
        f"- Bindings rewritten: `{conversion['bindings_rewritten']}/{conversion['bindings_total']}`",
        f"- Corruption fixes: input `{conversion['input_fix_count']}`, output `{conversion['output_fix_count']}`",
    ]
    if conversion.get("used_placeholder"):
        lines.append("- Placeholder composition emitted")
    if conversion.get("project_dir"):
        lines.append(f"- Project: `{conversion['project_dir']}` ({conversion.get('integrity_state') or 'unknown'})")

    lines.extend(["", "## Findings", ""])
    if not findings:
        lines.append("No findings.")
    for finding in findings:
        where = f" at {finding['line']}:{finding['column']}" if finding.get("line") else ""
        lines.append(f"- **{finding['severity']}** `{finding['layer']}/{finding['rule']}`{where}: {finding['message']}")

    notes = conversion.get("notes") or []
    if notes:
        lines.extend(["", "## Notes", ""])
        lines.extend(f"- {note}" for note in notes)

    if conversion.get("output_text"):
        lines.extend(["", "## Output", "", "```tsx", conversion["output_text"].rstrip("\n"), "```"])

    lines.append("")
    return "\n".join(lines)


def flatten_findings(findings: list[Any]) -> list[dict[str, Any]]:
    """Convert ``Finding`` models into the flat dict shape the store returns."""
    return [
        {
            "layer": f.layer,
            "severity": f.severity,
            "rule": f.rule,
            "message": f.message,
            "line": f.span.line if f.span else None,
            "column": f.span.column if f.span else None,
        }
        for f in findings
    ]
