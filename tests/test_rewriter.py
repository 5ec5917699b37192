from __future__ import annotations

from framecast.classifier import classify
from framecast.parser import parse, try_parse
from framecast.rewriter import TextEdits, fmt, rewrite, wrap
from framecast.validator import validate


def _rewrite_source(source: str, fps: int = 30):
    tree = parse(source)
    return rewrite(tree, classify(tree), fps=fps)


def test_rewrite_given_interval_counter_when_rewritten_then_count_is_a_frame_expression(counter_source) -> None:
    # Given
    source = counter_source

    # When
    result = _rewrite_source(source)

    # Then
    output = result.output_text
    assert result.confidence == 1.0
    assert result.bindings_total == 1
    assert result.bindings_rewritten == 1
    assert "setInterval" not in output
    assert "clearInterval" not in output
    assert "useEffect" not in output
    assert "setCount" not in output
    assert "const frame = useCurrentFrame();" in output
    assert "const count = 2.08333 * frame;" in output
    assert "import { AbsoluteFill, useCurrentFrame } from 'remotion';" in output
    assert "import React from 'react';" in output
    assert result.frame_accessor == "frame"
    assert [s.binding_name for s in result.substitutions] == ["count"]
    assert try_parse(output) is not None


def test_rewrite_given_particle_factory_when_rewritten_then_fields_are_driven_by_index_and_frame(
    particles_source,
) -> None:
    # Given
    source = particles_source

    # When
    result = _rewrite_source(source)

    # Then
    output = result.output_text
    assert result.confidence == 1.0
    assert "Math.random" not in output
    assert "Array.from({ length: 20 }, (_, i) => ({" in output
    for field in ("x", "y", "vx", "vy", "size", "color"):
        assert f"  {field}: " in output
    assert "seeded(1000 + i * 97 + 0)" in output
    assert "const seeded = (n: number): number =>" in output
    assert "const frame = useCurrentFrame();" in output
    assert "useState" not in output
    assert validate(output).is_valid


def test_rewrite_given_same_input_twice_when_rewritten_then_output_is_identical(particles_source) -> None:
    # Given
    source = particles_source

    # When
    first = _rewrite_source(source)
    second = _rewrite_source(source)

    # Then
    assert first.output_text == second.output_text
    assert first.substitutions == second.substitutions


def test_rewrite_given_click_handler_when_rewritten_then_interaction_is_removed(button_source) -> None:
    # Given
    source = button_source

    # When
    result = _rewrite_source(source)

    # Then
    output = result.output_text
    assert "const open = false;" in output
    assert "onClick" not in output
    assert "handleClick" not in output
    assert "setOpen" not in output
    assert "useCurrentFrame" not in output
    assert result.confidence == 1.0
    assert any("interactive updates dropped" in note for note in result.notes)


def test_rewrite_given_timeout_when_rewritten_then_value_switches_at_the_delay_frame() -> None:
    # Given
    source = """import { useEffect, useState } from 'react';
export default function Reveal() {
  const [shown, setShown] = useState(false);
  useEffect(() => {
    const t = setTimeout(() => setShown(true), 500);
    return () => clearTimeout(t);
  }, []);
  return shown ? <h1>Hi</h1> : null;
}
"""

    # When
    result = _rewrite_source(source)

    # Then
    assert "const shown = frame >= 15 ? true : false;" in result.output_text
    assert "setTimeout" not in result.output_text
    assert "import { useCurrentFrame } from 'remotion';" in result.output_text


def test_rewrite_given_unclassified_binding_when_rewritten_then_confidence_drops_and_note_is_added() -> None:
    # Given
    source = """import { useState } from 'react';
export default function Loop() {
  const [n, setN] = useState(0);
  const [label] = useState('static');
  setN(5);
  return <span>{label}{n}</span>;
}
"""

    # When
    result = _rewrite_source(source)

    # Then
    assert result.bindings_total == 2
    assert result.bindings_rewritten == 1
    assert result.confidence == 0.5
    assert any(note.startswith("n: unclassified") for note in result.notes)
    assert "setN(" not in result.output_text


def test_rewrite_given_no_bindings_when_rewritten_then_text_is_unchanged(static_source) -> None:
    # Given
    source = static_source

    # When
    result = _rewrite_source(source)

    # Then
    assert result.output_text == source
    assert result.confidence == 1.0
    assert result.substitutions == []


def test_text_edits_given_nested_edits_when_applied_then_outer_edit_wins() -> None:
    # Given
    source = b"abcdefghij"
    edits = TextEdits(source)
    edits.replace(2, 8, "X")
    edits.replace(3, 5, "Y")
    edits.insert(0, ">")

    # When
    output = edits.apply()

    # Then
    assert output == ">abXij"
    assert edits.touched(3, 5)
    assert not edits.covers(3, 5)


def test_format_helpers_given_numbers_and_expressions_when_formatted_then_output_is_minimal() -> None:
    # Given
    values = [2.0, 2.0833333, -0.5]

    # When
    formatted = [fmt(value) for value in values]

    # Then
    assert formatted == ["2", "2.08333", "-0.5"]
    assert wrap("a.b") == "a.b"
    assert wrap("a + b") == "(a + b)"
    assert wrap("(a + b)") == "(a + b)"
    assert wrap("(a) + (b)") == "((a) + (b))"
