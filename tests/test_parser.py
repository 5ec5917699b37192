from __future__ import annotations

import pytest

from framecast.errors import ArtifactSyntaxError
from framecast.parser import callee_name, declared_names, numeric_literal, parse, try_parse, unwrap, walk


def test_parse_given_valid_tsx_when_parsed_then_every_node_carries_a_span(counter_source) -> None:
    # Given
    source = counter_source

    # When
    tree = parse(source)

    # Then
    assert tree.root.type == "program"
    assert tree.root.start == 0
    assert tree.root.end == len(source.encode("utf-8"))
    assert all(node.start <= node.end for node in walk(tree.root))
    assert any(node.type == "jsx_element" for node in walk(tree.root))


def test_parse_given_unbalanced_source_when_parsed_then_raises_with_location() -> None:
    # Given
    source = "const broken = () => {\n  return <div>;\n"

    # When
    with pytest.raises(ArtifactSyntaxError) as excinfo:
        parse(source)

    # Then
    assert excinfo.value.span.line >= 1
    assert excinfo.value.reason
    assert try_parse(source) is None


def test_parse_given_bare_ampersand_in_jsx_text_when_parsed_then_tree_keeps_original_text() -> None:
    # Given
    source = "export default function A() {\n  return <p>AI & Developer Tools <b>R&D</b> &amp; more</p>;\n}\n"

    # When
    tree = parse(source)

    # Then
    text = "".join(tree.text(node) for node in walk(tree.root) if node.type == "jsx_text")
    assert "AI & Developer Tools" in text
    assert "R&D" in text
    assert tree.root.end == len(source.encode("utf-8"))


def test_parse_given_bare_ampersand_outside_jsx_when_parsed_then_still_raises() -> None:
    # Given
    source = "const value = & 1;\n"

    # When
    with pytest.raises(ArtifactSyntaxError) as excinfo:
        parse(source)

    # Then
    assert excinfo.value.span.line == 1


def test_callee_name_given_qualified_calls_when_resolved_then_react_prefix_is_dropped() -> None:
    # Given
    tree = parse("React.useState(0);\nMath.random();\nwindow.setTimeout(f, 10);\n")
    calls = [node for node in walk(tree.root) if node.type == "call_expression"]

    # When
    names = [callee_name(tree, call) for call in calls]

    # Then
    assert names == ["useState", "Math.random", "setTimeout"]


def test_numeric_literal_given_wrapped_negative_number_when_read_then_value_is_returned() -> None:
    # Given
    tree = parse("const a = (-1_000);\nconst b = 0x10;\nconst c = foo;\n")
    values = [
        unwrap(node.child_by_field("value")) for node in walk(tree.root) if node.type == "variable_declarator"
    ]

    # When
    numbers = [numeric_literal(tree, value) for value in values]

    # Then
    assert numbers == [-1000.0, 16.0, None]


def test_declared_names_given_patterns_and_params_when_collected_then_all_bindings_are_found() -> None:
    # Given
    tree = parse("const [a, setA] = useState(0);\nconst { b, c: d } = props;\nfunction f(e, [g]) { try {} catch (h) {} }\n")

    # When
    names = declared_names(tree, tree.root)

    # Then
    assert {"a", "setA", "b", "d", "f", "e", "g", "h"} <= names
    assert "c" not in names
