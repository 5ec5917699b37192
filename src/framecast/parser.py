"""TSX artifact parser built on tree-sitter, plus small tree helpers."""

from __future__ import annotations

import re
from collections.abc import Iterator

import tree_sitter
import tree_sitter_typescript

from framecast.errors import ArtifactSyntaxError
from framecast.models import Span, StructuralTree, SyntaxNode

TSX_LANGUAGE = tree_sitter.Language(tree_sitter_typescript.language_tsx())

FUNCTION_TYPES = frozenset(
    {
        "function_declaration",
        "generator_function_declaration",
        "function_expression",
        "function",
        "generator_function",
        "arrow_function",
        "method_definition",
    }
)
TRANSPARENT_TYPES = frozenset(
    {"parenthesized_expression", "as_expression", "satisfies_expression", "non_null_expression"}
)
JSX_TEXT_PARENTS = frozenset({"jsx_element", "jsx_fragment"})
_CHARACTER_REFERENCE = re.compile(rb"&(?:#[0-9]+|#[xX][0-9a-fA-F]+|[A-Za-z][A-Za-z0-9]*);")


def parse(source_text: str) -> StructuralTree:
    """Parse artifact source text into a ``StructuralTree``.

    A bare ``&`` in JSX text is accepted, as the TypeScript compiler does.

    Args:
        source_text: TSX/JSX source of one artifact.

    Returns:
        The structural tree with a span on every node.

    Raises:
        ArtifactSyntaxError: The text contains any syntax error; the first
            offending span is reported and no partial tree is returned.
    """
    parser = tree_sitter.Parser(TSX_LANGUAGE)
    data = source_text.encode("utf-8")
    ts_tree = parser.parse(data)
    for _ in range(data.count(b"&")):
        if not ts_tree.root_node.has_error:
            break
        bad = _first_error_node(ts_tree.root_node)
        if not _is_bare_jsx_ampersand(bad, data):
            break
        # The grammar rejects a bare '&' in JSX text; a same-width blank keeps every span aligned.
        data = data[: bad.start_byte] + b" " + data[bad.start_byte + 1 :]
        ts_tree = parser.parse(data)
    root = ts_tree.root_node
    if root.has_error:
        bad = _first_error_node(root)
        raise ArtifactSyntaxError(_describe_error(bad), _span_of(bad))
    return StructuralTree(source_text=source_text, root=_convert(ts_tree.walk()))


def try_parse(source_text: str) -> StructuralTree | None:
    try:
        return parse(source_text)
    except ArtifactSyntaxError:
        return None


def _span_of(node: tree_sitter.Node) -> Span:
    row, column = node.start_point
    return Span(start=node.start_byte, end=node.end_byte, line=row + 1, column=column + 1)


def _first_error_node(root: tree_sitter.Node) -> tree_sitter.Node:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.is_error or node.is_missing:
            return node
        if node.has_error:
            stack.extend(reversed(node.children))
    return root


def _is_bare_jsx_ampersand(node: tree_sitter.Node, data: bytes) -> bool:
    """An error starting at an '&' in element text that is not a character reference."""
    start = node.start_byte
    if not node.is_error or data[start : start + 1] != b"&" or _CHARACTER_REFERENCE.match(data, start):
        return False
    parent = node.parent
    while parent is not None and parent.is_error:
        parent = parent.parent
    return parent is not None and parent.type in JSX_TEXT_PARENTS


def _describe_error(node: tree_sitter.Node) -> str:
    if node.is_missing:
        return f"missing {node.type!r}"
    snippet = (node.text or b"").decode("utf-8", errors="replace").strip().splitlines()
    if snippet:
        return f"unexpected {snippet[0][:40]!r}"
    return "unexpected end of input"


def _convert(cursor: tree_sitter.TreeCursor) -> SyntaxNode:
    node = cursor.node
    field = cursor.field_name
    children: list[SyntaxNode] = []
    if cursor.goto_first_child():
        while True:
            children.append(_convert(cursor))
            if not cursor.goto_next_sibling():
                break
        cursor.goto_parent()
    return SyntaxNode(
        type=node.type,
        span=_span_of(node),
        field=field,
        named=node.is_named,
        children=children,
    )


def walk(node: SyntaxNode) -> Iterator[SyntaxNode]:
    return node.iter_descendants()


def iter_with_ancestors(node: SyntaxNode) -> Iterator[tuple[SyntaxNode, tuple[SyntaxNode, ...]]]:
    """Pre-order walk yielding each node with its ancestors (outermost first)."""
    stack: list[tuple[SyntaxNode, tuple[SyntaxNode, ...]]] = [(node, ())]
    while stack:
        current, ancestors = stack.pop()
        yield current, ancestors
        below = (*ancestors, current)
        stack.extend((child, below) for child in reversed(current.children))


def unwrap(node: SyntaxNode | None) -> SyntaxNode | None:
    """Strip parentheses and type assertions around an expression."""
    while node is not None and node.type in TRANSPARENT_TYPES:
        inner = node.named_children
        if not inner:
            return node
        node = inner[0]
    return node


def is_function(node: SyntaxNode | None) -> bool:
    return node is not None and node.type in FUNCTION_TYPES


def call_arguments(call: SyntaxNode) -> list[SyntaxNode]:
    args = call.child_by_field("arguments")
    if args is None:
        return []
    return [child for child in args.named_children if child.type != "comment"]


def callee_name(tree: StructuralTree, call: SyntaxNode) -> str | None:
    """Name of the called function, with ``React.``/``window.`` prefixes dropped.

    ``Math.random`` and ``Date.now`` keep their qualifier.
    """
    if call.type not in ("call_expression", "new_expression"):
        return None
    fn = unwrap(call.child_by_field("function") or call.child_by_field("constructor"))
    if fn is None:
        return None
    if fn.type == "identifier":
        return tree.text(fn)
    if fn.type == "member_expression":
        obj = unwrap(fn.child_by_field("object"))
        prop = fn.child_by_field("property")
        if obj is None or prop is None:
            return None
        obj_text = tree.text(obj)
        prop_text = tree.text(prop)
        if obj_text in ("React", "window", "globalThis"):
            return prop_text
        return f"{obj_text}.{prop_text}"
    return None


def function_name(tree: StructuralTree, fn: SyntaxNode, parent: SyntaxNode | None) -> str | None:
    """Name a function is known by: its own name or the declarator it initializes."""
    own = fn.child_by_field("name")
    if own is not None:
        return tree.text(own)
    if parent is not None and parent.type == "variable_declarator":
        name = parent.child_by_field("name")
        if name is not None and name.type == "identifier":
            return tree.text(name)
    return None


def function_params(tree: StructuralTree, fn: SyntaxNode) -> list[str]:
    """Simple identifier parameter names of a function, in order."""
    single = fn.child_by_field("parameter")
    if single is not None:
        return [tree.text(single)]
    params = fn.child_by_field("parameters")
    if params is None:
        return []
    names: list[str] = []
    for param in params.named_children:
        target = param.child_by_field("pattern") or param
        if target.type == "identifier":
            names.append(tree.text(target))
        else:
            names.append("")
    return names


def function_body_expression(fn: SyntaxNode) -> SyntaxNode | None:
    """Expression an arrow/function evaluates to, when it is a single expression or return."""
    body = fn.child_by_field("body")
    if body is None:
        return None
    if body.type != "statement_block":
        return unwrap(body)
    statements = [child for child in body.named_children if child.type != "comment"]
    if len(statements) == 1 and statements[0].type == "return_statement":
        values = statements[0].named_children
        return unwrap(values[0]) if values else None
    return None


def identifiers_in(tree: StructuralTree, node: SyntaxNode) -> set[str]:
    """Identifier texts referenced anywhere under ``node``."""
    return {
        tree.text(child)
        for child in node.iter_descendants()
        if child.type in ("identifier", "shorthand_property_identifier")
    }


def numeric_literal(tree: StructuralTree, node: SyntaxNode | None) -> float | None:
    """Value of a numeric literal, optionally negated or parenthesized."""
    node = unwrap(node)
    if node is None:
        return None
    if node.type == "number":
        return _parse_number(tree.text(node))
    if node.type == "unary_expression":
        operator = node.child_by_field("operator")
        argument = node.child_by_field("argument")
        value = numeric_literal(tree, argument)
        if value is None or operator is None:
            return None
        op = tree.text(operator)
        if op == "-":
            return -value
        if op == "+":
            return value
    return None


def _parse_number(text: str) -> float | None:
    cleaned = text.replace("_", "").rstrip("n")
    try:
        if cleaned.lower().startswith(("0x", "0o", "0b")):
            return float(int(cleaned, 0))
        return float(cleaned)
    except ValueError:
        return None


def is_random_call(tree: StructuralTree, node: SyntaxNode) -> bool:
    return node.type == "call_expression" and callee_name(tree, node) == "Math.random"


def is_wall_clock(tree: StructuralTree, node: SyntaxNode) -> bool:
    """``Date.now()``, ``performance.now()`` or an argument-less ``new Date()``."""
    if node.type == "call_expression":
        return callee_name(tree, node) in ("Date.now", "performance.now")
    if node.type == "new_expression":
        return callee_name(tree, node) == "Date" and not call_arguments(node)
    return False


def contains(node: SyntaxNode, predicate) -> bool:
    return any(predicate(child) for child in node.iter_descendants())


def is_component(tree: StructuralTree, fn: SyntaxNode, parent: SyntaxNode | None) -> bool:
    """A capitalized function or the default export: somewhere hooks may run."""
    name = function_name(tree, fn, parent)
    if name:
        return name[0].isupper()
    return parent is not None and parent.type == "export_statement"


def declared_names(tree: StructuralTree, node: SyntaxNode) -> set[str]:
    """Names bound anywhere under ``node``: declarators, parameters and function names."""
    names: set[str] = set()
    for child in node.iter_descendants():
        if child.type == "variable_declarator":
            target = child.child_by_field("name")
            if target is not None:
                names |= pattern_names(tree, target)
        elif child.type in ("function_declaration", "function_expression", "function", "class_declaration"):
            name = child.child_by_field("name")
            if name is not None:
                names.add(tree.text(name))
        if child.type in ("arrow_function", "function_declaration", "function_expression", "function", "method_definition"):
            single = child.child_by_field("parameter")
            if single is not None:
                names.add(tree.text(single))
            params = child.child_by_field("parameters")
            if params is not None:
                for param in params.named_children:
                    names |= pattern_names(tree, param.child_by_field("pattern") or param)
        elif child.type == "catch_clause":
            param = child.child_by_field("parameter")
            if param is not None:
                names |= pattern_names(tree, param)
    return names


def pattern_names(tree: StructuralTree, pattern: SyntaxNode) -> set[str]:
    if pattern.type in ("identifier", "shorthand_property_identifier_pattern"):
        return {tree.text(pattern)}
    if pattern.type in ("assignment_pattern", "object_assignment_pattern"):
        left = pattern.child_by_field("left")
        return pattern_names(tree, left) if left is not None else set()
    if pattern.type == "pair_pattern":
        value = pattern.child_by_field("value")
        return pattern_names(tree, value) if value is not None else set()
    if pattern.type in ("required_parameter", "optional_parameter"):
        target = pattern.child_by_field("pattern")
        return pattern_names(tree, target) if target is not None else set()
    names: set[str] = set()
    if pattern.type in ("object_pattern", "array_pattern", "rest_pattern"):
        for child in pattern.named_children:
            names |= pattern_names(tree, child)
    return names
