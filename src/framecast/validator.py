"""Five-layer static validation of a (rewritten) artifact.

Layers run in a fixed order: syntax, variable flow, type check, template
sentinels, then renderer-API rules. Only a syntax failure stops the run.
Nothing here executes the artifact.
"""

from __future__ import annotations

import logging

from framecast.classifier import TIMER_FUNCTIONS
from framecast.errors import ArtifactSyntaxError, TypeCheckError
from framecast.models import Finding, Span, StructuralTree, SyntaxNode, ValidationReport
from framecast.oracle import NullTypeChecker, TypeChecker
from framecast.parser import (
    call_arguments,
    callee_name,
    is_random_call,
    is_wall_clock,
    iter_with_ancestors,
    numeric_literal,
    parse,
    unwrap,
)

logger = logging.getLogger(__name__)

SCOPE_TYPES = frozenset(
    {
        "program",
        "statement_block",
        "arrow_function",
        "function_declaration",
        "generator_function_declaration",
        "function_expression",
        "function",
        "generator_function",
        "method_definition",
        "for_statement",
        "for_in_statement",
        "catch_clause",
        "class_declaration",
        "class",
        "switch_statement",
    }
)
FUNCTION_SCOPES = frozenset(
    {
        "program",
        "arrow_function",
        "function_declaration",
        "generator_function_declaration",
        "function_expression",
        "function",
        "generator_function",
        "method_definition",
    }
)
# Subtrees that only hold types or import bindings, never value references.
SKIPPED_SUBTREES = frozenset(
    {
        "type_annotation",
        "type_arguments",
        "type_parameters",
        "type_alias_declaration",
        "interface_declaration",
        "type_query",
        "implements_clause",
        "import_statement",
        "predefined_type",
        "type_identifier",
        "jsx_namespace_name",
    }
)

BUILTINS = frozenset(
    {
        "undefined", "NaN", "Infinity", "globalThis", "window", "document", "console", "navigator",
        "location", "history", "screen", "localStorage", "sessionStorage", "performance", "crypto",
        "Math", "Date", "JSON", "Object", "Array", "Number", "String", "Boolean", "Symbol", "BigInt",
        "Promise", "Map", "Set", "WeakMap", "WeakSet", "Error", "TypeError", "RangeError", "RegExp",
        "Intl", "Reflect", "Proxy", "ArrayBuffer", "DataView", "Uint8Array", "Uint8ClampedArray",
        "Uint16Array", "Uint32Array", "Int8Array", "Int16Array", "Int32Array", "Float32Array",
        "Float64Array", "parseInt", "parseFloat", "isNaN", "isFinite", "encodeURIComponent",
        "decodeURIComponent", "encodeURI", "decodeURI", "structuredClone", "queueMicrotask",
        "setTimeout", "setInterval", "clearTimeout", "clearInterval", "requestAnimationFrame",
        "cancelAnimationFrame", "requestIdleCallback", "fetch", "alert", "URL", "URLSearchParams",
        "Blob", "File", "FileReader", "TextEncoder", "TextDecoder", "AbortController", "Event",
        "CustomEvent", "Image", "Audio", "HTMLElement", "HTMLCanvasElement", "HTMLDivElement",
        "HTMLImageElement", "HTMLVideoElement", "SVGElement", "SVGSVGElement", "Element", "Node",
        "CanvasRenderingContext2D", "Path2D", "OffscreenCanvas", "ImageData", "DOMParser",
        "ResizeObserver", "IntersectionObserver", "MutationObserver", "getComputedStyle",
        "devicePixelRatio", "innerWidth", "innerHeight", "React", "JSX", "require", "module",
        "exports", "process", "arguments", "Buffer",
    }
)

EASING_FUNCTIONS = frozenset(
    {
        "step0", "step1", "linear", "ease", "quad", "cubic", "sin", "circle", "exp", "bounce",
        "poly", "elastic", "back", "bezier", "in", "out", "inOut",
    }
)
EASING_FACTORIES = frozenset({"poly", "elastic", "back", "bezier"})
EASING_CORRECTIONS = {
    "sine": "sin",
    "cosine": "sin",
    "cos": "sin",
    "quadratic": "quad",
    "cubicBezier": "bezier",
    "easeIn": "in",
    "easeOut": "out",
    "easeInOut": "inOut",
    "exponential": "exp",
    "circular": "circle",
}
TEMPLATE_SENTINELS = frozenset({"undefined", "null"})
FRAME_ACCESSOR = "useCurrentFrame"


def validate(text: str, identifier: str = "artifact", type_checker: TypeChecker | None = None) -> ValidationReport:
    """Run every validation layer over ``text``.

    Args:
        text: Source to check. It is parsed fresh; no state carries over
            between calls.
        identifier: Label carried into the report.
        type_checker: Oracle for the type-check layer. ``None`` skips real
            checking (``NullTypeChecker``).

    Returns:
        A report whose ``is_valid`` is False on any Critical finding or any
        unresolved identifier.
    """
    findings: list[Finding] = []
    try:
        tree = parse(text)
    except ArtifactSyntaxError as exc:
        findings.append(Finding(layer="syntax", severity="critical", rule="syntax-error", message=str(exc), span=exc.span))
        return _report(identifier, findings)

    findings.extend(check_variable_flow(tree))
    findings.extend(check_types(text, type_checker or NullTypeChecker()))
    findings.extend(check_templates(tree))
    findings.extend(check_domain_rules(tree))
    return _report(identifier, findings)


def _report(identifier: str, findings: list[Finding]) -> ValidationReport:
    is_valid = not any(finding.severity == "critical" or finding.layer == "variable_flow" for finding in findings)
    logger.debug("validated %s: %d finding(s), valid=%s", identifier, len(findings), is_valid)
    return ValidationReport(identifier=identifier, is_valid=is_valid, findings=findings)


# -- variable flow ----------------------------------------------------------------


def check_variable_flow(tree: StructuralTree) -> list[Finding]:
    """Report every identifier reference that resolves to no declaration."""
    resolver = _ScopeResolver(tree)
    findings: list[Finding] = []
    for node, scopes in resolver.references():
        name = tree.text(node)
        if name in BUILTINS or resolver.resolves(name, scopes):
            continue
        findings.append(
            Finding(
                layer="variable_flow",
                severity="major",
                rule="unresolved-identifier",
                message=f"'{name}' is not declared, imported or a parameter",
                span=node.span,
            )
        )
    return findings


class _ScopeResolver:
    def __init__(self, tree: StructuralTree):
        self.tree = tree
        self.declared: dict[tuple[int, int, str], set[str]] = {}
        self.declaration_sites: set[tuple[int, int]] = set()
        self._collect()

    def _declare(self, scope: SyntaxNode | None, nodes: list[SyntaxNode]) -> None:
        if scope is None:
            return
        names = self.declared.setdefault(_key(scope), set())
        for node in nodes:
            names.add(self.tree.text(node))
            self.declaration_sites.add((node.start, node.end))

    def _collect(self) -> None:
        for node, ancestors in iter_with_ancestors(self.tree.root):
            scopes = [ancestor for ancestor in ancestors if ancestor.type in SCOPE_TYPES]
            nearest = scopes[-1] if scopes else None
            function_scope = next((scope for scope in reversed(scopes) if scope.type in FUNCTION_SCOPES), None)
            parent = ancestors[-1] if ancestors else None

            if node.type == "variable_declarator":
                target = node.child_by_field("name")
                if target is not None:
                    scope = function_scope if parent is not None and parent.type == "variable_declaration" else nearest
                    self._declare(scope, _pattern_identifiers(target))
            elif node.type in ("function_declaration", "generator_function_declaration", "class_declaration"):
                name = node.child_by_field("name")
                if name is not None:
                    self._declare(nearest, [name])
            elif node.type in ("function_expression", "function", "class", "enum_declaration"):
                name = node.child_by_field("name")
                if name is not None:
                    self._declare(node if node.type != "enum_declaration" else nearest, [name])
            elif node.type in ("import_clause", "namespace_import"):
                self._declare(self.tree.root, [child for child in node.named_children if child.type == "identifier"])
            elif node.type == "import_specifier":
                local = node.child_by_field("alias") or node.child_by_field("name")
                if local is not None:
                    self._declare(self.tree.root, [local])
            elif node.type == "catch_clause":
                param = node.child_by_field("parameter")
                if param is not None:
                    self._declare(node, _pattern_identifiers(param))
            elif node.type == "for_in_statement":
                left = node.child_by_field("left")
                if left is not None and node.child_by_field("kind") is not None:
                    self._declare(node, _pattern_identifiers(left))

            if node.type in FUNCTION_SCOPES and node.type != "program":
                single = node.child_by_field("parameter")
                if single is not None:
                    self._declare(node, [single])
                params = node.child_by_field("parameters")
                if params is not None:
                    for param in params.named_children:
                        self._declare(node, _pattern_identifiers(param.child_by_field("pattern") or param))

    def references(self):
        """Yield ``(identifier, enclosing scopes)`` for each value reference."""
        stack: list[tuple[SyntaxNode, tuple[SyntaxNode, ...], SyntaxNode | None]] = [(self.tree.root, (), None)]
        while stack:
            node, scopes, parent = stack.pop()
            if node.type in SKIPPED_SUBTREES or node.type == "jsx_closing_element":
                continue
            if node.type in ("identifier", "shorthand_property_identifier") and self._is_reference(node, parent):
                yield node, scopes
            inner = (*scopes, node) if node.type in SCOPE_TYPES else scopes
            stack.extend((child, inner, node) for child in reversed(node.children))

    def _is_reference(self, node: SyntaxNode, parent: SyntaxNode | None) -> bool:
        if (node.start, node.end) in self.declaration_sites:
            return False
        if parent is None:
            return True
        if parent.type in ("jsx_opening_element", "jsx_self_closing_element") and node.field == "name":
            return not self.tree.text(node)[:1].islower()
        if parent.type == "export_specifier" and node.field == "alias":
            return False
        if parent.type in ("labeled_statement", "break_statement", "continue_statement"):
            return False
        return True

    def resolves(self, name: str, scopes: tuple[SyntaxNode, ...]) -> bool:
        return any(name in self.declared.get(_key(scope), ()) for scope in scopes)


def _key(node: SyntaxNode) -> tuple[int, int, str]:
    return (node.start, node.end, node.type)


def _pattern_identifiers(pattern: SyntaxNode) -> list[SyntaxNode]:
    """Identifier nodes a binding pattern introduces."""
    if pattern.type in ("identifier", "shorthand_property_identifier_pattern"):
        return [pattern]
    if pattern.type in ("assignment_pattern", "object_assignment_pattern"):
        left = pattern.child_by_field("left")
        return _pattern_identifiers(left) if left is not None else []
    if pattern.type == "pair_pattern":
        value = pattern.child_by_field("value")
        return _pattern_identifiers(value) if value is not None else []
    if pattern.type in ("required_parameter", "optional_parameter"):
        target = pattern.child_by_field("pattern")
        return _pattern_identifiers(target) if target is not None else []
    found: list[SyntaxNode] = []
    if pattern.type in ("object_pattern", "array_pattern", "rest_pattern"):
        for child in pattern.named_children:
            found.extend(_pattern_identifiers(child))
    return found


# -- type check ---------------------------------------------------------------------


def check_types(text: str, type_checker: TypeChecker) -> list[Finding]:
    """Call the oracle once; errors become Major, warnings Minor."""
    try:
        diagnostics = type_checker.check_types(text)
    except TypeCheckError as exc:
        logger.warning("type check inconclusive: %s", exc)
        return [_inconclusive(str(exc))]
    except Exception as exc:
        # Oracle crashes become a finding, never an exception.
        logger.exception("type checker %s failed", type(type_checker).__name__)
        return [_inconclusive(f"{type(exc).__name__}: {exc}")]
    findings: list[Finding] = []
    for diagnostic in diagnostics:
        if diagnostic.category not in ("error", "warning"):
            continue
        code = f"{diagnostic.code}: " if diagnostic.code else ""
        findings.append(
            Finding(
                layer="type_check",
                severity="major" if diagnostic.category == "error" else "minor",
                rule="type-error" if diagnostic.category == "error" else "type-warning",
                message=f"{code}{diagnostic.message}",
                span=_line_span(text, diagnostic.line, diagnostic.column),
            )
        )
    return findings


def _inconclusive(reason: str) -> Finding:
    return Finding(
        layer="type_check",
        severity="major",
        rule="type-check-inconclusive",
        message=f"Type check inconclusive: {reason}",
    )


def _line_span(text: str, line: int, column: int) -> Span | None:
    if line <= 0:
        return None
    lines = text.encode("utf-8").split(b"\n")
    offset = sum(len(chunk) + 1 for chunk in lines[: line - 1]) + max(column - 1, 0)
    return Span(start=offset, end=offset, line=line, column=max(column, 1))


# -- template sentinels -------------------------------------------------------------


def check_templates(tree: StructuralTree) -> list[Finding]:
    """Flag interpolations and JSX-child literals that render as ``undefined``/``null`` text."""
    findings: list[Finding] = []
    for node, ancestors in iter_with_ancestors(tree.root):
        if node.type == "template_substitution":
            inner = [unwrap(child) for child in node.named_children]
            if len(inner) == 1 and inner[0] is not None and tree.text(inner[0]) in TEMPLATE_SENTINELS:
                findings.append(_sentinel(node, f"Template interpolates {tree.text(node)}"))
        elif node.type == "string" and _is_jsx_child(ancestors):
            content = tree.text(node)[1:-1]
            if content in TEMPLATE_SENTINELS:
                findings.append(_sentinel(node, f"String literal {tree.text(node)} renders as sentinel text"))
    return findings


def _is_jsx_child(ancestors: tuple[SyntaxNode, ...]) -> bool:
    """True when the node is the whole expression of a ``{...}`` child of an element."""
    if len(ancestors) < 2 or ancestors[-1].type != "jsx_expression":
        return False
    return ancestors[-2].type in ("jsx_element", "jsx_fragment")


def _sentinel(node: SyntaxNode, message: str) -> Finding:
    return Finding(layer="template", severity="minor", rule="template-sentinel", message=message, span=node.span)


# -- domain rules -------------------------------------------------------------------


def check_domain_rules(tree: StructuralTree) -> list[Finding]:
    """Renderer-API misuse and leftover nondeterminism."""
    findings: list[Finding] = []
    has_accessor = False
    default_exports: list[SyntaxNode] = []
    named_exports: dict[str, SyntaxNode] = {}

    for node, ancestors in iter_with_ancestors(tree.root):
        parent = ancestors[-1] if ancestors else None
        if node.type == "call_expression":
            name = callee_name(tree, node)
            if name == FRAME_ACCESSOR:
                has_accessor = True
            elif name == "interpolate":
                findings.extend(_interpolate_findings(tree, node))
            elif name == "spring":
                findings.extend(_spring_findings(tree, node))
            elif name in TIMER_FUNCTIONS:
                findings.append(_leftover(node, f"{name}() still schedules work outside the frame clock"))
            if is_random_call(tree, node):
                findings.append(_leftover(node, "Math.random() makes frames non-reproducible"))
        if is_wall_clock(tree, node):
            findings.append(_leftover(node, f"{tree.text(node)} reads the wall clock"))
        elif node.type == "member_expression":
            findings.extend(_easing_findings(tree, node, parent))
        elif node.type == "export_statement":
            if any(child.type == "default" for child in node.children):
                default_exports.append(node)
            for exported in _exported_names(tree, node):
                if exported in named_exports:
                    findings.append(
                        Finding(
                            layer="domain",
                            severity="major",
                            rule="duplicate-export",
                            message=f"'{exported}' is exported more than once",
                            span=node.span,
                        )
                    )
                else:
                    named_exports[exported] = node

    frame_reads = _unbound_frame_reads(tree) if not has_accessor else []
    if frame_reads:
        first = frame_reads[0]
        findings.append(
            Finding(
                layer="domain",
                severity="major",
                rule="frame-without-accessor",
                message="'frame' is used but useCurrentFrame() is never called",
                span=first.span,
            )
        )
    for extra in default_exports[1:]:
        findings.append(
            Finding(
                layer="domain",
                severity="major",
                rule="duplicate-default-export",
                message=f"Duplicate default export (first at {default_exports[0].span.label()})",
                span=extra.span,
            )
        )
    return findings


def _unbound_frame_reads(tree: StructuralTree) -> list[SyntaxNode]:
    """``frame`` references no enclosing scope declares; props and locals named frame are fine."""
    resolver = _ScopeResolver(tree)
    return [
        node
        for node, scopes in resolver.references()
        if tree.text(node) == "frame" and not resolver.resolves("frame", scopes)
    ]


def _leftover(node: SyntaxNode, message: str) -> Finding:
    return Finding(layer="domain", severity="minor", rule="nondeterministic-call", message=message, span=node.span)


def _major(rule: str, message: str, node: SyntaxNode) -> Finding:
    return Finding(layer="domain", severity="major", rule=rule, message=message, span=node.span)


def _interpolate_findings(tree: StructuralTree, call: SyntaxNode) -> list[Finding]:
    args = call_arguments(call)
    if len(args) < 3:
        return [_major("interpolate-arity", f"interpolate() needs 3 arguments, got {len(args)}", call)]
    findings: list[Finding] = []
    input_range = unwrap(args[1])
    output_range = unwrap(args[2])
    if input_range is not None and input_range.type == "array":
        values = [numeric_literal(tree, element) for element in input_range.named_children]
        if len(values) < 2:
            findings.append(_major("interpolate-range", "interpolate() inputRange needs at least 2 values", input_range))
        elif all(value is not None for value in values) and any(b <= a for a, b in zip(values, values[1:])):
            findings.append(
                _major("interpolate-range", "interpolate() inputRange must be strictly increasing", input_range)
            )
        if output_range is not None and output_range.type == "array":
            if len(output_range.named_children) != len(input_range.named_children):
                findings.append(
                    _major(
                        "interpolate-range",
                        f"interpolate() inputRange has {len(input_range.named_children)} values "
                        f"but outputRange has {len(output_range.named_children)}",
                        output_range,
                    )
                )
    return findings


def _spring_findings(tree: StructuralTree, call: SyntaxNode) -> list[Finding]:
    args = call_arguments(call)
    config = unwrap(args[0]) if args else None
    if config is None:
        return [_major("spring-config", "spring() called without a config object", call)]
    if config.type != "object":
        return []
    keys = set()
    for child in config.named_children:
        if child.type == "pair":
            key = child.child_by_field("key")
            if key is not None:
                keys.add(tree.text(key).strip("'\""))
        elif child.type == "shorthand_property_identifier":
            keys.add(tree.text(child))
        elif child.type == "spread_element":
            return []
    missing = [key for key in ("frame", "fps") if key not in keys]
    if missing:
        return [_major("spring-config", f"spring() config is missing {', '.join(missing)}", config)]
    return []


def _easing_findings(tree: StructuralTree, node: SyntaxNode, parent: SyntaxNode | None) -> list[Finding]:
    obj = unwrap(node.child_by_field("object"))
    prop = node.child_by_field("property")
    if obj is None or prop is None or obj.type != "identifier" or tree.text(obj) != "Easing":
        return []
    name = tree.text(prop)
    if name not in EASING_FUNCTIONS:
        hint = EASING_CORRECTIONS.get(name)
        suggestion = f"; did you mean Easing.{hint}?" if hint else ""
        return [_major("easing-name", f"Easing.{name} does not exist{suggestion}", node)]
    called = parent is not None and parent.type == "call_expression" and node.field == "function"
    if name in EASING_FACTORIES and not called:
        return [_major("easing-uncalled", f"Easing.{name} is a factory and must be called", node)]
    return []


def _exported_names(tree: StructuralTree, export: SyntaxNode) -> list[str]:
    names: list[str] = []
    declaration = export.child_by_field("declaration")
    if declaration is not None:
        name = declaration.child_by_field("name")
        if name is not None:
            names.append(tree.text(name))
        for declarator in declaration.named_children:
            if declarator.type == "variable_declarator":
                target = declarator.child_by_field("name")
                if target is not None and target.type == "identifier":
                    names.append(tree.text(target))
    clause = export.first_child_of_type("export_clause")
    if clause is not None:
        for specifier in clause.named_children:
            exported = specifier.child_by_field("alias") or specifier.child_by_field("name")
            if exported is not None and tree.text(exported) != "default":
                names.append(tree.text(exported))
    return names
