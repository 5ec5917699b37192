"""Rewrite classified bindings into deterministic, frame-indexed expressions.

Every edit is a byte-span replacement on the original source, so code the
rewriter does not understand is carried through untouched.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable

from framecast.classifier import EFFECT_HOOKS, EVENT_ATTRIBUTE, HANDLER_NAME, TIMER_FUNCTIONS, node_key
from framecast.models import RewriteResult, StateBinding, StructuralTree, Substitution, SyntaxNode
from framecast.parser import (
    callee_name,
    declared_names,
    function_params,
    identifiers_in,
    is_component,
    is_function,
    is_random_call,
    is_wall_clock,
    iter_with_ancestors,
    numeric_literal,
    try_parse,
    unwrap,
)

logger = logging.getLogger(__name__)

DEFAULT_FPS = 30
FRAME_NAMES = ("frame", "currentFrame", "frameIndex")
SEEDED_NAMES = ("seeded", "seededRandom", "frameSeed")
INDEX_NAMES = ("i", "index", "recordIndex")
TIMER_CLEANUP = ("clearInterval", "clearTimeout", "cancelAnimationFrame")
DROPPABLE_HOOKS = ("useState", "useEffect", "useLayoutEffect", "useCallback", "useMemo", "useRef")
JITTER_RATE = 0.05
SEED_STRIDE = 97
STATEMENT_LISTS = ("program", "statement_block", "switch_case", "switch_default")
SITE_SEED_BASE = 9000

SEED_HELPER = """const {name} = (n: number): number => {{
  const x = Math.sin(n * 12.9898 + 78.233) * 43758.5453;
  return x - Math.floor(x);
}};
"""

FIELD_CATEGORIES = (
    ("position_x", re.compile(r"^(x|left|cx|posX|positionX|startX|baseX|originX)$", re.IGNORECASE)),
    ("position_y", re.compile(r"^(y|top|cy|posY|positionY|startY|baseY|originY)$", re.IGNORECASE)),
    ("size", re.compile(r"^(size|radius|r|width|height|scale|w|h|diameter)$", re.IGNORECASE)),
    ("opacity", re.compile(r"^(opacity|alpha|brightness|life)$", re.IGNORECASE)),
    ("rotation", re.compile(r"^(rotation|rotate|angle|spin)$", re.IGNORECASE)),
    ("hue", re.compile(r"^(hue)$", re.IGNORECASE)),
)

_SIMPLE_EXPRESSION = re.compile(r"^[\w$.]+$")
_IDENTIFIER = re.compile(r"^[A-Za-z_$][\w$]*$")

Replacer = Callable[[SyntaxNode], "str | None"]


def rewrite(tree: StructuralTree, bindings: list[StateBinding], fps: int = DEFAULT_FPS) -> RewriteResult:
    """Emit a frame-indexed rewrite of ``tree``.

    Args:
        tree: Parsed artifact.
        bindings: Output of ``classify`` for the same tree.
        fps: Frames per second used to convert timer intervals to frames.

    Returns:
        The rewritten text, one substitution per handled binding, notes, and
        the share of bindings that were rewritten as ``confidence``.
    """
    return _Rewriter(tree, bindings, fps).run()


def fmt(value: float) -> str:
    """Format a number the way it should appear in emitted source."""
    if abs(value - round(value)) < 1e-9:
        return str(int(round(value)))
    return f"{value:.6g}"


def wrap(text: str) -> str:
    text = text.strip()
    if _SIMPLE_EXPRESSION.match(text) or (text.startswith("(") and _balanced_outer(text)):
        return text
    return f"({text})"


def _balanced_outer(text: str) -> bool:
    depth = 0
    for idx, ch in enumerate(text):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0 and idx != len(text) - 1:
                return False
    return text.endswith(")")


class TextEdits:
    """Non-overlapping byte-span edits applied in one forward pass.

    Edits nested inside a wider edit are dropped; insertions sort ahead of
    replacements at the same offset.
    """

    def __init__(self, source: bytes):
        self.source = source
        self.edits: list[tuple[int, int, int, str]] = []

    def replace(self, start: int, end: int, text: str) -> None:
        self.edits.append((start, end, len(self.edits), text))

    def insert(self, at: int, text: str) -> None:
        self.replace(at, at, text)

    def delete(self, start: int, end: int) -> None:
        self.replace(start, end, "")

    def delete_statement(self, node: SyntaxNode) -> None:
        start, end = self.line_extent(node.start, node.end)
        self.delete(start, end)

    def line_extent(self, start: int, end: int) -> tuple[int, int]:
        """Grow a span to whole lines when nothing else shares them."""
        line_start = self.source.rfind(b"\n", 0, start) + 1
        if self.source[line_start:start].strip():
            return start, end
        line_end = self.source.find(b"\n", end)
        line_end = len(self.source) if line_end == -1 else line_end
        if self.source[end:line_end].strip():
            return start, end
        return line_start, min(line_end + 1, len(self.source))

    def drop_statement(self, node: SyntaxNode, parent: SyntaxNode | None) -> None:
        """Delete a statement, leaving an empty statement where one is grammatically required."""
        if parent is None or parent.type in STATEMENT_LISTS:
            self.delete_statement(node)
        else:
            self.replace(node.start, node.end, ";")

    def covers(self, start: int, end: int) -> bool:
        """True when the span lies inside a deletion."""
        return any(s <= start and end <= e and s != e for s, e, _, text in self.edits if not text)

    def touched(self, start: int, end: int) -> bool:
        """True when the span lies inside any deletion or replacement."""
        return any(s <= start and end <= e and s != e for s, e, _, _ in self.edits)

    def apply(self) -> str:
        ordered = sorted(self.edits, key=lambda edit: (edit[0], edit[1] != edit[0], -(edit[1] - edit[0]), edit[2]))
        out: list[bytes] = []
        cursor = 0
        for start, end, _, text in ordered:
            if start < cursor:
                continue
            out.append(self.source[cursor:start])
            out.append(text.encode("utf-8"))
            cursor = max(cursor, end)
        out.append(self.source[cursor:])
        return b"".join(out).decode("utf-8")


def render(tree: StructuralTree, node: SyntaxNode, replace: Replacer) -> str:
    """Source text of ``node`` with ``replace`` applied to the topmost matching subtrees."""
    pieces: list[str] = []
    cursor = node.start
    source = tree.source_bytes

    def visit(current: SyntaxNode) -> None:
        nonlocal cursor
        replacement = replace(current)
        if replacement is not None:
            pieces.append(source[cursor : current.start].decode("utf-8"))
            pieces.append(replacement)
            cursor = current.end
            return
        for child in current.children:
            visit(child)

    visit(node)
    pieces.append(source[cursor : node.end].decode("utf-8"))
    return "".join(pieces)


class _Rewriter:
    def __init__(self, tree: StructuralTree, bindings: list[StateBinding], fps: int):
        self.tree = tree
        self.bindings = bindings
        self.fps = fps
        self.ms_per_frame = 1000 / fps
        self.edits = TextEdits(tree.source_bytes)
        self.notes: list[str] = []
        self.substitutions: list[Substitution] = []
        self.accessors: dict[tuple[int, int, str], str] = {}
        self.pending_hosts: list[SyntaxNode] = []
        self.parents: dict[tuple[int, int, str], SyntaxNode] = {}
        self.site_counter = 0
        self.uses_seeded = False

        declared = declared_names(tree, tree.root)
        self.existing_accessors = self._existing_accessor_names()
        self.frame_name = _pick_name(FRAME_NAMES, declared - self.existing_accessors)
        self.seeded_name = _pick_name(SEEDED_NAMES, declared)
        self.setters = {binding.setter: binding for binding in bindings if binding.setter}

    def text(self, node: SyntaxNode) -> str:
        return self.tree.text(node)

    def run(self) -> RewriteResult:
        for node, ancestors in iter_with_ancestors(self.tree.root):
            if ancestors:
                self.parents[node_key(node)] = ancestors[-1]

        removed = self._delete_side_effects()
        rewritten = 0
        for ordinal, binding in enumerate(self.bindings):
            if self._rewrite_binding(binding, ordinal):
                rewritten += 1
        self._neutralize_setters()
        self._stabilize_sites()
        self._insert_accessors()
        self._insert_seed_helper()

        for kind, count in removed.items():
            if count:
                self.notes.append(f"Removed {count} {kind}")

        output = self.edits.apply()
        output = self._fix_imports(output)
        total = len(self.bindings)
        confidence = rewritten / total if total else 1.0
        logger.debug("rewrote %d of %d binding(s), confidence %.2f", rewritten, total, confidence)
        frame_accessor = next(iter(self.accessors.values()), None)
        return RewriteResult(
            output_text=output,
            substitutions=self.substitutions,
            confidence=round(confidence, 4),
            notes=self.notes,
            frame_accessor=frame_accessor,
            bindings_total=total,
            bindings_rewritten=rewritten,
        )

    # -- deletions ----------------------------------------------------------------

    def _delete_side_effects(self) -> dict[str, int]:
        removed = {"effect(s)": 0, "timer(s)": 0, "event attribute(s)": 0, "event handler(s)": 0}
        handler_candidates: list[tuple[str, SyntaxNode]] = []
        for node, ancestors in iter_with_ancestors(self.tree.root):
            if self.edits.covers(node.start, node.end):
                continue
            parent = ancestors[-1] if ancestors else None
            if node.type == "expression_statement":
                expr = unwrap(node.named_children[0]) if node.named_children else None
                if expr is None:
                    continue
                if expr.type == "assignment_expression":
                    expr = unwrap(expr.child_by_field("right"))
                name = callee_name(self.tree, expr) if expr is not None else None
                if name in EFFECT_HOOKS:
                    self.edits.drop_statement(node, parent)
                    removed["effect(s)"] += 1
                elif name in TIMER_FUNCTIONS or name in TIMER_CLEANUP:
                    self.edits.drop_statement(node, parent)
                    removed["timer(s)"] += 1
            elif node.type in ("lexical_declaration", "variable_declaration"):
                declarators = [child for child in node.named_children if child.type == "variable_declarator"]
                if len(declarators) != 1:
                    continue
                value = unwrap(declarators[0].child_by_field("value"))
                name_node = declarators[0].child_by_field("name")
                if value is None or name_node is None:
                    continue
                if callee_name(self.tree, value) in TIMER_FUNCTIONS:
                    self.edits.delete_statement(node)
                    removed["timer(s)"] += 1
                elif is_function(value) or callee_name(self.tree, value) == "useCallback":
                    handler_candidates.append((self.text(name_node), node))
            elif node.type == "function_declaration":
                name_node = node.child_by_field("name")
                if name_node is not None and parent is not None and parent.type != "export_statement":
                    handler_candidates.append((self.text(name_node), node))
            elif node.type == "jsx_attribute":
                attr_name = node.named_children[0] if node.named_children else None
                if attr_name is not None and EVENT_ATTRIBUTE.match(self.text(attr_name)):
                    start = node.start
                    while start > 0 and self.tree.source_bytes[start - 1 : start] in (b" ", b"\t", b"\n", b"\r"):
                        start -= 1
                    self.edits.delete(start, node.end)
                    removed["event attribute(s)"] += 1

        for name, statement in handler_candidates:
            if not self._is_handler(name, statement) or self.edits.covers(statement.start, statement.end):
                continue
            if self._referenced_outside(name, statement):
                continue
            self.edits.delete_statement(statement)
            removed["event handler(s)"] += 1
        return removed

    def _is_handler(self, name: str, statement: SyntaxNode) -> bool:
        if HANDLER_NAME.match(name):
            return True
        for node in statement.iter_descendants():
            if node.type == "call_expression":
                fn = unwrap(node.child_by_field("function"))
                if fn is not None and fn.type == "identifier" and self.text(fn) in self.setters:
                    return self._referenced_only_from_events(name)
        return False

    def _referenced_only_from_events(self, name: str) -> bool:
        """True when every use of ``name`` sits in a deleted event attribute or effect."""
        uses = [
            node
            for node in self.tree.root.iter_descendants()
            if node.type == "identifier" and self.text(node) == name and not self._is_declaration_name(node)
        ]
        return bool(uses) and all(self.edits.covers(node.start, node.end) for node in uses)

    def _is_declaration_name(self, node: SyntaxNode) -> bool:
        parent = self.parents.get(node_key(node))
        return parent is not None and parent.type in ("variable_declarator", "function_declaration") and node.field == "name"

    def _referenced_outside(self, name: str, statement: SyntaxNode) -> bool:
        for node in self.tree.root.iter_descendants():
            if node.type not in ("identifier", "shorthand_property_identifier") or self.text(node) != name:
                continue
            if statement.start <= node.start and node.end <= statement.end:
                continue
            if not self.edits.covers(node.start, node.end):
                return True
        return False

    # -- bindings -----------------------------------------------------------------

    def _rewrite_binding(self, binding: StateBinding, ordinal: int) -> bool:
        declarator = binding.declarator
        if self.edits.covers(declarator.start, declarator.end):
            self.notes.append(f"{binding.name}: declaration sits inside removed code; left untouched")
            return False

        frame = self._frame_for(binding.host) if self._needs_frame(binding) else None
        expression = self._binding_expression(binding, ordinal, frame)
        handled = expression is not None
        if expression is None:
            expression = self._initial_text(binding, frame)
            self.notes.append(f"{binding.name}: unclassified ({binding.reason}); kept initial value")
        elif binding.mutation_rule == "event_handler":
            self.notes.append(f"{binding.name}: interactive updates dropped; using initial value")

        if binding.declaration == "state" or handled:
            annotation = f": {binding.type_annotation}" if binding.type_annotation else ""
            if binding.declaration == "constant":
                type_node = declarator.child_by_field("type")
                annotation = self.text(type_node) if type_node is not None else ""
            self.edits.replace(declarator.start, declarator.end, f"{binding.name}{annotation} = {expression}")

        if handled:
            self._hoist(binding, frame)
            self.substitutions.append(Substitution(binding_name=binding.name, frame_expression=expression))
        return handled

    def _needs_frame(self, binding: StateBinding) -> bool:
        rule = binding.mutation_rule
        if rule == "unclassified":
            return False
        if rule in ("periodic_timer", "one_shot_timer") or binding.collection_update is not None:
            return True
        if binding.generator is not None:
            return any(field.randomized for field in binding.generator.fields)
        sources = [binding.initial, binding.update.expression if binding.update else None]
        return any(
            source is not None and any(is_wall_clock(self.tree, node) for node in source.iter_descendants())
            for source in sources
        )

    def _binding_expression(self, binding: StateBinding, ordinal: int, frame: str | None) -> str | None:
        rule = binding.mutation_rule
        if rule == "unclassified":
            return None
        if binding.generator is not None:
            return self._comprehension(binding, ordinal, frame)
        if rule in ("static", "event_handler"):
            return self._initial_text(binding, frame)
        if binding.collection_update is not None:
            return self._mapped_collection(binding, frame) if frame else None
        if binding.update is None:
            return None
        if frame is None and rule in ("periodic_timer", "one_shot_timer"):
            return None

        initial = self._initial_text(binding, frame)
        if rule == "one_shot_timer":
            delay = (binding.timer.interval_ms or 0) / self.ms_per_frame if binding.timer else 0
            after = self._apply_once(binding, initial, frame)
            return f"{frame} >= {fmt(delay)} ? {after} : {initial}"
        if rule in ("mount_effect", "derived_from_other"):
            return self._apply_once(binding, initial, frame)
        return self._periodic(binding, initial, frame)

    def _periodic(self, binding: StateBinding, initial: str, frame: str) -> str | None:
        update = binding.update
        tpf = self._ticks_per_frame(binding)
        form = update.form
        if form == "linear":
            return self._linear(initial, update.step, update.sign, tpf, frame, binding)
        if form == "modular":
            linear = self._linear(initial, update.step, update.sign, tpf, frame, binding)
            modulus = wrap(self._render(update.modulus, frame))
            reset = self._render(update.reset, frame) if update.reset is not None else None
            if reset is None or numeric_literal(self.tree, update.reset) == 0:
                return f"({linear}) % {modulus}"
            if update.sign > 0:
                return f"{wrap(reset)} + (({linear}) - {wrap(reset)}) % ({modulus} - {wrap(reset)})"
            return f"{wrap(reset)} - (({wrap(reset)} - ({linear})) % ({wrap(reset)} - {modulus}))"
        if form == "clamp":
            linear = self._linear(initial, update.step, update.sign, tpf, frame, binding)
            return f"{update.clamp_fn}({self._render(update.clamp_bound, frame)}, {linear})"
        if form == "toggle":
            ticks = self._ticks(frame, tpf)
            flipped = f"Math.floor({ticks}) % 2 === 1"
            if initial == "false":
                return flipped
            if initial == "true":
                return f"Math.floor({ticks}) % 2 === 0"
            return f"{flipped} ? !{wrap(initial)} : {initial}"
        if form == "geometric":
            return f"{wrap(initial)} * Math.pow({wrap(self._render(update.step, frame))}, {self._ticks(frame, tpf)})"
        if form == "oscillation":
            frequency = fmt((update.frequency_per_ms or 0) * self.ms_per_frame)
            angle = f"{frame} * {frequency}"
            if update.phase is not None:
                angle += f" + {wrap(self._render(update.phase, frame))}"
            wave = f"Math.{update.wave}({angle})"
            if update.amplitude is not None:
                wave = f"{wrap(self._render(update.amplitude, frame))} * {wave}"
            if update.offset is not None:
                wave = f"{wrap(self._render(update.offset, frame))} + {wave}"
            return wave
        if form == "clock":
            return self._render(update.expression, frame)
        if form == "jitter":
            if update.step is None:
                return self._render(update.expression, frame, jitter=tpf)
            operator = "+" if update.sign > 0 else "-"
            return f"{wrap(initial)} {operator} {wrap(self._render(update.step, frame, jitter=tpf))}"
        if form == "assign":
            first_tick = 1 / tpf if tpf else 1
            return f"{frame} >= {fmt(first_tick)} ? {self._render(update.expression, frame)} : {initial}"
        return None

    def _linear(self, initial: str, step: SyntaxNode, sign: int, tpf: float, frame: str, binding: StateBinding) -> str:
        value = numeric_literal(self.tree, step)
        if value is not None:
            rate = value * tpf * sign
            if rate == 0:
                return initial
            term = f"{fmt(abs(rate))} * {frame}"
            operator = "+" if rate > 0 else "-"
        else:
            term = f"{wrap(self._render(step, frame))} * {self._ticks(frame, tpf)}"
            operator = "+" if sign > 0 else "-"
        if numeric_literal(self.tree, binding.initial) == 0 or initial.strip() == "0":
            return term if operator == "+" else f"-{term}"
        return f"{wrap(initial)} {operator} {term}"

    def _ticks(self, frame: str, tpf: float) -> str:
        return frame if tpf == 1 else f"{frame} * {fmt(tpf)}"

    def _ticks_per_frame(self, binding: StateBinding) -> float:
        interval = binding.timer.interval_ms if binding.timer else None
        if not interval or interval <= 0:
            return 1.0
        return float(fmt(self.ms_per_frame / interval))

    def _apply_once(self, binding: StateBinding, initial: str, frame: str | None) -> str:
        update = binding.update
        param = update.param

        def substitute(node: SyntaxNode) -> str | None:
            if param and node.type == "identifier" and self.text(node) == param:
                return wrap(initial)
            return None

        return self._render(update.expression, frame, extra=substitute)

    def _initial_text(self, binding: StateBinding, frame: str | None) -> str:
        initial = binding.initial
        if initial is None:
            return "undefined"
        text = self._render(initial, frame)
        if is_function(initial):
            return f"({text})()"
        return text

    def _hoist(self, binding: StateBinding, frame: str | None) -> None:
        if binding.generator is None or not binding.generator.hoisted:
            return
        indent = self._indent_at(binding.statement.start)
        lines = [self._render(statement, frame) for statement in binding.generator.hoisted]
        self.edits.insert(binding.statement.start, "".join(f"{line}\n{indent}" for line in lines))

    # -- collections --------------------------------------------------------------

    def _comprehension(self, binding: StateBinding, ordinal: int, frame: str | None) -> str:
        generator = binding.generator
        used = set(generator.locals)
        if generator.element is not None:
            used |= identifiers_in(self.tree, generator.element)
        index = generator.index_name or _pick_name(INDEX_NAMES, used)
        salt = 1000 * (ordinal + 1)
        seeds: dict[tuple[int, int, str], int] = {}

        def generated(node: SyntaxNode) -> str:
            visiting: set[str] = set()

            def replace(current: SyntaxNode) -> str | None:
                if is_random_call(self.tree, current):
                    key = node_key(current)
                    seeds.setdefault(key, len(seeds))
                    self.uses_seeded = True
                    return f"{self.seeded_name}({salt} + {index} * {SEED_STRIDE} + {seeds[key]})"
                if current.type in ("identifier", "shorthand_property_identifier"):
                    name = self.text(current)
                    if name in generator.locals and name not in visiting and not current.same_as(node):
                        visiting.add(name)
                        inlined = render(self.tree, generator.locals[name], replace)
                        visiting.discard(name)
                        return f"({inlined})" if current.type == "identifier" else f"{name}: ({inlined})"
                if frame and is_wall_clock(self.tree, current):
                    return self._clock(current, frame)
                return None

            return render(self.tree, node, replace)

        indent = self._indent_at(binding.statement.start)
        if not generator.returns_records:
            body = generated(generator.element) if generator.element is not None else "undefined"
            return f"Array.from({{ length: {generator.count_expr} }}, (_, {index}) => {body})"

        lines: list[str] = []
        for field in generator.fields:
            if field.spread:
                lines.append(generated(field.value))
                continue
            value = generated(field.value)
            if field.randomized and frame:
                value = self._motion(field.name, value, index, frame, self._random_scale(field.value, generator))
            key = field.name if _IDENTIFIER.match(field.name) else repr(field.name)
            lines.append(f"{key}: {value}")
        inner = "".join(f"{indent}  {line},\n" for line in lines)
        return f"Array.from({{ length: {generator.count_expr} }}, (_, {index}) => ({{\n{inner}{indent}}}))"

    def _motion(self, field: str, base: str, index: str, frame: str, scale: float | None) -> str:
        category = next((name for name, pattern in FIELD_CATEGORIES if pattern.match(field)), None)
        if category is None:
            return base
        base = wrap(base)
        if category == "position_x":
            spread = fmt(max(1.0, (scale or 200) * 0.05))
            return f"{base} + Math.sin({frame} * 0.02 + {index} * 0.3) * {spread}"
        if category == "position_y":
            spread = fmt(max(1.0, (scale or 200) * 0.05))
            return f"{base} + Math.cos({frame} * 0.025 + {index} * 0.4) * {spread}"
        if category == "size":
            return f"{base} * (1 + Math.sin({frame} * 0.05 + {index}) * 0.15)"
        if category == "opacity":
            return f"Math.min(1, Math.max(0, {base} + Math.sin({frame} * 0.08 + {index}) * 0.2))"
        if category == "rotation":
            return f"{base} + {frame} * 2"
        return f"({base} + {frame} * 2) % 360"

    def _random_scale(self, value: SyntaxNode, generator) -> float | None:
        """Numeric factor a ``Math.random()`` is multiplied by, e.g. 800 in ``Math.random() * 800``."""
        sources = [value]
        for name in identifiers_in(self.tree, value):
            if name in generator.locals:
                sources.append(generator.locals[name])
        for source in sources:
            for node in source.iter_descendants():
                if node.type != "binary_expression":
                    continue
                operator = node.child_by_field("operator")
                if operator is None or self.text(operator) != "*":
                    continue
                left = unwrap(node.child_by_field("left"))
                right = unwrap(node.child_by_field("right"))
                for candidate, other in ((left, right), (right, left)):
                    if candidate is not None and is_random_call(self.tree, candidate):
                        factor = numeric_literal(self.tree, other)
                        if factor is not None:
                            return abs(factor)
        return None

    def _mapped_collection(self, binding: StateBinding, frame: str) -> str:
        update = binding.collection_update
        callback = update.callback
        tpf = self._ticks_per_frame(binding)
        used = identifiers_in(self.tree, callback)
        index = update.index_name or _pick_name(INDEX_NAMES, used)
        ticks = wrap(self._ticks(frame, tpf))
        seeds: dict[tuple[int, int, str], int] = {}
        item = update.item_name

        def replace(node: SyntaxNode) -> str | None:
            if is_random_call(self.tree, node):
                seeds.setdefault(node_key(node), len(seeds))
                rate = fmt(JITTER_RATE * tpf)
                return f"(0.5 + 0.5 * Math.sin({frame} * {rate} + {index} * 0.7 + {seeds[node_key(node)]}))"
            if is_wall_clock(self.tree, node):
                return self._clock(node, frame)
            if update.index_name is None and node.field in ("parameters", "parameter") and callback.same_as(
                self.parents.get(node_key(node))
            ):
                inner = self.text(node)
                if node.type == "formal_parameters":
                    inner = inner[1:-1].strip()
                return f"({inner}, {index})"
            if node.type == "binary_expression":
                accumulated = self._accumulation(node, item, ticks, replace)
                if accumulated is not None:
                    return accumulated
            return None

        mapped = render(self.tree, callback, replace)
        initial = self._initial_text(binding, frame)
        return f"{wrap(initial)}.map({mapped})"

    def _accumulation(self, node: SyntaxNode, item: str, ticks: str, replace: Replacer) -> str | None:
        """``p.x + p.vx`` inside a per-tick map becomes ``p.x + p.vx * ticks``."""
        operator = node.child_by_field("operator")
        left = unwrap(node.child_by_field("left"))
        right = node.child_by_field("right")
        if operator is None or left is None or right is None or self.text(operator) not in ("+", "-"):
            return None
        if left.type != "member_expression":
            return None
        obj = unwrap(left.child_by_field("object"))
        if obj is None or self.text(obj) != item:
            return None
        step = render(self.tree, right, replace)
        return f"{self.text(left)} {self.text(operator)} {wrap(step)} * {ticks}"

    # -- residual sites -----------------------------------------------------------

    def _neutralize_setters(self) -> None:
        for node, ancestors in iter_with_ancestors(self.tree.root):
            if node.type != "identifier" or self.text(node) not in self.setters:
                continue
            if self.edits.touched(node.start, node.end):
                continue
            parent = ancestors[-1] if ancestors else None
            if parent is not None and parent.type == "array_pattern":
                continue
            if parent is not None and parent.type == "call_expression" and node.field == "function":
                holder = ancestors[-2] if len(ancestors) > 1 else None
                if holder is not None and holder.type == "expression_statement":
                    self.edits.drop_statement(holder, ancestors[-3] if len(ancestors) > 2 else None)
                else:
                    self.edits.replace(parent.start, parent.end, "undefined")
            else:
                self.edits.replace(node.start, node.end, "(() => undefined)")

    def _stabilize_sites(self) -> None:
        """Make leftover ``Math.random()`` and wall-clock reads frame-deterministic."""
        for node, ancestors in iter_with_ancestors(self.tree.root):
            if is_random_call(self.tree, node):
                if self.edits.touched(node.start, node.end):
                    continue
                seed = SITE_SEED_BASE + self.site_counter
                self.site_counter += 1
                index = self._enclosing_index(ancestors)
                argument = f"{seed} + {index} * {SEED_STRIDE}" if index else str(seed)
                self.uses_seeded = True
                self.edits.replace(node.start, node.end, f"{self.seeded_name}({argument})")
            elif is_wall_clock(self.tree, node):
                if self.edits.touched(node.start, node.end):
                    continue
                host = self._enclosing_component(ancestors)
                if host is None:
                    self.notes.append(f"Wall-clock read at {node.span.label()} is outside a component; left as is")
                    continue
                self.edits.replace(node.start, node.end, self._clock(node, self._frame_for(host)))

    def _enclosing_index(self, ancestors: tuple[SyntaxNode, ...]) -> str | None:
        for idx in range(len(ancestors) - 1, 1, -1):
            fn = ancestors[idx]
            if not is_function(fn) or ancestors[idx - 1].type != "arguments":
                continue
            call = ancestors[idx - 2]
            name = callee_name(self.tree, call) or ""
            params = function_params(self.tree, fn)
            if (name.endswith((".map", ".forEach", ".flatMap")) or name == "Array.from") and len(params) > 1:
                return params[1] or None
        return None

    def _enclosing_component(self, ancestors: tuple[SyntaxNode, ...]) -> SyntaxNode | None:
        for idx in range(len(ancestors) - 1, -1, -1):
            fn = ancestors[idx]
            if is_function(fn) and is_component(self.tree, fn, ancestors[idx - 1] if idx > 0 else None):
                return fn
        return None

    def _clock(self, node: SyntaxNode, frame: str) -> str:
        milliseconds = f"{frame} * {fmt(self.ms_per_frame)}"
        if node.type == "new_expression":
            return f"new Date({milliseconds})"
        return f"({milliseconds})"

    def _render(
        self,
        node: SyntaxNode | None,
        frame: str | None,
        jitter: float | None = None,
        extra: Replacer | None = None,
    ) -> str:
        if node is None:
            return "undefined"

        def replace(current: SyntaxNode) -> str | None:
            if extra is not None:
                replaced = extra(current)
                if replaced is not None:
                    return replaced
            if is_random_call(self.tree, current):
                seed = SITE_SEED_BASE + self.site_counter
                self.site_counter += 1
                if jitter is not None and frame:
                    return f"(0.5 + 0.5 * Math.sin({frame} * {fmt(JITTER_RATE * jitter)} + {seed % 97}))"
                self.uses_seeded = True
                return f"{self.seeded_name}({seed})"
            if frame and is_wall_clock(self.tree, current):
                return self._clock(current, frame)
            return None

        return render(self.tree, node, replace)

    # -- frame accessor -----------------------------------------------------------

    def _existing_accessor_names(self) -> set[str]:
        names: set[str] = set()
        for node in self.tree.root.iter_descendants():
            if node.type != "variable_declarator":
                continue
            value = unwrap(node.child_by_field("value"))
            name = node.child_by_field("name")
            if value is not None and name is not None and callee_name(self.tree, value) == "useCurrentFrame":
                names.add(self.text(name))
        return names

    def _frame_for(self, host: SyntaxNode | None) -> str | None:
        if host is None:
            return None
        key = node_key(host)
        if key in self.accessors:
            return self.accessors[key]
        body = host.child_by_field("body")
        name: str | None = None
        if body is not None and body.type == "statement_block":
            for statement in body.named_children:
                if statement.type != "lexical_declaration":
                    continue
                for declarator in statement.named_children:
                    value = unwrap(declarator.child_by_field("value"))
                    target = declarator.child_by_field("name")
                    if value is not None and target is not None and callee_name(self.tree, value) == "useCurrentFrame":
                        name = self.text(target)
        if name is None:
            name = self.frame_name
            self.pending_hosts.append(host)
        self.accessors[key] = name
        return name

    def _insert_accessors(self) -> None:
        for host in self.pending_hosts:
            name = self.accessors[node_key(host)]
            body = host.child_by_field("body")
            if body is None:
                continue
            declaration = f"const {name} = useCurrentFrame();"
            base_indent = self._indent_at(host.start)
            if body.type == "statement_block":
                statements = [child for child in body.named_children if child.type != "comment"]
                indent = self._indent_at(statements[0].start) if statements else base_indent + "  "
                self.edits.insert(body.start + 1, f"\n{indent}{declaration}")
            else:
                self.edits.insert(body.start, f"{{\n{base_indent}  {declaration}\n{base_indent}  return ")
                self.edits.insert(body.end, f";\n{base_indent}}}")

    def _insert_seed_helper(self) -> None:
        if not self.uses_seeded:
            return
        helper = SEED_HELPER.format(name=self.seeded_name)
        imports = [child for child in self.tree.root.named_children if child.type == "import_statement"]
        if imports:
            self.edits.insert(imports[-1].end, "\n\n" + helper.rstrip("\n"))
        else:
            self.edits.insert(0, helper + "\n")

    def _indent_at(self, offset: int) -> str:
        source = self.tree.source_bytes
        line_start = source.rfind(b"\n", 0, offset) + 1
        line = source[line_start:offset].decode("utf-8")
        return line[: len(line) - len(line.lstrip())]

    # -- imports ------------------------------------------------------------------

    def _fix_imports(self, text: str) -> str:
        tree = try_parse(text)
        if tree is None:
            self.notes.append("Rewritten text did not parse; imports left unchanged")
            return text
        edits = TextEdits(tree.source_bytes)
        imports = [child for child in tree.root.named_children if child.type == "import_statement"]
        import_locals = {
            tree.text(node) for statement in imports for node in statement.iter_descendants() if node.type == "identifier"
        }
        used = {
            tree.text(node)
            for node in tree.root.iter_descendants()
            if node.type in ("identifier", "shorthand_property_identifier")
        }
        used -= _import_only_names(tree, imports)

        remotion: SyntaxNode | None = None
        for statement in imports:
            source = _import_source(tree, statement)
            if source == "remotion":
                remotion = statement
            elif source == "react":
                self._prune_react_import(tree, statement, used, edits)

        if "useCurrentFrame" in used and "useCurrentFrame" not in import_locals:
            clause = remotion.first_child_of_type("import_clause") if remotion is not None else None
            named = clause.first_child_of_type("named_imports") if clause is not None else None
            if named is not None:
                specifiers = [child for child in named.named_children if child.type == "import_specifier"]
                if specifiers:
                    edits.insert(specifiers[-1].end, ", useCurrentFrame")
                else:
                    edits.replace(named.start, named.end, "{ useCurrentFrame }")
            else:
                line = "import { useCurrentFrame } from 'remotion';"
                if imports:
                    # Ahead of the first import; later imports may be deleted by pruning.
                    anchor = tree.source_bytes.rfind(b"\n", 0, imports[0].start) + 1
                    edits.insert(anchor, line + "\n")
                else:
                    edits.insert(0, line + "\n\n")
        return edits.apply()

    def _prune_react_import(self, tree: StructuralTree, statement: SyntaxNode, used: set[str], edits: TextEdits) -> None:
        clause = statement.first_child_of_type("import_clause")
        if clause is None:
            return
        default = clause.first_child_of_type("identifier")
        namespace = clause.first_child_of_type("namespace_import")
        named = clause.first_child_of_type("named_imports")
        if named is None:
            return
        kept: list[str] = []
        dropped: list[str] = []
        for specifier in named.named_children:
            if specifier.type != "import_specifier":
                continue
            name = specifier.child_by_field("name")
            alias = specifier.child_by_field("alias")
            imported = tree.text(name) if name is not None else tree.text(specifier)
            local = tree.text(alias) if alias is not None else imported
            if imported in DROPPABLE_HOOKS and local not in used:
                dropped.append(imported)
            else:
                kept.append(tree.text(specifier))
        if not dropped:
            return
        source = statement.child_by_field("source")
        head = [tree.text(part) for part in (default, namespace) if part is not None]
        if kept:
            head.append("{ " + ", ".join(kept) + " }")
        if not head:
            edits.delete_statement(statement)
        else:
            edits.replace(statement.start, statement.end, f"import {', '.join(head)} from {tree.text(source)};")
        self.notes.append(f"Dropped unused React import(s): {', '.join(dropped)}")


def _import_source(tree: StructuralTree, statement: SyntaxNode) -> str:
    source = statement.child_by_field("source")
    return tree.text(source).strip("'\"") if source is not None else ""


def _import_only_names(tree: StructuralTree, imports: list[SyntaxNode]) -> set[str]:
    """Identifiers whose only occurrences are inside import statements."""
    names: dict[str, int] = {}
    for statement in imports:
        for node in statement.iter_descendants():
            if node.type == "identifier":
                names[tree.text(node)] = names.get(tree.text(node), 0) + 1
    totals: dict[str, int] = {}
    for node in tree.root.iter_descendants():
        if node.type in ("identifier", "shorthand_property_identifier"):
            text = tree.text(node)
            if text in names:
                totals[text] = totals.get(text, 0) + 1
    return {name for name, count in names.items() if totals.get(name, 0) <= count}


def _pick_name(candidates: tuple[str, ...], taken: set[str]) -> str:
    for candidate in candidates:
        if candidate not in taken:
            return candidate
    base = candidates[0]
    suffix = 2
    while f"{base}{suffix}" in taken:
        suffix += 1
    return f"{base}{suffix}"
