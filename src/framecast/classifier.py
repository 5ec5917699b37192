"""Classify the stateful values of an artifact and how they change over time."""

from __future__ import annotations

import logging
import re

from pydantic import BaseModel, ConfigDict

from framecast.models import (
    BindingKind,
    CollectionUpdate,
    RecordField,
    RecordGenerator,
    ScalarUpdate,
    StateBinding,
    StructuralTree,
    SyntaxNode,
    TimerInfo,
)
from framecast.parser import (
    call_arguments,
    callee_name,
    contains,
    declared_names,
    function_body_expression,
    function_name,
    function_params,
    identifiers_in,
    is_component,
    is_function,
    is_random_call,
    is_wall_clock,
    iter_with_ancestors,
    numeric_literal,
    unwrap,
)

logger = logging.getLogger(__name__)

TIMER_FUNCTIONS = ("setInterval", "setTimeout", "requestAnimationFrame")
EFFECT_HOOKS = ("useEffect", "useLayoutEffect")
ANIMATION_FRAME_MS = 1000 / 60
HANDLER_NAME = re.compile(r"^(handle|on)[A-Z]")
EVENT_ATTRIBUTE = re.compile(r"^on[A-Z]")

# Later entries win when a binding is mutated from several contexts.
RULE_PRECEDENCE = ("event", "mount", "derived", "one_shot", "periodic")

NodeKey = tuple[int, int, str]


def node_key(node: SyntaxNode) -> NodeKey:
    return (node.start, node.end, node.type)


class _SetterSite(BaseModel):
    """One call of a state setter and the context it runs in."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    binding: str
    call: SyntaxNode
    argument: SyntaxNode | None
    context: str
    timer: TimerInfo | None = None
    effect_deps: list[str] | None = None
    scope_fn: SyntaxNode | None = None
    functions: list[SyntaxNode] = []


def classify(tree: StructuralTree) -> list[StateBinding]:
    """Find state bindings and constant record generators in source order.

    Bindings matching no recognized pattern are tagged ``unclassified``;
    classification never raises for a parseable tree.
    """
    return _Classifier(tree).run()


class _Classifier:
    def __init__(self, tree: StructuralTree):
        self.tree = tree
        self.parents: dict[NodeKey, SyntaxNode] = {}
        self.constants: dict[str, float] = {}
        self.functions: dict[str, SyntaxNode] = {}
        self.timer_callbacks: dict[str, SyntaxNode] = {}
        self.handler_names: set[str] = set()
        self.state_declarators: list[tuple[SyntaxNode, tuple[SyntaxNode, ...]]] = []
        self.constant_declarators: list[tuple[SyntaxNode, tuple[SyntaxNode, ...]]] = []
        self.calls: list[tuple[SyntaxNode, tuple[SyntaxNode, ...]]] = []

    def text(self, node: SyntaxNode) -> str:
        return self.tree.text(node)

    def run(self) -> list[StateBinding]:
        self._index()
        bindings: list[StateBinding] = []
        setters: dict[str, str] = {}
        for declarator, ancestors in self.state_declarators:
            binding = self._state_binding(declarator, ancestors)
            if binding is None:
                continue
            bindings.append(binding)
            if binding.setter:
                setters[binding.setter] = binding.name

        sites = self._setter_sites(setters)
        names = {binding.name for binding in bindings}
        resolved = [self._resolve_rule(binding, sites, names) for binding in bindings]

        for declarator, ancestors in self.constant_declarators:
            constant = self._constant_binding(declarator, ancestors)
            if constant is not None and constant.name not in names:
                resolved.append(constant)

        resolved.sort(key=lambda binding: binding.span.start)
        for binding in resolved:
            logger.debug(
                "classified %s kind=%s rule=%s %s", binding.name, binding.kind, binding.mutation_rule, binding.reason
            )
        return resolved

    # -- indexing -----------------------------------------------------------------

    def _index(self) -> None:
        for node, ancestors in iter_with_ancestors(self.tree.root):
            for child in node.children:
                self.parents[node_key(child)] = node
            parent = ancestors[-1] if ancestors else None

            if node.type == "variable_declarator":
                value = unwrap(node.child_by_field("value"))
                name = node.child_by_field("name")
                if value is not None and value.type == "call_expression":
                    if callee_name(self.tree, value) == "useState" and name is not None and name.type == "array_pattern":
                        self.state_declarators.append((node, ancestors))
                        continue
                if name is not None and name.type == "identifier" and value is not None:
                    if is_function(value):
                        self.functions.setdefault(self.text(name), value)
                    elif parent is not None and parent.type == "lexical_declaration":
                        folded = self.fold(value)
                        if folded is not None and self._declaration_kind(parent) == "const":
                            self.constants[self.text(name)] = folded
                        elif contains(value, lambda n: is_random_call(self.tree, n)):
                            self.constant_declarators.append((node, ancestors))
            elif node.type in ("function_declaration", "generator_function_declaration"):
                name = node.child_by_field("name")
                if name is not None:
                    self.functions.setdefault(self.text(name), node)
            elif node.type == "call_expression":
                self.calls.append((node, ancestors))
                callee = callee_name(self.tree, node)
                args = call_arguments(node)
                if callee in TIMER_FUNCTIONS and args and args[0].type == "identifier":
                    self.timer_callbacks.setdefault(self.text(args[0]), node)
                if callee and callee.endswith("addEventListener") and len(args) > 1 and args[1].type == "identifier":
                    self.handler_names.add(self.text(args[1]))
            elif node.type == "jsx_attribute":
                attr_name = node.named_children[0] if node.named_children else None
                if attr_name is not None and EVENT_ATTRIBUTE.match(self.text(attr_name)):
                    for child in node.named_children[1:]:
                        target = unwrap(child.named_children[0]) if child.named_children else None
                        if target is not None and target.type == "identifier":
                            self.handler_names.add(self.text(target))

    def _declaration_kind(self, declaration: SyntaxNode) -> str:
        kind = declaration.child_by_field("kind")
        return self.text(kind) if kind is not None else ""

    def fold(self, node: SyntaxNode | None) -> float | None:
        """Constant-fold a numeric expression over literals and known constants."""
        node = unwrap(node)
        if node is None:
            return None
        literal = numeric_literal(self.tree, node)
        if literal is not None:
            return literal
        if node.type == "identifier":
            return self.constants.get(self.text(node))
        if node.type == "binary_expression":
            left = self.fold(node.child_by_field("left"))
            right = self.fold(node.child_by_field("right"))
            operator = node.child_by_field("operator")
            if left is None or right is None or operator is None:
                return None
            op = self.text(operator)
            if op == "+":
                return left + right
            if op == "-":
                return left - right
            if op == "*":
                return left * right
            if op == "/" and right != 0:
                return left / right
        return None

    # -- bindings -----------------------------------------------------------------

    def _state_binding(self, declarator: SyntaxNode, ancestors: tuple[SyntaxNode, ...]) -> StateBinding | None:
        pattern = declarator.child_by_field("name")
        call = unwrap(declarator.child_by_field("value"))
        if pattern is None or call is None:
            return None
        names = [child for child in pattern.named_children if child.type == "identifier"]
        if not names:
            return None
        args = call_arguments(call)
        initial = args[0] if args else None
        if initial is not None and is_function(initial) and not function_params(self.tree, initial):
            initial = function_body_expression(initial) or initial
        type_args = call.child_by_field("type_arguments")
        annotation = self.text(type_args)[1:-1].strip() if type_args is not None else None

        return StateBinding(
            name=self.text(names[0]),
            setter=self.text(names[1]) if len(names) > 1 else None,
            kind=self._kind_of(initial),
            initial_expr=self.text(initial) if initial is not None else "undefined",
            mutation_rule="static",
            span=declarator.span,
            type_annotation=annotation,
            declarator=declarator,
            statement=ancestors[-1],
            host=self._nearest_function(ancestors),
            initial=initial,
        )

    def _constant_binding(self, declarator: SyntaxNode, ancestors: tuple[SyntaxNode, ...]) -> StateBinding | None:
        value = unwrap(declarator.child_by_field("value"))
        name = declarator.child_by_field("name")
        if value is None or name is None:
            return None
        for idx in range(len(ancestors) - 1, -1, -1):
            if is_function(ancestors[idx]):
                if not is_component(self.tree, ancestors[idx], ancestors[idx - 1] if idx > 0 else None):
                    return None
                break
        # useMemo(() => Array.from(...), [])
        if value.type == "call_expression" and callee_name(self.tree, value) == "useMemo":
            args = call_arguments(value)
            if not args or not is_function(args[0]):
                return None
            value = function_body_expression(args[0])
            if value is None:
                return None
        generator = self._find_generator(value, None)
        if generator is None or not any(field.randomized for field in generator.fields):
            return None
        return StateBinding(
            name=self.text(name),
            declaration="constant",
            kind="collection_of_records",
            initial_expr=self.text(value),
            mutation_rule="static",
            span=declarator.span,
            generator=generator,
            reason="randomized record generator",
            declarator=declarator,
            statement=ancestors[-1],
            host=self._nearest_function(ancestors),
            initial=value,
        )

    def _nearest_function(self, ancestors: tuple[SyntaxNode, ...]) -> SyntaxNode | None:
        for ancestor in reversed(ancestors):
            if is_function(ancestor):
                return ancestor
        return None

    def _kind_of(self, initial: SyntaxNode | None) -> BindingKind:
        node = unwrap(initial)
        if node is None:
            return "scalar"
        if node.type == "array":
            elements = node.named_children
            if elements and unwrap(elements[0]).type == "object":
                return "collection_of_records"
            return "collection"
        generator = self._find_generator(node, None)
        if generator is not None:
            return "collection_of_records" if generator.returns_records else "collection"
        return "scalar"

    # -- setter sites -------------------------------------------------------------

    def _setter_sites(self, setters: dict[str, str]) -> list[_SetterSite]:
        sites: list[_SetterSite] = []
        for call, ancestors in self.calls:
            fn = unwrap(call.child_by_field("function"))
            if fn is None or fn.type != "identifier" or self.text(fn) not in setters:
                continue
            args = call_arguments(call)
            site = self._site_context(call, ancestors)
            site.binding = setters[self.text(fn)]
            site.argument = args[0] if args else None
            sites.append(site)
        return sites

    def _site_context(self, call: SyntaxNode, ancestors: tuple[SyntaxNode, ...]) -> _SetterSite:
        functions = [ancestor for ancestor in reversed(ancestors) if is_function(ancestor)]
        scope_fn = functions[0] if functions else None

        def site(context: str, **extra) -> _SetterSite:
            return _SetterSite(
                binding="",
                call=call,
                argument=None,
                context=context,
                scope_fn=scope_fn,
                functions=functions,
                **extra,
            )

        for idx in range(len(ancestors) - 1, -1, -1):
            ancestor = ancestors[idx]
            if not is_function(ancestor):
                continue
            parent = ancestors[idx - 1] if idx > 0 else None
            grand = ancestors[idx - 2] if idx > 1 else None

            if parent is not None and parent.type == "arguments" and grand is not None and grand.type == "call_expression":
                outer = callee_name(self.tree, grand)
                outer_args = call_arguments(grand)
                first = outer_args[0] if outer_args else None
                if outer in TIMER_FUNCTIONS and ancestor.same_as(first):
                    return self._timer_site(site, grand)
                if outer in EFFECT_HOOKS and ancestor.same_as(first):
                    deps = outer_args[1] if len(outer_args) > 1 else None
                    return site("effect", effect_deps=self._dependency_names(deps))
                if outer and outer.endswith("addEventListener"):
                    return site("event")
                if outer == "useCallback":
                    holder = self.parents.get(node_key(grand))
                    name = function_name(self.tree, grand, holder) if holder is not None else None
                    if name in self.timer_callbacks:
                        return self._timer_site(site, self.timer_callbacks[name])
                    if name is not None and (name in self.handler_names or HANDLER_NAME.match(name)):
                        return site("event")

            name = function_name(self.tree, ancestor, parent)
            if name is not None and name in self.timer_callbacks:
                return self._timer_site(site, self.timer_callbacks[name])
            if name is not None and (name in self.handler_names or HANDLER_NAME.match(name)):
                return site("event")
            if parent is not None and parent.type == "jsx_expression" and grand is not None and grand.type == "jsx_attribute":
                attr_name = grand.named_children[0] if grand.named_children else None
                if attr_name is not None and EVENT_ATTRIBUTE.match(self.text(attr_name)):
                    return site("event")

        return site("render")

    def _timer_site(self, site, timer_call: SyntaxNode) -> _SetterSite:
        source = callee_name(self.tree, timer_call)
        args = call_arguments(timer_call)
        if source == "requestAnimationFrame":
            interval: float | None = ANIMATION_FRAME_MS
        else:
            interval = self.fold(args[1]) if len(args) > 1 else 0.0
        info = TimerInfo(source=source, interval_ms=interval, order=timer_call.start)
        context = "one_shot" if source == "setTimeout" else "periodic"
        return site(context, timer=info)

    def _dependency_names(self, deps: SyntaxNode | None) -> list[str] | None:
        deps = unwrap(deps)
        if deps is None or deps.type != "array":
            return None
        return [self.text(child) for child in deps.named_children if child.type == "identifier"]

    # -- rules --------------------------------------------------------------------

    def _resolve_rule(self, binding: StateBinding, sites: list[_SetterSite], names: set[str]) -> StateBinding:
        own = [site for site in sites if site.binding == binding.name]
        for site in own:
            if site.context == "effect":
                deps = [dep for dep in (site.effect_deps or []) if dep in names and dep != binding.name]
                site.context = "derived" if deps else "mount"
                site.effect_deps = deps

        chosen: _SetterSite | None = None
        for context in reversed(RULE_PRECEDENCE):
            candidates = [site for site in own if site.context == context]
            if candidates:
                chosen = max(candidates, key=lambda s: (s.timer.order if s.timer else 0, s.call.start))
                break

        if chosen is None:
            if any(site.context == "render" for site in own):
                return self._unclassified(binding, "setter called during render")
            return self._with_generator(binding, own, "static", "never mutated")

        if chosen.context == "event":
            return self._with_generator(binding, own, "event_handler", "interactive only")

        rule = {
            "periodic": "periodic_timer",
            "one_shot": "one_shot_timer",
            "derived": "derived_from_other",
            "mount": "mount_effect",
        }[chosen.context]
        binding = binding.model_copy(
            update={"timer": chosen.timer, "depends_on": list(chosen.effect_deps or []), "value_site": chosen.argument}
        )

        generated = self._with_generator(binding, own, rule, "record generator")
        if generated.generator is not None:
            return generated

        if chosen.argument is None:
            return self._unclassified(binding, "setter called without a value")

        local_names = self._site_locals(chosen, binding.host)
        if binding.kind != "scalar" and rule == "periodic_timer":
            update = self._collection_update(chosen.argument, binding.name)
            if update is None or self._blocked(update.callback, local_names):
                return self._unclassified(binding, "unrecognized collection update")
            return binding.model_copy(
                update={"mutation_rule": rule, "collection_update": update, "reason": "periodic map update"}
            )

        scalar = self._scalar_update(chosen.argument, binding.name)
        if scalar is None:
            return self._unclassified(binding, "unrecognized update expression")
        if rule in ("derived_from_other", "mount_effect") and scalar.param is not None and scalar.form != "functional":
            scalar = scalar.model_copy(update={"form": "functional"})
        if rule == "derived_from_other" and scalar.form == "functional":
            return self._unclassified(binding, "derived value updated from its previous value")
        if self._blocked(chosen.argument, local_names):
            return self._unclassified(binding, "update reads callback-local values")
        return binding.model_copy(update={"mutation_rule": rule, "update": scalar, "reason": scalar.form})

    def _site_locals(self, site: _SetterSite, host: SyntaxNode | None) -> set[str]:
        """Names declared by the callbacks between the component body and the setter call."""
        names: set[str] = set()
        for fn in site.functions:
            if fn.same_as(host):
                break
            names |= declared_names(self.tree, fn)
        return names

    def _with_generator(self, binding: StateBinding, sites: list[_SetterSite], rule: str, reason: str) -> StateBinding:
        candidates: list[tuple[SyntaxNode, SyntaxNode | None]] = []
        if binding.initial is not None:
            candidates.append((binding.initial, None))
        for site in sites:
            if site.argument is not None and site.context in ("mount", "periodic", "one_shot"):
                candidates.append((site.argument, site.scope_fn))
        for node, scope_fn in candidates:
            generator = self._find_generator(node, scope_fn)
            if generator is not None and (generator.returns_records or binding.kind != "scalar"):
                kind = "collection_of_records" if generator.returns_records else "collection"
                return binding.model_copy(
                    update={"mutation_rule": rule, "generator": generator, "kind": kind, "reason": reason}
                )
        return binding.model_copy(update={"mutation_rule": rule, "reason": reason})

    def _unclassified(self, binding: StateBinding, reason: str) -> StateBinding:
        return binding.model_copy(update={"mutation_rule": "unclassified", "reason": reason})

    def _blocked(self, node: SyntaxNode, local_names: set[str]) -> bool:
        if not local_names:
            return False
        referenced = identifiers_in(self.tree, node) - declared_names(self.tree, node)
        return bool(referenced & local_names)

    # -- scalar updates -----------------------------------------------------------

    def _scalar_update(self, argument: SyntaxNode, name: str) -> ScalarUpdate | None:
        node = unwrap(argument)
        if node is None:
            return None
        if is_function(node):
            params = function_params(self.tree, node)
            if len(params) != 1 or not params[0]:
                return None
            body = function_body_expression(node)
            if body is None:
                return None
            update = self._classify_expression(body, params[0])
            if update is None:
                return ScalarUpdate(form="functional", param=params[0], expression=body)
            return update
        update = self._classify_expression(node, name)
        return update

    def _classify_expression(self, expr: SyntaxNode, param: str) -> ScalarUpdate | None:
        expr = unwrap(expr)
        if expr is None:
            return None
        if param not in identifiers_in(self.tree, expr):
            if contains(expr, lambda n: is_wall_clock(self.tree, n)):
                return self._oscillation(expr) or ScalarUpdate(form="clock", expression=expr)
            if contains(expr, lambda n: is_random_call(self.tree, n)):
                return ScalarUpdate(form="jitter", expression=expr)
            return ScalarUpdate(form="assign", expression=expr)

        if expr.type == "binary_expression":
            return self._binary_update(expr, param)
        if expr.type == "ternary_expression":
            return self._wrapping_update(expr, param)
        if expr.type == "unary_expression":
            operator = expr.child_by_field("operator")
            if operator is not None and self.text(operator) == "!" and self._is_param(
                expr.child_by_field("argument"), param
            ):
                return ScalarUpdate(form="toggle", param=param, expression=expr)
        if expr.type == "call_expression" and callee_name(self.tree, expr) in ("Math.min", "Math.max"):
            args = call_arguments(expr)
            inner = [self._classify_expression(arg, param) for arg in args]
            linear = [update for update in inner if update is not None and update.form == "linear" and update.param]
            bounds = [arg for arg in args if param not in identifiers_in(self.tree, arg)]
            if len(linear) == 1 and len(bounds) == len(args) - 1 and bounds:
                return linear[0].model_copy(
                    update={
                        "form": "clamp",
                        "clamp_fn": callee_name(self.tree, expr),
                        "clamp_bound": bounds[0],
                        "expression": expr,
                    }
                )
        return None

    def _binary_update(self, expr: SyntaxNode, param: str) -> ScalarUpdate | None:
        operator = expr.child_by_field("operator")
        left = unwrap(expr.child_by_field("left"))
        right = unwrap(expr.child_by_field("right"))
        if operator is None or left is None or right is None:
            return None
        op = self.text(operator)
        if op in ("+", "-"):
            step, sign = None, 1 if op == "+" else -1
            if self._is_param(left, param) and param not in identifiers_in(self.tree, right):
                step = right
            elif op == "+" and self._is_param(right, param) and param not in identifiers_in(self.tree, left):
                step = left
            if step is None:
                return None
            if contains(step, lambda n: is_random_call(self.tree, n)):
                return ScalarUpdate(form="jitter", param=param, expression=expr, step=step, sign=sign)
            return ScalarUpdate(form="linear", param=param, expression=expr, step=step, sign=sign)
        if op == "%" and param not in identifiers_in(self.tree, right):
            inner = self._classify_expression(left, param)
            if inner is not None and inner.form == "linear":
                return inner.model_copy(update={"form": "modular", "modulus": right, "expression": expr})
        if op == "*":
            if self._is_param(left, param) and param not in identifiers_in(self.tree, right):
                return ScalarUpdate(form="geometric", param=param, expression=expr, step=right)
            if self._is_param(right, param) and param not in identifiers_in(self.tree, left):
                return ScalarUpdate(form="geometric", param=param, expression=expr, step=left)
        return None

    def _wrapping_update(self, expr: SyntaxNode, param: str) -> ScalarUpdate | None:
        condition = unwrap(expr.child_by_field("condition"))
        consequence = expr.child_by_field("consequence")
        alternative = expr.child_by_field("alternative")
        if condition is None or consequence is None or alternative is None:
            return None
        bound = self._comparison_bound(condition, param)
        if bound is None:
            return None
        for branch, other in ((alternative, consequence), (consequence, alternative)):
            inner = self._classify_expression(branch, param)
            if inner is not None and inner.form == "linear" and param not in identifiers_in(self.tree, other):
                return inner.model_copy(
                    update={"form": "modular", "modulus": bound, "reset": unwrap(other), "expression": expr}
                )
        return None

    def _comparison_bound(self, condition: SyntaxNode, param: str) -> SyntaxNode | None:
        if condition.type != "binary_expression":
            return None
        operator = condition.child_by_field("operator")
        if operator is None or self.text(operator) not in ("<", "<=", ">", ">="):
            return None
        left = unwrap(condition.child_by_field("left"))
        right = unwrap(condition.child_by_field("right"))
        if left is None or right is None:
            return None
        if param in identifiers_in(self.tree, left) and param not in identifiers_in(self.tree, right):
            return right
        if param in identifiers_in(self.tree, right) and param not in identifiers_in(self.tree, left):
            return left
        return None

    def _oscillation(self, expr: SyntaxNode) -> ScalarUpdate | None:
        """Match ``[offset +] [amplitude *] Math.sin(clock * k [+ phase])``."""
        offset: SyntaxNode | None = None
        node = expr
        if node.type == "binary_expression" and self._operator(node) == "+":
            left = unwrap(node.child_by_field("left"))
            right = unwrap(node.child_by_field("right"))
            if left is not None and right is not None:
                if not contains(left, lambda n: is_wall_clock(self.tree, n)):
                    offset, node = left, right
                elif not contains(right, lambda n: is_wall_clock(self.tree, n)):
                    offset, node = right, left
        amplitude: SyntaxNode | None = None
        if node.type == "binary_expression" and self._operator(node) == "*":
            left = unwrap(node.child_by_field("left"))
            right = unwrap(node.child_by_field("right"))
            if left is not None and right is not None:
                if self._wave_of(right) and not contains(left, lambda n: is_wall_clock(self.tree, n)):
                    amplitude, node = left, right
                elif self._wave_of(left) and not contains(right, lambda n: is_wall_clock(self.tree, n)):
                    amplitude, node = right, left
        wave = self._wave_of(node)
        if wave is None:
            return None
        args = call_arguments(node)
        if len(args) != 1:
            return None
        frequency, phase = self._clock_argument(unwrap(args[0]))
        if frequency is None:
            return None
        return ScalarUpdate(
            form="oscillation",
            expression=expr,
            wave=wave,
            amplitude=amplitude,
            offset=offset,
            phase=phase,
            frequency_per_ms=frequency,
        )

    def _wave_of(self, node: SyntaxNode | None) -> str | None:
        node = unwrap(node)
        if node is None or node.type != "call_expression":
            return None
        name = callee_name(self.tree, node)
        if name == "Math.sin":
            return "sin"
        if name == "Math.cos":
            return "cos"
        return None

    def _clock_argument(self, node: SyntaxNode | None) -> tuple[float | None, SyntaxNode | None]:
        """Frequency (radians per millisecond) and phase of a clock-driven angle."""
        if node is None:
            return None, None
        if is_wall_clock(self.tree, node):
            return 1.0, None
        if node.type != "binary_expression":
            return None, None
        op = self._operator(node)
        left = unwrap(node.child_by_field("left"))
        right = unwrap(node.child_by_field("right"))
        if left is None or right is None:
            return None, None
        if op == "*":
            if is_wall_clock(self.tree, left) and self.fold(right) is not None:
                return self.fold(right), None
            if is_wall_clock(self.tree, right) and self.fold(left) is not None:
                return self.fold(left), None
        if op == "/" and is_wall_clock(self.tree, left):
            divisor = self.fold(right)
            if divisor:
                return 1.0 / divisor, None
        if op == "+":
            for angle, phase in ((left, right), (right, left)):
                if contains(phase, lambda n: is_wall_clock(self.tree, n)):
                    continue
                frequency, inner_phase = self._clock_argument(angle)
                if frequency is not None and inner_phase is None:
                    return frequency, phase
        return None, None

    def _operator(self, node: SyntaxNode) -> str | None:
        operator = node.child_by_field("operator")
        return self.text(operator) if operator is not None else None

    def _is_param(self, node: SyntaxNode | None, param: str) -> bool:
        node = unwrap(node)
        return node is not None and node.type == "identifier" and self.text(node) == param

    # -- collections --------------------------------------------------------------

    def _collection_update(self, argument: SyntaxNode, name: str) -> CollectionUpdate | None:
        node = unwrap(argument)
        target = name
        if is_function(node):
            params = function_params(self.tree, node)
            if len(params) != 1 or not params[0]:
                return None
            target = params[0]
            node = function_body_expression(node)
        if node is None or node.type != "call_expression":
            return None
        fn = unwrap(node.child_by_field("function"))
        if fn is None or fn.type != "member_expression":
            return None
        obj = unwrap(fn.child_by_field("object"))
        prop = fn.child_by_field("property")
        if obj is None or prop is None or self.text(prop) != "map":
            return None
        if obj.type != "identifier" or self.text(obj) != target:
            return None
        args = call_arguments(node)
        if not args or not is_function(args[0]):
            return None
        params = function_params(self.tree, args[0])
        return CollectionUpdate(
            callback=args[0],
            item_name=params[0] if params and params[0] else "item",
            index_name=params[1] if len(params) > 1 and params[1] else None,
        )

    def _find_generator(
        self, expr: SyntaxNode | None, scope_fn: SyntaxNode | None, depth: int = 0
    ) -> RecordGenerator | None:
        node = unwrap(expr)
        if node is None or depth > 3:
            return None
        if node.type == "call_expression":
            name = callee_name(self.tree, node)
            args = call_arguments(node)
            if name == "Array.from" and len(args) >= 2 and is_function(args[1]):
                count = self._length_of(args[0])
                if count is not None:
                    return self._from_callback(count, args[1], scope_fn)
            fn = unwrap(node.child_by_field("function"))
            if fn is not None and fn.type == "member_expression" and args and is_function(args[0]):
                prop = fn.child_by_field("property")
                if prop is not None and self.text(prop) == "map":
                    count = self._array_source_length(fn.child_by_field("object"))
                    if count is not None:
                        return self._from_callback(count, args[0], scope_fn)
            if name in self.functions and not args:
                return self._from_helper(self.functions[name], depth)
        if node.type == "identifier":
            name = self.text(node)
            if name in self.functions:
                return self._from_helper(self.functions[name], depth)
            if scope_fn is not None:
                return self._push_loop(name, scope_fn)
        return None

    def _from_helper(self, helper: SyntaxNode, depth: int) -> RecordGenerator | None:
        """Generator built by a helper such as ``const createParticles = () => ...``."""
        returned = function_body_expression(helper) or self._returned_identifier(helper)
        return self._find_generator(returned, helper, depth + 1)

    def _returned_identifier(self, fn: SyntaxNode) -> SyntaxNode | None:
        body = fn.child_by_field("body")
        if body is None or body.type != "statement_block":
            return None
        for statement in reversed(body.named_children):
            if statement.type == "return_statement" and statement.named_children:
                return statement.named_children[0]
        return None

    def _length_of(self, node: SyntaxNode | None) -> SyntaxNode | None:
        node = unwrap(node)
        if node is None:
            return None
        if node.type == "object":
            for pair in node.named_children:
                key = pair.child_by_field("key")
                value = pair.child_by_field("value")
                if pair.type == "pair" and key is not None and value is not None and self.text(key) == "length":
                    return value
        if node.type in ("call_expression", "new_expression") and callee_name(self.tree, node) == "Array":
            args = call_arguments(node)
            if len(args) == 1:
                return args[0]
        return None

    def _array_source_length(self, node: SyntaxNode | None) -> SyntaxNode | None:
        node = unwrap(node)
        if node is None:
            return None
        if node.type == "array" and len(node.named_children) == 1 and node.named_children[0].type == "spread_element":
            inner = node.named_children[0].named_children
            return self._array_source_length(inner[0]) if inner else None
        if node.type in ("call_expression", "new_expression"):
            name = callee_name(self.tree, node)
            if name == "Array":
                return self._length_of(node)
            if name == "Array.from" and len(call_arguments(node)) == 1:
                return self._length_of(call_arguments(node)[0])
            fn = unwrap(node.child_by_field("function"))
            if fn is not None and fn.type == "member_expression":
                prop = fn.child_by_field("property")
                if prop is not None and self.text(prop) in ("fill", "keys"):
                    return self._array_source_length(fn.child_by_field("object"))
        return None

    def _from_callback(
        self, count: SyntaxNode, callback: SyntaxNode, scope_fn: SyntaxNode | None
    ) -> RecordGenerator | None:
        params = function_params(self.tree, callback)
        index_name = params[1] if len(params) > 1 and params[1] else None
        body = callback.child_by_field("body")
        element = function_body_expression(callback)
        local_values: dict[str, SyntaxNode] = {}
        if body is not None and body.type == "statement_block":
            local_values = self._local_values(body)
            if element is None:
                element = unwrap(self._returned_identifier(callback))
        if element is None:
            return None
        return self._generator(self.text(count), count, index_name, element, local_values, scope_fn, set())

    def _push_loop(self, name: str, scope_fn: SyntaxNode) -> RecordGenerator | None:
        """Generator written as ``for (let i = 0; i < N; i++) name.push({...})``."""
        for loop in scope_fn.iter_descendants():
            if loop.type != "for_statement":
                continue
            body = loop.child_by_field("body")
            if body is None:
                continue
            for call in body.iter_descendants():
                if call.type != "call_expression" or callee_name(self.tree, call) != f"{name}.push":
                    continue
                args = call_arguments(call)
                if len(args) != 1:
                    continue
                index_name, bound, inclusive = self._loop_bounds(loop)
                if bound is None:
                    return None
                count = f"{self.text(bound)} + 1" if inclusive else self.text(bound)
                local_values = self._local_values(body) if body.type == "statement_block" else {}
                return self._generator(count, bound, index_name, unwrap(args[0]), local_values, scope_fn, {name})
        return None

    def _loop_bounds(self, loop: SyntaxNode) -> tuple[str | None, SyntaxNode | None, bool]:
        index_name: str | None = None
        initializer = loop.child_by_field("initializer")
        if initializer is not None:
            for node in initializer.iter_descendants():
                if node.type == "variable_declarator":
                    name = node.child_by_field("name")
                    if name is not None:
                        index_name = self.text(name)
                    break
        condition = loop.child_by_field("condition")
        if condition is None or index_name is None:
            return index_name, None, False
        for node in condition.iter_descendants():
            if node.type != "binary_expression":
                continue
            op = self._operator(node)
            left = unwrap(node.child_by_field("left"))
            right = node.child_by_field("right")
            if left is None or right is None or self.text(left) != index_name:
                continue
            if op in ("<", "<="):
                return index_name, right, op == "<="
        return index_name, None, False

    def _local_values(self, block: SyntaxNode) -> dict[str, SyntaxNode]:
        values: dict[str, SyntaxNode] = {}
        for statement in block.named_children:
            if statement.type not in ("lexical_declaration", "variable_declaration"):
                continue
            for declarator in statement.named_children:
                if declarator.type != "variable_declarator":
                    continue
                name = declarator.child_by_field("name")
                value = declarator.child_by_field("value")
                if name is not None and value is not None and name.type == "identifier":
                    values[self.text(name)] = value
        return values

    def _generator(
        self,
        count: str,
        count_node: SyntaxNode,
        index_name: str | None,
        element: SyntaxNode | None,
        local_values: dict[str, SyntaxNode],
        scope_fn: SyntaxNode | None,
        exclude: set[str],
    ) -> RecordGenerator | None:
        if element is None:
            return None

        def randomized(node: SyntaxNode) -> bool:
            if contains(node, lambda n: is_random_call(self.tree, n)):
                return True
            return any(
                name in local_values and contains(local_values[name], lambda n: is_random_call(self.tree, n))
                for name in identifiers_in(self.tree, node)
            )

        fields: list[RecordField] = []
        if element.type == "object":
            for child in element.named_children:
                if child.type == "pair":
                    key = child.child_by_field("key")
                    value = child.child_by_field("value")
                    if key is None or value is None:
                        continue
                    fields.append(
                        RecordField(name=self.text(key).strip("'\""), value=value, randomized=randomized(value))
                    )
                elif child.type == "shorthand_property_identifier":
                    name = self.text(child)
                    value = local_values.get(name, child)
                    fields.append(RecordField(name=name, value=value, randomized=randomized(value)))
                elif child.type != "comment":
                    fields.append(RecordField(name=self.text(child), value=child, spread=True))

        generator = RecordGenerator(
            count_expr=count,
            index_name=index_name,
            fields=fields,
            locals=local_values,
            returns_records=element.type == "object",
            element=element,
        )
        if scope_fn is None:
            return generator

        hoisted = self._hoistable(generator, count_node, scope_fn, exclude)
        if hoisted is None:
            return None
        return generator.model_copy(update={"hoisted": hoisted})

    def _hoistable(
        self, generator: RecordGenerator, count_node: SyntaxNode, scope_fn: SyntaxNode, exclude: set[str]
    ) -> list[SyntaxNode] | None:
        """Declarations of ``scope_fn`` the generator reads, or None if it reads anything else local."""
        body = scope_fn.child_by_field("body")
        top_level: dict[str, SyntaxNode] = {}
        if body is not None and body.type == "statement_block":
            for statement in body.named_children:
                if statement.type in ("lexical_declaration", "variable_declaration"):
                    for name in declared_names(self.tree, statement):
                        top_level[name] = statement
        declared_anywhere = declared_names(self.tree, scope_fn)

        sources = [count_node, *generator.locals.values()]
        if generator.element is not None:
            sources.append(generator.element)
        pending: set[str] = set()
        for source in sources:
            pending |= identifiers_in(self.tree, source) - declared_names(self.tree, source)
        pending -= set(generator.locals) | {generator.index_name or ""} | exclude

        chosen: dict[NodeKey, SyntaxNode] = {}
        seen: set[str] = set()
        while pending:
            name = pending.pop()
            if name in seen:
                continue
            seen.add(name)
            if name in top_level:
                statement = top_level[name]
                if contains(statement, lambda n: callee_name(self.tree, n) in TIMER_FUNCTIONS):
                    return None
                chosen[node_key(statement)] = statement
                pending |= identifiers_in(self.tree, statement) - declared_names(self.tree, statement)
            elif name in declared_anywhere:
                return None
        return sorted(chosen.values(), key=lambda statement: statement.start)
