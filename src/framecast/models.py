"""Pydantic models shared across parsing, rewriting, validation, and recovery."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime
from functools import cached_property
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

BindingKind = Literal["scalar", "collection", "collection_of_records"]
MutationRule = Literal[
    "periodic_timer",
    "one_shot_timer",
    "event_handler",
    "derived_from_other",
    "mount_effect",
    "static",
    "unclassified",
]
Severity = Literal["critical", "major", "minor"]
Layer = Literal["syntax", "variable_flow", "type_check", "template", "domain"]
ProjectState = Literal["unknown", "checked", "healthy", "recovering", "recovered", "partially_recovered"]


class Artifact(BaseModel):
    """One unit of input source text to be transpiled."""

    model_config = ConfigDict(frozen=True)

    source_text: str
    identifier: str = "artifact"


class Span(BaseModel):
    """Byte offsets into the source plus a 1-based line/column for messages."""

    model_config = ConfigDict(frozen=True)

    start: int
    end: int
    line: int = 1
    column: int = 1

    def label(self) -> str:
        return f"{self.line}:{self.column}"


class SyntaxNode(BaseModel):
    """A node of the structural tree.

    ``field`` is the grammar field name the node occupies in its parent
    (``name``, ``value``, ``body`` ...), or ``None`` for positional children.
    """

    type: str
    span: Span
    field: str | None = None
    named: bool = True
    children: list[SyntaxNode] = Field(default_factory=list)

    @property
    def start(self) -> int:
        return self.span.start

    @property
    def end(self) -> int:
        return self.span.end

    @property
    def named_children(self) -> list[SyntaxNode]:
        return [child for child in self.children if child.named]

    def child_by_field(self, field: str) -> SyntaxNode | None:
        for child in self.children:
            if child.field == field:
                return child
        return None

    def children_by_field(self, field: str) -> list[SyntaxNode]:
        return [child for child in self.children if child.field == field]

    def first_child_of_type(self, *types: str) -> SyntaxNode | None:
        for child in self.children:
            if child.type in types:
                return child
        return None

    def iter_descendants(self) -> Iterator[SyntaxNode]:
        """Pre-order walk over the node and everything below it."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def same_as(self, other: SyntaxNode | None) -> bool:
        return other is not None and self.type == other.type and self.span == other.span


SyntaxNode.model_rebuild()


class StructuralTree(BaseModel):
    """Parsed representation of one artifact source text."""

    source_text: str
    root: SyntaxNode

    @cached_property
    def source_bytes(self) -> bytes:
        return self.source_text.encode("utf-8")

    def text(self, node: SyntaxNode) -> str:
        return self.source_bytes[node.start : node.end].decode("utf-8")


class RecordField(BaseModel):
    """One field of a generated record (``x: Math.random() * 100``)."""

    name: str
    value: SyntaxNode | None = Field(default=None, exclude=True, repr=False)
    randomized: bool = False
    spread: bool = False


class RecordGenerator(BaseModel):
    """A loop or comprehension producing N synthetic records."""

    count_expr: str
    index_name: str | None = None
    fields: list[RecordField] = Field(default_factory=list)
    locals: dict[str, SyntaxNode] = Field(default_factory=dict, exclude=True, repr=False)
    hoisted: list[SyntaxNode] = Field(default_factory=list, exclude=True, repr=False)
    returns_records: bool = True
    element: SyntaxNode | None = Field(default=None, exclude=True, repr=False)


class ScalarUpdate(BaseModel):
    """Recognized shape of a scalar setter argument."""

    form: Literal[
        "linear",
        "modular",
        "clamp",
        "toggle",
        "geometric",
        "oscillation",
        "clock",
        "jitter",
        "assign",
        "functional",
    ]
    param: str | None = None
    expression: SyntaxNode | None = Field(default=None, exclude=True, repr=False)
    step: SyntaxNode | None = Field(default=None, exclude=True, repr=False)
    modulus: SyntaxNode | None = Field(default=None, exclude=True, repr=False)
    reset: SyntaxNode | None = Field(default=None, exclude=True, repr=False)
    clamp_fn: str | None = None
    clamp_bound: SyntaxNode | None = Field(default=None, exclude=True, repr=False)
    amplitude: SyntaxNode | None = Field(default=None, exclude=True, repr=False)
    wave: Literal["sin", "cos"] | None = None
    frequency_per_ms: float | None = None
    phase: SyntaxNode | None = Field(default=None, exclude=True, repr=False)
    offset: SyntaxNode | None = Field(default=None, exclude=True, repr=False)
    sign: int = 1


class CollectionUpdate(BaseModel):
    """A periodic ``prev.map(item => ...)`` update of a data array."""

    callback: SyntaxNode = Field(exclude=True, repr=False)
    item_name: str
    index_name: str | None = None


class TimerInfo(BaseModel):
    source: Literal["setInterval", "setTimeout", "requestAnimationFrame"]
    interval_ms: float | None = None
    order: int = 0


class StateBinding(BaseModel):
    """One discovered mutable value and the rule that mutates it."""

    name: str
    kind: BindingKind
    declaration: Literal["state", "constant"] = "state"
    initial_expr: str
    mutation_rule: MutationRule
    depends_on: list[str] = Field(default_factory=list)
    setter: str | None = None
    span: Span
    type_annotation: str | None = None
    timer: TimerInfo | None = None
    update: ScalarUpdate | None = None
    generator: RecordGenerator | None = None
    collection_update: CollectionUpdate | None = None
    reason: str = ""
    declarator: SyntaxNode = Field(exclude=True, repr=False)
    statement: SyntaxNode = Field(exclude=True, repr=False)
    host: SyntaxNode | None = Field(default=None, exclude=True, repr=False)
    initial: SyntaxNode | None = Field(default=None, exclude=True, repr=False)
    value_site: SyntaxNode | None = Field(default=None, exclude=True, repr=False)


class Substitution(BaseModel):
    binding_name: str
    frame_expression: str


class RewriteResult(BaseModel):
    """Output of the determinism rewriter."""

    output_text: str
    substitutions: list[Substitution] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)
    notes: list[str] = Field(default_factory=list)
    frame_accessor: str | None = None
    bindings_total: int = 0
    bindings_rewritten: int = 0


class RepairResult(BaseModel):
    text: str
    fix_count: int = 0
    fixes: list[str] = Field(default_factory=list)


class TypeDiagnostic(BaseModel):
    """One diagnostic reported by the type-checking oracle."""

    message: str
    line: int = 0
    column: int = 0
    category: Literal["error", "warning", "suggestion", "message"] = "error"
    code: str | None = None


class Finding(BaseModel):
    """One validator diagnostic. Findings are data, never raised."""

    layer: Layer
    severity: Severity
    rule: str
    message: str
    span: Span | None = None


class ValidationReport(BaseModel):
    identifier: str
    is_valid: bool
    findings: list[Finding] = Field(default_factory=list)

    def by_layer(self, layer: Layer) -> list[Finding]:
        return [finding for finding in self.findings if finding.layer == layer]

    def by_severity(self, severity: Severity) -> list[Finding]:
        return [finding for finding in self.findings if finding.severity == severity]


class ManifestEntry(BaseModel):
    """One file or directory a valid project must contain."""

    model_config = ConfigDict(frozen=True)

    relative_path: str
    kind: Literal["directory", "required_file"]
    template: str | None = None
    primary_payload: bool = False

    @property
    def display_path(self) -> str:
        if self.kind == "directory":
            return self.relative_path.rstrip("/") + "/"
        return self.relative_path


class ProjectManifest(BaseModel):
    model_config = ConfigDict(frozen=True)

    entries: tuple[ManifestEntry, ...]

    @property
    def primary_payload(self) -> ManifestEntry | None:
        for entry in self.entries:
            if entry.primary_payload:
                return entry
        return None


class IntegrityReport(BaseModel):
    project_dir: Path
    state: ProjectState = "unknown"
    missing: list[str] = Field(default_factory=list)
    malformed: list[str] = Field(default_factory=list)
    actions_taken: list[str] = Field(default_factory=list)
    final_state: Literal["complete", "still_incomplete"] = "still_incomplete"
    attempts: int = 0


class PipelineOutcome(BaseModel):
    """Everything one pipeline invocation produced for its caller."""

    identifier: str
    report: ValidationReport
    repair: RepairResult
    input_repair: RepairResult | None = None
    rewrite: RewriteResult | None = None
    integrity: IntegrityReport | None = None
    bindings: list[dict[str, Any]] = Field(default_factory=list)
    used_placeholder: bool = False

    @property
    def output_text(self) -> str | None:
        return self.rewrite.output_text if self.rewrite else None


class ConversionRecord(BaseModel):
    """One conversion as stored in the ledger database."""

    conversion_id: str
    identifier: str
    created_at: datetime
    source_sha256: str
    source_text: str
    output_text: str | None = None
    is_valid: bool
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    bindings_total: int = 0
    bindings_rewritten: int = 0
    used_placeholder: bool = False
    input_fix_count: int = 0
    output_fix_count: int = 0
    notes: list[str] = Field(default_factory=list)
    project_dir: str | None = None
    integrity_state: str | None = None
