"""Type-check oracles consulted by the validator's type-check layer."""

from __future__ import annotations

import logging
import re
import shlex
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from framecast.errors import TypeCheckError
from framecast.models import TypeDiagnostic

logger = logging.getLogger(__name__)

DEFAULT_TSC_COMMAND = "tsc"
DEFAULT_TIMEOUT_SECONDS = 10.0

# Unresolvable modules and untyped JSX are expected for a lone file; unknown
# names are reported by the variable-flow layer instead.
IGNORED_CODES = frozenset({"TS2304", "TS2552", "TS2307", "TS2792", "TS7016", "TS7026", "TS2875"})

TSC_FLAGS = (
    "--noEmit",
    "--pretty",
    "false",
    "--jsx",
    "react-jsx",
    "--target",
    "es2020",
    "--module",
    "esnext",
    "--moduleResolution",
    "node",
    "--skipLibCheck",
    "--esModuleInterop",
    "--allowJs",
    "--lib",
    "es2020,dom",
    "--strict",
    "--noImplicitAny",
    "false",
)

_DIAGNOSTIC = re.compile(
    r"^(?P<file>.+?)\((?P<line>\d+),(?P<col>\d+)\): "
    r"(?P<cat>error|warning|message|suggestion) (?P<code>TS\d+): (?P<msg>.*)$"
)


@runtime_checkable
class TypeChecker(Protocol):
    """Anything that can type-check one artifact's text."""

    def check_types(self, source_text: str) -> list[TypeDiagnostic]:
        """Return diagnostics, or raise ``TypeCheckError`` when no verdict is possible."""
        ...


class NullTypeChecker:
    """Oracle that never reports anything; used when no compiler is configured."""

    def check_types(self, source_text: str) -> list[TypeDiagnostic]:
        return []


class TscTypeChecker:
    """Run the TypeScript compiler over a temporary ``.tsx`` copy of the artifact."""

    def __init__(
        self,
        command: str = DEFAULT_TSC_COMMAND,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        ignored_codes: frozenset[str] = IGNORED_CODES,
    ):
        self.command = command
        self.timeout_seconds = timeout_seconds
        self.ignored_codes = ignored_codes

    def is_available(self) -> bool:
        parts = shlex.split(self.command)
        return bool(parts) and shutil.which(parts[0]) is not None

    def check_types(self, source_text: str) -> list[TypeDiagnostic]:
        with tempfile.TemporaryDirectory(prefix="framecast-tsc-") as tmp:
            source_path = Path(tmp) / "Artifact.tsx"
            source_path.write_text(source_text, encoding="utf-8")
            cmd = [*shlex.split(self.command), *TSC_FLAGS, str(source_path)]
            logger.debug("running %s", " ".join(cmd))
            try:
                proc = subprocess.run(cmd, capture_output=True, text=True, check=False, timeout=self.timeout_seconds)
            except subprocess.TimeoutExpired as exc:
                raise TypeCheckError(f"tsc timed out after {self.timeout_seconds:g}s") from exc
            except OSError as exc:
                raise TypeCheckError(f"could not run {self.command!r}: {exc}") from exc

        diagnostics = parse_tsc_output(proc.stdout, self.ignored_codes)
        if proc.returncode != 0 and not diagnostics and not _mentions_diagnostics(proc.stdout):
            stderr = (proc.stderr or proc.stdout).strip()
            raise TypeCheckError(f"Command failed ({self.command}): {stderr}")
        return diagnostics


def parse_tsc_output(output: str, ignored_codes: frozenset[str] = IGNORED_CODES) -> list[TypeDiagnostic]:
    """Turn ``file(line,col): error TSnnnn: message`` lines into diagnostics.

    Continuation lines (indented elaborations) are appended to the previous
    diagnostic's message.
    """
    diagnostics: list[TypeDiagnostic] = []
    skipping = False
    for raw in output.splitlines():
        match = _DIAGNOSTIC.match(raw.strip())
        if match is None:
            if raw.startswith(" ") and diagnostics and not skipping and raw.strip():
                last = diagnostics[-1]
                diagnostics[-1] = last.model_copy(update={"message": f"{last.message} {raw.strip()}"})
            continue
        skipping = match["code"] in ignored_codes
        if skipping:
            continue
        diagnostics.append(
            TypeDiagnostic(
                message=match["msg"],
                line=int(match["line"]),
                column=int(match["col"]),
                category=match["cat"],
                code=match["code"],
            )
        )
    return diagnostics


def _mentions_diagnostics(output: str) -> bool:
    return any(_DIAGNOSTIC.match(line.strip()) for line in output.splitlines())
