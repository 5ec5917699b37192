from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from framecast.config import PipelineConfig
from framecast.integrity import default_manifest
from framecast.models import ConversionRecord, Finding, ProjectManifest, Span
from framecast.templates import CompositionSettings


COUNTER_SOURCE = """import React, { useState, useEffect } from 'react';
import { AbsoluteFill } from 'remotion';

export default function Counter() {
  const [count, setCount] = useState(0);
  useEffect(() => {
    const id = setInterval(() => {
      setCount((c) => c + 1);
    }, 16);
    return () => clearInterval(id);
  }, []);
  return (
    <AbsoluteFill>
      <div>{count}</div>
    </AbsoluteFill>
  );
}
"""

PARTICLES_SOURCE = """import React, { useState } from 'react';
import { AbsoluteFill } from 'remotion';

export const Particles = () => {
  const [particles] = useState(() =>
    Array.from({ length: 20 }, () => ({
      x: Math.random() * 800,
      y: Math.random() * 600,
      vx: (Math.random() - 0.5) * 2,
      vy: (Math.random() - 0.5) * 2,
      size: Math.random() * 4 + 1,
      color: `hsl(${Math.random() * 360}, 70%, 60%)`,
    }))
  );
  return (
    <AbsoluteFill>
      <svg width={800} height={600}>
        {particles.map((p, i) => (
          <circle key={i} cx={p.x} cy={p.y} r={p.size} fill={p.color} />
        ))}
      </svg>
    </AbsoluteFill>
  );
};

export default Particles;
"""

BUTTON_SOURCE = """import React, { useState } from 'react';

export default function Toggle() {
  const [open, setOpen] = useState(false);
  const handleClick = () => setOpen(!open);
  return <button onClick={handleClick}>{open ? 'Close' : 'Open'}</button>;
}
"""

STATIC_SOURCE = """import React from 'react';
import { AbsoluteFill, useCurrentFrame, interpolate } from 'remotion';

export default function Title() {
  const frame = useCurrentFrame();
  const opacity = interpolate(frame, [0, 30], [0, 1], { extrapolateRight: 'clamp' });
  return <AbsoluteFill style={{ opacity }}>Hello</AbsoluteFill>;
}
"""


@pytest.fixture
def counter_source() -> str:
    return COUNTER_SOURCE


@pytest.fixture
def particles_source() -> str:
    return PARTICLES_SOURCE


@pytest.fixture
def button_source() -> str:
    return BUTTON_SOURCE


@pytest.fixture
def static_source() -> str:
    return STATIC_SOURCE


@pytest.fixture
def composition() -> CompositionSettings:
    return CompositionSettings()


@pytest.fixture
def manifest(composition) -> ProjectManifest:
    return default_manifest(composition)


@pytest.fixture
def pipeline_config(manifest, composition) -> PipelineConfig:
    return PipelineConfig(manifest=manifest, composition=composition)


@pytest.fixture
def sample_findings() -> list[Finding]:
    return [
        Finding(
            layer="variable_flow",
            severity="major",
            rule="unresolved-identifier",
            message="'undeclaredVar' is not declared in any enclosing scope",
            span=Span(start=10, end=23, line=3, column=5),
        ),
        Finding(
            layer="domain",
            severity="minor",
            rule="nondeterministic-call",
            message="Math.random() makes rendering nondeterministic",
        ),
    ]


@pytest.fixture
def conversion_record_model() -> ConversionRecord:
    return ConversionRecord(
        conversion_id="conv00000001",
        identifier="counter",
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        source_sha256="a" * 64,
        source_text=COUNTER_SOURCE,
        output_text="export default function Counter() { return null; }\n",
        is_valid=False,
        confidence=0.5,
        bindings_total=2,
        bindings_rewritten=1,
        input_fix_count=1,
        notes=["count: kept initial value"],
    )
