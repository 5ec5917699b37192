"""Text of the scaffold files a Remotion project needs besides the composition."""

from __future__ import annotations

import json

from pydantic import BaseModel, ConfigDict, Field

PAYLOAD_COMPONENT = "VideoComposition"


class CompositionSettings(BaseModel):
    """Values baked into the generated ``<Composition>`` registration."""

    model_config = ConfigDict(frozen=True)

    composition_id: str = "VideoComposition"
    fps: int = Field(default=30, gt=0)
    width: int = Field(default=1920, gt=0)
    height: int = Field(default=1080, gt=0)
    duration_in_frames: int = Field(default=900, gt=0)


def root_template(settings: CompositionSettings) -> str:
    return f"""import React from 'react';
import {{ Composition }} from 'remotion';
import {PAYLOAD_COMPONENT} from './{PAYLOAD_COMPONENT}';

export const RemotionRoot: React.FC = () => {{
  return (
    <Composition
      id="{settings.composition_id}"
      component={{{PAYLOAD_COMPONENT}}}
      durationInFrames={{{settings.duration_in_frames}}}
      fps={{{settings.fps}}}
      width={{{settings.width}}}
      height={{{settings.height}}}
    />
  );
}};
"""


def entry_template() -> str:
    return """import { registerRoot } from 'remotion';
import { RemotionRoot } from './Root';

registerRoot(RemotionRoot);
"""


def config_template() -> str:
    return """import { Config } from '@remotion/cli/config';

Config.setVideoImageFormat('jpeg');
Config.setOverwriteOutput(true);
"""


def placeholder_composition(settings: CompositionSettings, title: str = "Composition unavailable") -> str:
    """A static composition used when an artifact cannot be made deterministic.

    It fades a title in over the first second so the project still renders.
    """
    title_literal = json.dumps(title)
    return f"""import React from 'react';
import {{ AbsoluteFill, interpolate, useCurrentFrame }} from 'remotion';

const {PAYLOAD_COMPONENT}: React.FC = () => {{
  const frame = useCurrentFrame();
  const opacity = interpolate(frame, [0, {settings.fps}], [0, 1], {{ extrapolateRight: 'clamp' }});
  return (
    <AbsoluteFill style={{{{ backgroundColor: '#0b0b0f', justifyContent: 'center', alignItems: 'center' }}}}>
      <h1 style={{{{ color: 'white', fontFamily: 'sans-serif', opacity }}}}>{{{title_literal}}}</h1>
    </AbsoluteFill>
  );
}};

export default {PAYLOAD_COMPONENT};
"""
