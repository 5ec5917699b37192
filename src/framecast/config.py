"""Environment-based settings and the immutable pipeline configuration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

from framecast.integrity import DEFAULT_RECOVERY_ATTEMPTS, default_manifest
from framecast.models import ProjectManifest
from framecast.oracle import DEFAULT_TIMEOUT_SECONDS, DEFAULT_TSC_COMMAND, NullTypeChecker, TscTypeChecker, TypeChecker
from framecast.templates import CompositionSettings

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path(".framecast/framecast.db")
DEFAULT_OUTPUT_ROOT = Path("conversions")


class Settings(BaseSettings):
    """Reads from .env file and ``FRAMECAST_``-prefixed environment variables."""

    # Composition
    fps: int = Field(default=30, gt=0)
    width: int = Field(default=1920, gt=0)
    height: int = Field(default=1080, gt=0)
    duration_in_frames: int = Field(default=900, gt=0)
    composition_id: str = "VideoComposition"

    # Type checking
    type_checker: Literal["tsc", "none"] = "none"
    tsc_command: str = DEFAULT_TSC_COMMAND
    type_check_timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)

    # Recovery
    recovery_attempts: int = Field(default=DEFAULT_RECOVERY_ATTEMPTS, ge=1)

    # Logging
    log_level: str = "WARNING"

    # Storage
    db_path: Path = DEFAULT_DB_PATH
    output_root: Path = DEFAULT_OUTPUT_ROOT

    @field_validator("log_level")
    @classmethod
    def _validate_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {v}")
        return level

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "FRAMECAST_",
        "extra": "ignore",
    }


class PipelineConfig(BaseModel):
    """Everything a ``ConversionPipeline`` needs, fixed for the life of the process."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    manifest: ProjectManifest
    composition: CompositionSettings = CompositionSettings()
    recovery_attempts: int = DEFAULT_RECOVERY_ATTEMPTS
    type_checker: TypeChecker = Field(default_factory=NullTypeChecker)

    @property
    def fps(self) -> int:
        return self.composition.fps

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> PipelineConfig:
        settings = settings or Settings()
        composition = CompositionSettings(
            composition_id=settings.composition_id,
            fps=settings.fps,
            width=settings.width,
            height=settings.height,
            duration_in_frames=settings.duration_in_frames,
        )
        if settings.type_checker == "tsc":
            checker: TypeChecker = TscTypeChecker(
                command=settings.tsc_command, timeout_seconds=settings.type_check_timeout_seconds
            )
        else:
            checker = NullTypeChecker()
        logger.debug("pipeline config: fps=%d type_checker=%s", composition.fps, settings.type_checker)
        return cls(
            manifest=default_manifest(composition),
            composition=composition,
            recovery_attempts=settings.recovery_attempts,
            type_checker=checker,
        )
