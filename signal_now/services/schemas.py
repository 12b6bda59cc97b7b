"""Strict result schemas for each assessment stage."""

from __future__ import annotations

from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from signal_now.errors import MalformedModelOutputError

ActivityPattern = Literal["idle", "active", "highly_active"]
Level = Literal["low", "medium", "high"]

ModelT = TypeVar("ModelT", bound=BaseModel)


class ExtractionResult(BaseModel):
    """Stage 1: factual signals observed in the target's activity."""

    model_config = ConfigDict(extra="ignore")

    summary: str = Field(..., min_length=1)
    primary_technologies: list[str] = Field(default_factory=list)
    activity_pattern: ActivityPattern
    notable_signals: list[str] = Field(default_factory=list)

    @field_validator("activity_pattern", mode="before")
    @classmethod
    def _normalize_pattern(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower().replace("-", "_").replace(" ", "_")
        return value


class ScoringResult(BaseModel):
    """Stage 2: readiness score and the evidence behind it."""

    model_config = ConfigDict(extra="ignore")

    readiness_score: int = Field(..., ge=0, le=100)
    readiness_level: Level
    timing_analysis: str = Field(..., min_length=1)
    bridge: str = Field(..., min_length=1)
    the_hook: str = ""
    reasoning: str = Field(..., min_length=1)
    confidence: Level = "low"

    @field_validator("readiness_level", "confidence", mode="before")
    @classmethod
    def _normalize_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


def validate_stage(model: type[ModelT], payload: dict[str, Any], *, stage: str) -> ModelT:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise MalformedModelOutputError(
            f"{stage} output failed validation: {exc.error_count()} error(s)",
            stage=stage,
            raw=str(payload),
        ) from exc
