"""Request / response schemas for the AI routes."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from pydantic import BaseModel, Field, field_validator


def _decode_b64(value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("must be valid base64") from exc


class TextAnalysisRequest(BaseModel):
    prompt: str = Field(min_length=1)
    system_prompt: str | None = None
    options: dict[str, Any] | None = None


class AudioAnalysisRequest(BaseModel):
    audio_b64: str = Field(min_length=1)
    mime_type: str = "audio/webm"
    prompt: str | None = None

    @field_validator("audio_b64")
    @classmethod
    def _valid_b64(cls, v: str) -> str:
        _decode_b64(v)
        return v

    @property
    def audio(self) -> bytes:
        return _decode_b64(self.audio_b64)


class VisionAnalysisRequest(BaseModel):
    image_b64: str = Field(min_length=1)
    mime_type: str = "image/jpeg"

    @field_validator("image_b64")
    @classmethod
    def _valid_b64(cls, v: str) -> str:
        _decode_b64(v)
        return v

    @property
    def image(self) -> bytes:
        return _decode_b64(self.image_b64)


class ImageGenerationRequest(BaseModel):
    prompt: str = Field(min_length=1)
    base_image_b64: str | None = None

    @field_validator("base_image_b64")
    @classmethod
    def _valid_b64(cls, v: str | None) -> str | None:
        if v is not None:
            _decode_b64(v)
        return v

    @property
    def base_image(self) -> bytes | None:
        return _decode_b64(self.base_image_b64) if self.base_image_b64 else None


class ProgressStage(BaseModel):
    stage: str
    percent: float


class AIResponse(BaseModel):
    provider: str
    result: dict[str, Any]
    progress: list[ProgressStage] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    code: str
    message: str
