"""Static catalog models: chat presets and downloadable model packs."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Preset(BaseModel):
    """A named chat configuration tied to one model pack."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    description: str = ""
    context_size: int = Field(default=2048, gt=0)
    temperature: float = Field(default=0.7, ge=0.0)
    top_p: float = Field(default=0.9, ge=0.0, le=1.0)
    max_tokens: int = Field(default=512, gt=0)
    repeat_penalty: float = Field(default=1.1, ge=0.0)
    system_prompt: str = ""


class PackSource(BaseModel):
    """Where a model artifact is fetched from.

    ``url`` is either ``http(s)://`` or ``file://``; local sources are
    never downloaded.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    filename: str
    size_bytes: int | None = Field(default=None, ge=0)

    @property
    def is_local(self) -> bool:
        return self.url.startswith("file://")
