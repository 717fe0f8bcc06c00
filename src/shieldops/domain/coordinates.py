"""Content-provider coordinates value object."""
from __future__ import annotations

from pydantic import BaseModel, Field


class ProviderCoordinates(BaseModel):
    """Owner/repository/ref triple that addresses a content provider."""

    owner: str = Field(..., min_length=1)
    repo: str = Field(..., min_length=1)
    ref: str = Field(default="main", min_length=1)

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}@{self.ref}"
