"""Pydantic read-models for cached executables."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, computed_field


class ExecutableRecord(BaseModel):
    """Detached snapshot of an `Executable` row.

    Returned to callers instead of ORM instances so results can be shared
    between coalesced requests and outlive the session that loaded them.
    """

    model_config = {"from_attributes": True, "frozen": True}

    id: uuid.UUID
    name: str
    description: str
    tags: list[str] = Field(default_factory=list)
    downloads: int = Field(ge=0)
    version: str
    ecosystem: str
    file_name: str
    file_size: int = Field(ge=0)
    score: Optional[float] = Field(default=None, ge=0, le=5)
    security_rating: Optional[float] = Field(default=None, ge=0, le=10)
    created_at: datetime
    updated_at: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def download_url(self) -> str:
        """Path the static-serving layer exposes this artifact under."""
        return f"/download/{self.file_name}"


class ExecutablePage(BaseModel):
    """One page of records, most downloaded first."""

    items: list[ExecutableRecord]
    total: int
    page: int
    limit: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0
