"""Project data models."""

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class Project(BaseModel):
    """A named pair of source and test code, as stored in the registry."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Unique project id (uuid4 hex)")
    name: str = Field(..., description="Display name")
    source_code: str = Field(default="", alias="code")
    test_code: str = Field(default="", alias="testCode")
    language: str = Field(default="python")
    created_at: datetime = Field(default_factory=datetime.utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=datetime.utcnow, alias="updatedAt")

    def to_summary_string(self) -> str:
        """One-line description for listings."""
        lines = self.source_code.count("\n") + (1 if self.source_code else 0)
        return f"{self.id[:8]}  {self.name} ({lines} source lines)"


class ProjectUpdate(BaseModel):
    """Partial update of a project; unset fields are left alone."""
    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    source_code: str | None = Field(default=None, alias="code")
    test_code: str | None = Field(default=None, alias="testCode")
