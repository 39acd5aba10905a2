"""
Template schemas.

GET /users/{userId}/templates → TemplatesResponse
PUT /users/{userId}/templates → SaveTemplatesRequest → TemplatesResponse
"""
from typing import Any, Optional

from pydantic import Field

from dreamtrack.schemas.common import CamelModel


class DreamOut(CamelModel):
    id: str
    title: str = ""
    category: str = ""
    completed: bool = False


class SaveTemplatesRequest(CamelModel):
    # Raw dicts: TemplateRepository validates each one and reports its index
    templates: list[dict[str, Any]] = Field(default_factory=list)
    dreams: Optional[list[DreamOut]] = None


class TemplatesResponse(CamelModel):
    user_id: str
    templates: list[dict[str, Any]]
    completed_dream_ids: list[str] = Field(default_factory=list)
