"""
Templates router.

GET /users/{user_id}/templates
PUT /users/{user_id}/templates
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from dreamtrack.routers.deps import get_templates
from dreamtrack.schemas.common import ErrorResponse
from dreamtrack.schemas.templates import SaveTemplatesRequest, TemplatesResponse
from dreamtrack.services.templates import TemplateRepository

router = APIRouter(prefix="/users/{user_id}/templates", tags=["templates"])


@router.get("", response_model=TemplatesResponse, summary="List goal templates")
def list_templates(user_id: str, repo: TemplateRepository = Depends(get_templates)):
    template_set = repo.load(user_id)
    return TemplatesResponse(
        user_id=user_id,
        templates=template_set.templates,
        completed_dream_ids=sorted(template_set.completed_dream_ids),
    )


@router.put(
    "",
    response_model=TemplatesResponse,
    summary="Replace the user's goal templates",
    responses={422: {"model": ErrorResponse, "description": "A template is malformed; nothing is written."}},
)
def save_templates(
    user_id: str,
    payload: SaveTemplatesRequest,
    repo: TemplateRepository = Depends(get_templates),
):
    """
    Templates take effect from their start period. Instances already in the
    live week are not touched; the next rollover picks the change up.
    """
    dreams = [d.to_doc() for d in payload.dreams] if payload.dreams is not None else None
    repo.save(user_id, payload.templates, dreams=dreams)
    return list_templates(user_id, repo)
