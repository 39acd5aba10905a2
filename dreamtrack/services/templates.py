"""
Goal templates, read from the user's dreams document.

    {id: userId, userId, dreams: [{id, title, category, completed}...],
     weeklyGoalTemplates: [GoalTemplate...], updatedAt}

Reading is lenient: templates come back as raw dicts so the Recurrence
Expander can skip a malformed one with a warning. Writing is strict: every
template is validated before the document is stored.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from dreamtrack.core.config import settings
from dreamtrack.core.errors import ValidationError
from dreamtrack.schemas.domain import GoalTemplate
from dreamtrack.services import periods
from dreamtrack.store.documents import DocumentStore, read_modify_write

logger = logging.getLogger(__name__)


@dataclass
class TemplateSet:
    templates: list[dict[str, Any]] = field(default_factory=list)
    completed_dream_ids: set[str] = field(default_factory=set)


class TemplateRepository:

    def __init__(
        self,
        store: DocumentStore,
        container: str = settings.DREAMS_CONTAINER,
        retries: int = settings.STORE_CONFLICT_RETRIES,
    ):
        self._store = store
        self._container = container
        self._retries = retries

    def load(self, user_id: str) -> TemplateSet:
        doc = self._store.find(self._container, user_id, user_id)
        if doc is None:
            return TemplateSet()

        dreams = {d.get("id"): d for d in doc.get("dreams") or [] if isinstance(d, dict)}
        templates = []
        for raw in doc.get("weeklyGoalTemplates") or []:
            if isinstance(raw, dict):
                dream = dreams.get(raw.get("dreamId")) or {}
                raw = {
                    **raw,
                    "dreamTitle": raw.get("dreamTitle") or dream.get("title") or "",
                    "dreamCategory": raw.get("dreamCategory") or dream.get("category") or "",
                }
            templates.append(raw)
        return TemplateSet(
            templates=templates,
            completed_dream_ids={i for i, d in dreams.items() if i and d.get("completed")},
        )

    def save(
        self,
        user_id: str,
        templates: list[dict[str, Any]],
        dreams: Optional[list[dict[str, Any]]] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        validated = []
        for index, raw in enumerate(templates):
            try:
                validated.append(GoalTemplate.model_validate(raw).to_doc())
            except PydanticValidationError as exc:
                raise ValidationError(
                    message=f"Template #{index} is invalid.",
                    details={"index": index, "errors": [e["msg"] for e in exc.errors()]},
                ) from exc
        ids = [t["id"] for t in validated]
        if len(ids) != len(set(ids)):
            raise ValidationError(message="Template ids must be unique.", details={"ids": ids})
        for t in validated:
            periods.first_week_of(t["startDate"])

        stamp = periods.isoformat(now or periods.utcnow())

        def mutate(doc: Optional[dict]) -> dict:
            doc = doc or {"id": user_id, "userId": user_id, "dreams": [], "createdAt": stamp}
            doc["weeklyGoalTemplates"] = validated
            if dreams is not None:
                doc["dreams"] = dreams
            doc["updatedAt"] = stamp
            return doc

        saved = read_modify_write(
            self._store, self._container, user_id, user_id, mutate, self._retries
        )
        logger.info("Saved %d template(s) for %s", len(validated), user_id)
        return saved

    def set_completed(
        self,
        user_id: str,
        template_id: str,
        completed: bool,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Flag a one-off template as met (or not met) so later weeks stop
        (or resume) expanding it. Returns True when the document changed.
        """
        stamp = periods.isoformat(now or periods.utcnow())
        changed = {"value": False}

        def mutate(doc: Optional[dict]) -> Optional[dict]:
            changed["value"] = False
            if doc is None:
                return None
            for raw in doc.get("weeklyGoalTemplates") or []:
                if isinstance(raw, dict) and raw.get("id") == template_id:
                    if bool(raw.get("completed")) == completed:
                        return None
                    raw["completed"] = completed
                    doc["updatedAt"] = stamp
                    changed["value"] = True
                    return doc
            return None

        read_modify_write(
            self._store, self._container, user_id, user_id, mutate, self._retries
        )
        if changed["value"]:
            logger.info("Template %s of %s marked completed=%s", template_id, user_id, completed)
        return changed["value"]
