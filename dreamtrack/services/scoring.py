"""
Scoring Aggregator — append-only ledger of point-earning events.

One ledger document per user per calendar year, id "{userId}_{year}_scoring":

    {id, userId, year, entries: [ScoreLedgerEntry...], totalScore, updatedAt}

`totalScore` is a cache rewritten from the entries on every append. Readers
never trust it: `total_score` always sums the entries.

Entries are never edited or removed. An entry whose id is already in the
ledger is ignored, which is how callers make an award idempotent (the Week
Tracker uses "goal_{instanceId}", so one goal instance scores at most once
no matter how often it is toggled).
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from dreamtrack.core.config import settings
from dreamtrack.core.errors import ValidationError
from dreamtrack.schemas.domain import LedgerSource, ScoreLedgerEntry
from dreamtrack.services import periods
from dreamtrack.store.documents import DocumentStore, read_modify_write

logger = logging.getLogger(__name__)

_REF_FIELDS = ("dream_id", "week_id", "connect_id")

DEFAULT_POINTS = {
    LedgerSource.dream.value: settings.POINTS_DREAM_CREATED,
    LedgerSource.week.value: settings.POINTS_WEEKLY_GOAL,
    LedgerSource.connect.value: settings.POINTS_CONNECT,
    LedgerSource.milestone.value: settings.POINTS_MILESTONE,
}


@dataclass
class YearTotal:
    year: int
    total_score: int
    entry_count: int


def ledger_id(user_id: str, year: int) -> str:
    return f"{user_id}_{year}_scoring"


def _sum(entries: list[dict]) -> int:
    return sum(int(e.get("points") or 0) for e in entries)


class ScoringAggregator:

    def __init__(
        self,
        store: DocumentStore,
        container: str = settings.SCORING_CONTAINER,
        retries: int = settings.STORE_CONFLICT_RETRIES,
    ):
        self._store = store
        self._container = container
        self._retries = retries

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def build_entry(
        self,
        source: Any,
        points: Any,
        activity: Any,
        refs: Optional[dict[str, Optional[str]]] = None,
        entry_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ScoreLedgerEntry:
        """Validate an event into a ledger entry; ValidationError if malformed."""
        moment = now or periods.utcnow()
        raw: dict[str, Any] = {
            "id": entry_id or f"score_{uuid.uuid4().hex}",
            "date": moment.date().isoformat(),
            "source": source,
            "points": points,
            "activity": activity,
            "created_at": periods.isoformat(moment),
        }
        for key in _REF_FIELDS:
            if refs and refs.get(key):
                raw[key] = refs[key]
        try:
            return ScoreLedgerEntry.model_validate(raw)
        except PydanticValidationError as exc:
            logger.warning("Rejected score event %r: %s", raw, exc.errors())
            raise ValidationError(
                message="Malformed score event.",
                details={"errors": [
                    {"field": ".".join(str(p) for p in e["loc"]), "message": e["msg"]}
                    for e in exc.errors()
                ]},
            ) from exc

    def record_event(
        self,
        user_id: str,
        source: Any,
        points: Any,
        activity: Any,
        refs: Optional[dict[str, Optional[str]]] = None,
        entry_id: Optional[str] = None,
        now: Optional[datetime] = None,
        ledger_year: Optional[int] = None,
    ) -> Optional[ScoreLedgerEntry]:
        """
        Append one entry to the user's ledger for the event's year, or for
        `ledger_year` when given. Goal awards pass the ISO year of their week,
        so a week spanning New Year keeps its dedupe ids in one ledger.
        Returns the entry, or None when an entry with the same id exists.
        """
        entry = self.build_entry(source, points, activity, refs, entry_id, now)
        year = ledger_year or int(entry.date[:4])
        doc_id = ledger_id(user_id, year)
        appended = {"value": False}

        def mutate(doc: Optional[dict]) -> Optional[dict]:
            doc = doc or {
                "id": doc_id,
                "userId": user_id,
                "year": year,
                "entries": [],
                "createdAt": entry.created_at,
            }
            entries = doc.setdefault("entries", [])
            if any(e.get("id") == entry.id for e in entries):
                appended["value"] = False
                return None
            entries.append(entry.to_doc())
            doc["totalScore"] = _sum(entries)
            doc["updatedAt"] = entry.created_at
            appended["value"] = True
            return doc

        read_modify_write(
            self._store, self._container, doc_id, user_id, mutate, self._retries
        )
        if not appended["value"]:
            logger.info("Score entry %s already recorded for %s", entry.id, user_id)
            return None
        logger.info(
            "Scored %s: %+d (%s) for %s", entry.source, entry.points, entry.activity, user_id
        )
        return entry

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_ledger(self, user_id: str, year: int) -> dict:
        doc = self._store.find(self._container, ledger_id(user_id, year), user_id)
        entries = (doc or {}).get("entries", [])
        return {
            "userId": user_id,
            "year": year,
            "entries": entries,
            "totalScore": _sum(entries),
        }

    def entries(self, user_id: str, year: int) -> list[ScoreLedgerEntry]:
        return [
            ScoreLedgerEntry.model_validate(e)
            for e in self.get_ledger(user_id, year)["entries"]
        ]

    def all_years(self, user_id: str) -> list[YearTotal]:
        docs = self._store.query(self._container, partition_key=user_id)
        totals = [
            YearTotal(
                year=int(d.get("year") or 0),
                total_score=_sum(d.get("entries", [])),
                entry_count=len(d.get("entries", [])),
            )
            for d in docs
        ]
        return sorted(totals, key=lambda t: t.year)

    def total_score(self, user_id: str, year: Optional[int] = None) -> int:
        if year is not None:
            return self.get_ledger(user_id, year)["totalScore"]
        return sum(t.total_score for t in self.all_years(user_id))
