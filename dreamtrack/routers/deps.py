"""
Request-scoped construction of the store and the goal services.

One SqlDocumentStore per request session; services receive it explicitly.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from dreamtrack.db.base import get_db
from dreamtrack.services.archiver import WeekArchiver
from dreamtrack.services.scoring import ScoringAggregator
from dreamtrack.services.templates import TemplateRepository
from dreamtrack.services.week_tracker import WeekTracker
from dreamtrack.store.documents import DocumentStore, SqlDocumentStore


def get_store(db: Session = Depends(get_db)) -> DocumentStore:
    return SqlDocumentStore(db)


def get_templates(store: DocumentStore = Depends(get_store)) -> TemplateRepository:
    return TemplateRepository(store)


def get_scoring(store: DocumentStore = Depends(get_store)) -> ScoringAggregator:
    return ScoringAggregator(store)


def get_archiver(
    store: DocumentStore = Depends(get_store),
    templates: TemplateRepository = Depends(get_templates),
) -> WeekArchiver:
    return WeekArchiver(store, templates)


def get_tracker(
    store: DocumentStore = Depends(get_store),
    archiver: WeekArchiver = Depends(get_archiver),
    scoring: ScoringAggregator = Depends(get_scoring),
    templates: TemplateRepository = Depends(get_templates),
) -> WeekTracker:
    return WeekTracker(store, archiver, scoring, templates)
