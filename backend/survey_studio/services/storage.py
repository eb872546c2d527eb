from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from survey_studio.db.models import CollectionMode, Survey, SurveyStatus

logger = logging.getLogger(__name__)

# Columns a caller may change through update_survey(); id and timestamps are ours
UPDATABLE_FIELDS = frozenset({"name", "language", "collection_mode", "status", "structure", "rules", "thread_id"})

SEED_SURVEYS = (
    {"name": "Employee Satisfaction Q1", "language": "English", "collection_mode": "web", "status": "active"},
    {"name": "Customer Feedback 2024", "language": "Bilingual", "collection_mode": "field", "status": "draft"},
)


# ---- Helper functions ----
def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

def _ts_utc_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:    # sqlite hands back naive datetimes
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

def _coerce(field: str, value: Any) -> Any:
    # enum columns accept either the member or its string value; ValueError on anything else
    if field == "collection_mode" and value is not None:
        return CollectionMode(value)
    if field == "status" and value is not None:
        return SurveyStatus(value)
    return value


def serialize_survey(survey: Survey) -> Dict[str, Any]:
    return {
        "id": survey.id,
        "name": survey.name,
        "language": survey.language,
        "collection_mode": survey.collection_mode.value if hasattr(survey.collection_mode, "value") else survey.collection_mode,
        "status": survey.status.value if hasattr(survey.status, "value") else survey.status,
        "structure": survey.structure,
        "rules": survey.rules,
        "thread_id": survey.thread_id,
        "created_at": _ts_utc_iso(survey.created_at),
        "updated_at": _ts_utc_iso(survey.updated_at),
    }


# ---- Storage Implementation ----

class SurveyStorage:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_surveys(self) -> List[Survey]:
        return self.db.query(Survey).order_by(Survey.created_at.desc(), Survey.id.desc()).all()

    def get_survey(self, survey_id: int) -> Optional[Survey]:
        return self.db.get(Survey, survey_id)

    def create_survey(self, **fields: Any) -> Survey:
        if not fields.get("name"):
            raise ValueError("create_survey: name is required.")
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"create_survey: unknown fields {sorted(unknown)}")

        survey = Survey(**{k: _coerce(k, v) for k, v in fields.items() if v is not None})
        self.db.add(survey)
        self.db.commit()
        self.db.refresh(survey)
        logger.info("survey %s created (%s)", survey.id, survey.name)
        return survey

    def update_survey(self, survey_id: int, **changes: Any) -> Survey:
        survey = self.get_survey(survey_id)
        if survey is None:
            raise KeyError(f"update_survey: survey '{survey_id}' not found")

        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"update_survey: unknown fields {sorted(unknown)}")

        for k, v in changes.items():
            setattr(survey, k, _coerce(k, v))

        # Always bump updated_at
        survey.updated_at = _utcnow()
        self.db.commit()
        self.db.refresh(survey)
        return survey

    def delete_survey(self, survey_id: int) -> bool:
        survey = self.get_survey(survey_id)
        if survey is None:
            return False
        self.db.delete(survey)
        self.db.commit()
        logger.info("survey %s deleted", survey_id)
        return True


def seed_surveys(db: Session) -> int:
    """Insert the demo surveys into an empty table. Returns how many were added."""
    storage = SurveyStorage(db)
    if storage.get_surveys():
        return 0
    for fields in SEED_SURVEYS:
        storage.create_survey(**fields)
    return len(SEED_SURVEYS)
