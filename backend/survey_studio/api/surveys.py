# HTTP Routes for survey metadata (CRUD over the surveys table)
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from survey_studio.core import config
from survey_studio.db.models import CollectionMode, Survey, SurveyStatus
from survey_studio.db.session import get_db
from survey_studio.services.storage import SurveyStorage, serialize_survey

router = APIRouter()


class SurveyCreate(BaseModel):
    name: str = Field(min_length=1)
    language: str = "English"
    collection_mode: CollectionMode = CollectionMode.WEB
    status: SurveyStatus = SurveyStatus.DRAFT
    structure: Optional[Dict[str, Any]] = None
    rules: Optional[Dict[str, Any]] = None


class SurveyUpdate(BaseModel):     # every field optional; only the ones sent are applied
    name: Optional[str] = Field(default=None, min_length=1)
    language: Optional[str] = None
    collection_mode: Optional[CollectionMode] = None
    status: Optional[SurveyStatus] = None
    structure: Optional[Dict[str, Any]] = None
    rules: Optional[Dict[str, Any]] = None
    thread_id: Optional[str] = None


# ---------- helpers ----------

def build_meta() -> dict: # server-authored metadata with an ISO-8601 UTC timestamp
    now_utc = datetime.now(timezone.utc)
    ts = now_utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    return {
        "version": config.SURVEY_VERSION,
        "timestamp": ts
    }


def api_error(status_code: int, code: str, message: str, **extra: Any) -> HTTPException:
    error = {"code": code, "message": message}
    error.update(extra)
    return HTTPException(status_code=status_code, detail={"error": error, "meta": build_meta()})


def require_survey(storage: SurveyStorage, survey_id: int) -> Survey:
    """Fetch a survey or raise 404 if it doesn't exist."""
    survey = storage.get_survey(survey_id)
    if survey is None:
        raise api_error(404, "UNKNOWN_SURVEY", f"Survey '{survey_id}' not found.")
    return survey


# ---------- routes ----------

@router.get("/surveys")
def list_surveys(db: Session = Depends(get_db)):
    surveys = SurveyStorage(db).get_surveys()
    return {"surveys": [serialize_survey(s) for s in surveys], "meta": build_meta()}


@router.get("/surveys/{survey_id}")
def get_survey(survey_id: int, db: Session = Depends(get_db)):
    survey = require_survey(SurveyStorage(db), survey_id)
    return {"survey": serialize_survey(survey), "meta": build_meta()}


@router.post("/surveys", status_code=201)
def create_survey(request: SurveyCreate, db: Session = Depends(get_db)):
    survey = SurveyStorage(db).create_survey(**request.model_dump(exclude_none=True))
    return {"survey": serialize_survey(survey), "meta": build_meta()}


@router.put("/surveys/{survey_id}")
def update_survey(survey_id: int, request: SurveyUpdate, db: Session = Depends(get_db)):
    storage = SurveyStorage(db)
    require_survey(storage, survey_id)

    changes = request.model_dump(exclude_unset=True)
    if not changes:
        raise api_error(400, "EMPTY_UPDATE", "No fields to update.")

    survey = storage.update_survey(survey_id, **changes)
    return {"survey": serialize_survey(survey), "meta": build_meta()}


@router.delete("/surveys/{survey_id}", status_code=204)
def delete_survey(survey_id: int, db: Session = Depends(get_db)):
    if not SurveyStorage(db).delete_survey(survey_id):
        raise api_error(404, "UNKNOWN_SURVEY", f"Survey '{survey_id}' not found.")
    return Response(status_code=204)
