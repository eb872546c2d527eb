from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from survey_studio.db.session import get_db
from survey_studio.db.models import Survey
from survey_studio.services.storage import serialize_survey

router = APIRouter(prefix="/debug", tags=["debug"])

@router.get("/latest")
def latest(db: Session = Depends(get_db)):
    survey = db.query(Survey).order_by(Survey.updated_at.desc(), Survey.id.desc()).first()
    if not survey:
        return {"survey": None, "sections": 0, "questions": 0, "rules": 0}

    sections = (survey.structure or {}).get("sections") or []
    return {
        "survey": serialize_survey(survey),
        "sections": len(sections),
        "questions": sum(len(s.get("questions") or []) for s in sections if isinstance(s, dict)),
        "rules": len((survey.rules or {}).get("survey_rules") or []),
    }
