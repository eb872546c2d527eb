import enum

from sqlalchemy import Column, DateTime, Enum, Integer, JSON, String
from sqlalchemy.sql import func

from survey_studio.db.base import Base


def _enum_values(enum_cls): # store "web", not "WEB"
    return [member.value for member in enum_cls]


class CollectionMode(str, enum.Enum): # how respondents are reached
    WEB = "web"
    FIELD = "field"

class SurveyStatus(str, enum.Enum): # lifecycle snapshot
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"


class Survey(Base):
    __tablename__ = "surveys"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    language = Column(String, nullable=False, default="English")   # UI label: English | Arabic | Bilingual

    collection_mode = Column(Enum(CollectionMode, values_callable=_enum_values), nullable=False, default=CollectionMode.WEB)
    status = Column(Enum(SurveyStatus, values_callable=_enum_values), nullable=False, default=SurveyStatus.DRAFT)

    # canonical plan ({"sections": [...]}) and rule set ({"survey_rules": [...]}); null until generated
    structure = Column(JSON, nullable=True)
    rules = Column(JSON, nullable=True)

    thread_id = Column(String, nullable=True, index=True)  # planner conversation this survey came from

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
