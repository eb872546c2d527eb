# ------------------------------
# Survey Studio API
# Run with: uvicorn survey_studio.main:app --reload   (from backend/)
# ------------------------------
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from survey_studio.api import surveys
from survey_studio.api.debug import router as debug_router
from survey_studio.core import config
from survey_studio.core.logs import configure_logging
from survey_studio.db.base import Base
from survey_studio.db.session import SessionLocal, engine
from survey_studio.routes.planner import router as planner_router
from survey_studio.services.storage import seed_surveys

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        added = seed_surveys(db)
        if added:
            logger.info("seeded %d demo surveys", added)
    finally:
        db.close()
    yield


app = FastAPI(
    title="Survey Studio API",          # Shows up in docs
    version=config.SURVEY_VERSION,
    lifespan=lifespan,
)

# The authoring UI is served separately; accept any local origin in dev
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/health")
def health_check():
    return {"status": "ok"}

@app.get("/")
def root():
    return {"message": "API is running. Go to /docs for Swagger UI."}

app.include_router(surveys.router, prefix="/api")
app.include_router(planner_router, prefix="/api")
app.include_router(debug_router, prefix="/api")
