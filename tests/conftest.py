"""Shared fixtures: in-memory database, a scripted planner, and an API client wired to both."""
import json

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from survey_studio.db.base import Base
from survey_studio.db.session import get_db
from survey_studio.main import app
from survey_studio.routes.planner import get_planner_client
from survey_studio.services.planner_client import PlannerClient

PLANNER_BASE = "http://planner.test"


class PlannerStub:
    """
    Scripted stand-in for the planner service behind httpx.MockTransport.

    Routes are keyed on (method, path) with any trailing slash removed; anything
    unscripted answers 404 the way FastAPI does.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, method, path, status=200, body=None, text=None):
        self.routes[(method, path.rstrip("/"))] = (status, body, text)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path.rstrip("/"))
        if key not in self.routes:
            return httpx.Response(404, json={"detail": "Not Found"})
        status, body, text = self.routes[key]
        if text is not None:
            return httpx.Response(status, text=text)
        return httpx.Response(status, content=json.dumps(body).encode("utf-8"),
                              headers={"Content-Type": "application/json"})

    def client(self, base_url=PLANNER_BASE) -> PlannerClient:
        return PlannerClient(base_url=base_url, timeout=5, transport=httpx.MockTransport(self.handler))

    def last_json(self):
        return json.loads(self.requests[-1].content or b"null")


@pytest.fixture
def planner():
    return PlannerStub()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def api(engine, planner):
    """TestClient with the database and planner dependencies swapped for the fixtures above."""
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def _get_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    def _get_planner_client():
        client = planner.client()
        try:
            yield client
        finally:
            client.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_planner_client] = _get_planner_client
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
