from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from survey_studio.core import config


def make_engine(url: str = config.DATABASE_URL):
    connect_args = {}
    if url.startswith("sqlite"):
        # FastAPI runs sync endpoints on a threadpool
        connect_args["check_same_thread"] = False
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
