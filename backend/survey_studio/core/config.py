# Settings read once from the environment (.env is loaded first so local dev works without exports)
import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./survey_studio.db")

# Planner service (plan / approve / generate / rules). Some deployments mount it under /anomaly.
PLANNER_API_BASE_URL = os.getenv("PLANNER_API_BASE_URL", "http://localhost:8000")
# Fast-path survey generation. Usually the same host as the planner.
ANOMALY_API_BASE_URL = os.getenv("ANOMALY_API_BASE_URL", PLANNER_API_BASE_URL)

PLANNER_TIMEOUT_SECONDS = float(os.getenv("PLANNER_TIMEOUT_SECONDS", "60"))

SURVEY_VERSION = os.getenv("SURVEY_VERSION", "0.1.0")   # stamped into every response "meta" block

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
