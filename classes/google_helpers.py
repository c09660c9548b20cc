import logging
import os
from functools import lru_cache

from dotenv import load_dotenv
from google.cloud import secretmanager
from google.oauth2 import service_account
from google.auth import default as google_auth_default
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

load_dotenv()

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

logger = logging.getLogger("habit_backend")

# --- Configuration ---
PROJECT_ID = os.getenv("GOOGLE_CLOUD_PROJECT", "your-project-id")
REGION = os.getenv("GOOGLE_CLOUD_REGION", "us-central1")

DATABASE_URL        = os.environ.get("DATABASE_URL", "")
DB_HOST             = os.environ.get("DB_HOST", "localhost")
DB_PORT             = int(os.environ.get("DB_PORT", "5432"))
DB_NAME             = os.environ.get("DB_NAME", "postgres")
DB_USER             = os.environ.get("DB_USER", "postgres")
DB_PASSWORD         = os.environ.get("DB_PASSWORD")
DB_SECRET_ID        = os.environ.get("DB_SECRET_ID")

IS_LOCAL_DB = (DB_HOST == "localhost") and not DATABASE_URL

SUPABASE_URL              = os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL")
SUPABASE_ANON_KEY         = os.getenv("SUPABASE_ANON_KEY") or os.getenv("NEXT_PUBLIC_SUPABASE_ANON_KEY")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
FRONTEND_URL              = os.getenv("FRONTEND_URL", "http://localhost:3000")

HABIT_PLAN_MODEL = os.getenv("HABIT_PLAN_MODEL", "gemini-2.5-flash-lite")
GOAL_PLAN_MODEL  = os.getenv("GOAL_PLAN_MODEL", "gpt-4o-mini")
LLM_TIMEOUT      = float(os.getenv("LLM_TIMEOUT", "120"))

WEBHOOK_URL      = os.getenv("WEBHOOK_URL")
CALL_WEBHOOK_URL = os.getenv("CALL_WEBHOOK_URL") or WEBHOOK_URL
SCHEDULER_TZ     = os.getenv("SCHEDULER_TIMEZONE", "UTC")

AGENT_URL     = os.getenv("AGENT_URL", "http://localhost:8001/agui")
AGENT_TIMEOUT = float(os.getenv("AGENT_TIMEOUT", "60"))


def _build_creds():
    key_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    scopes = ["https://www.googleapis.com/auth/cloud-platform"]
    if key_path and os.path.exists(key_path):
        return service_account.Credentials.from_service_account_file(key_path, scopes=scopes)
    creds, _ = google_auth_default(scopes=scopes)
    return creds


def get_db_password() -> str:
    global DB_PASSWORD

    if DB_PASSWORD:
        return DB_PASSWORD

    if DB_SECRET_ID:
        creds = _build_creds()
        client = secretmanager.SecretManagerServiceClient(credentials=creds)
        name = client.secret_version_path(PROJECT_ID, DB_SECRET_ID, "latest")
        resp = client.access_secret_version(request={"name": name})
        DB_PASSWORD = resp.payload.data.decode("utf-8")
        return DB_PASSWORD

    raise RuntimeError("No DB_PASSWORD and no Secret Manager configured")


def get_database_url() -> str:
    if DATABASE_URL:
        return DATABASE_URL
    if IS_LOCAL_DB:
        return "sqlite:///habits.db"
    password = get_db_password()
    return f"postgresql+pg8000://{DB_USER}:{password}@{DB_HOST}:{DB_PORT}/{DB_NAME}"


@lru_cache(maxsize=1)
def get_db_engine():
    url = get_database_url()

    if url.startswith("sqlite"):
        logger.info(f"[DB] Using SQLite URL: {url}")
        return create_engine(url, connect_args={"check_same_thread": False})

    logger.info(f"[DB] Connecting to Postgres at {DB_HOST}:{DB_PORT}/{DB_NAME}")
    connect_args = {}
    if "pg8000" in url:
        # pg8000 supports 'timeout' in seconds
        connect_args["timeout"] = 10  # fail in 10s instead of hanging forever
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


def create_session_factory(engine=None) -> sessionmaker:
    return sessionmaker(bind=engine or get_db_engine(), autoflush=False)
