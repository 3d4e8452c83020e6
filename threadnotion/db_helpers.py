import logging
import os
from functools import lru_cache

from dotenv import load_dotenv
from google.auth import default as google_auth_default
from google.cloud import secretmanager
from google.oauth2 import service_account
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

logger = logging.getLogger("threadnotion")

# --- Settings (environment / .env) ---
PROJECT_ID = os.getenv("GOOGLE_CLOUD_PROJECT", "")
REGION = os.getenv("GOOGLE_CLOUD_REGION", "us-central1")

DATABASE_URL = os.getenv("DATABASE_URL", "")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = int(os.getenv("DB_PORT", "5432"))
DB_NAME = os.getenv("DB_NAME", "threadnotion")
DB_USER = os.getenv("DB_USER", "postgres")
DB_PASSWORD = os.getenv("DB_PASSWORD")
DB_SECRET_ID = os.getenv("DB_SECRET_ID")

# no DATABASE_URL and a localhost host: run against a local SQLite file
IS_LOCAL_DB = not DATABASE_URL and DB_HOST == "localhost"
SQLITE_URL = "sqlite:///threadnotion.db"

LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "120"))
HISTORY_MAX_TOKENS = int(os.getenv("HISTORY_MAX_TOKENS", "8000"))

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
APP_ENV = os.getenv("APP_ENV", "production")
PORT = int(os.getenv("PORT", "3001"))


def _google_credentials():
    scopes = ["https://www.googleapis.com/auth/cloud-platform"]
    key_file = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    if key_file and os.path.exists(key_file):
        return service_account.Credentials.from_service_account_file(key_file, scopes=scopes)
    creds, _ = google_auth_default(scopes=scopes)
    return creds


def _read_secret(secret_id: str) -> str:
    client = secretmanager.SecretManagerServiceClient(credentials=_google_credentials())
    version = client.secret_version_path(PROJECT_ID, secret_id, "latest")
    return client.access_secret_version(request={"name": version}).payload.data.decode("utf-8")


@lru_cache(maxsize=1)
def get_db_password() -> str:
    """DB_PASSWORD if set, else the latest version of the DB_SECRET_ID secret."""
    if DB_PASSWORD:
        return DB_PASSWORD
    if DB_SECRET_ID:
        logger.info(f"[DB] Reading password from Secret Manager ({DB_SECRET_ID})")
        return _read_secret(DB_SECRET_ID)
    raise RuntimeError("No DB_PASSWORD and no DB_SECRET_ID configured")


def get_db_engine():
    if DATABASE_URL:
        logger.info("[DB] Using DATABASE_URL")
        return create_engine(DATABASE_URL, pool_pre_ping=True)

    if IS_LOCAL_DB:
        logger.info(f"[DB] Using local SQLite database {SQLITE_URL}")
        return create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    logger.info(f"[DB] Connecting to Postgres at {DB_HOST}:{DB_PORT}/{DB_NAME}")
    return create_engine(
        f"postgresql+pg8000://{DB_USER}:{get_db_password()}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
        connect_args={"timeout": 10},  # seconds
        pool_pre_ping=True,
    )


def create_session_factory(engine=None) -> sessionmaker:
    return sessionmaker(bind=engine or get_db_engine(), autoflush=False, expire_on_commit=False)
