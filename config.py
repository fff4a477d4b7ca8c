import os
from typing import List


def normalize_cors_origins(origins_str: str) -> List[str]:
    """
    Normalize a comma-separated string of CORS origins.

    Handles:
    - Trim whitespace from each origin
    - Remove surrounding quotes (" and ')
    - Remove trailing slashes (/)
    - Filter out empty entries
    """
    if not origins_str:
        return []

    normalized = []
    for origin in origins_str.split(","):
        origin = origin.strip()

        if (origin.startswith('"') and origin.endswith('"')) or \
           (origin.startswith("'") and origin.endswith("'")):
            origin = origin[1:-1]

        origin = origin.strip().rstrip("/")

        if origin:
            normalized.append(origin)

    return normalized


class Config:
    # --- DATABASE ---
    DATABASE_URL = os.getenv("DATABASE_URL")

    # --- REMOTE STORE (Google Drive) ---
    GOOGLE_SERVICE_ACCOUNT_JSON = os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON")
    # Workspace user the service account acts as (Subject), optional.
    GOOGLE_IMPERSONATE_EMAIL = os.getenv("GOOGLE_IMPERSONATE_EMAIL", None)
    USE_MOCK_DRIVE = os.getenv("USE_MOCK_DRIVE", "false").lower() == "true"
    MOCK_DRIVE_DB_FILE = os.getenv("MOCK_DRIVE_DB_FILE", "mock_drive_db.json")
    # Folder that "/" resolves to. Defaults to the drive root.
    DRIVE_ROOT_FOLDER_ID = os.getenv("DRIVE_ROOT_FOLDER_ID", "root")

    # Used when no root folder configuration has been saved yet.
    LEGACY_ROOT_FOLDER_PATH = os.getenv("LEGACY_ROOT_FOLDER_PATH", "/G2_Progetti")

    # --- REMOTE CALL POLICY ---
    REMOTE_MAX_RETRIES = int(os.getenv("REMOTE_MAX_RETRIES", "3"))
    REMOTE_RETRY_INITIAL_DELAY = float(os.getenv("REMOTE_RETRY_INITIAL_DELAY", "1.0"))
    BULK_OPERATION_DELAY_MS = int(os.getenv("BULK_OPERATION_DELAY_MS", "100"))
    BULK_MAX_OPERATIONS = int(os.getenv("BULK_MAX_OPERATIONS", "100"))

    # --- REDIS CACHE ---
    REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")
    REDIS_CACHE_ENABLED = os.getenv("REDIS_CACHE_ENABLED", "true").lower() == "true"
    REDIS_DEFAULT_TTL = int(os.getenv("REDIS_DEFAULT_TTL", "180"))

    # --- CORS ---
    _DEFAULT_CORS_ORIGINS = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ]
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", ",".join(_DEFAULT_CORS_ORIGINS))
    # Optional regex for extra origins (e.g. preview deployments). Empty disables it.
    CORS_ORIGIN_REGEX = os.getenv("CORS_ORIGIN_REGEX", None)

    # --- SCHEDULER ---
    SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "false").lower() == "true"
    RECONCILE_INTERVAL_MINUTES = int(os.getenv("RECONCILE_INTERVAL_MINUTES", "60"))

config = Config()
