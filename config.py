import os

import google.auth
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import secretmanager


def get_secret(name: str) -> str | None:
    """
    Read a secret from Google Secret Manager.
    Falls back to environment variable for local development.
    """
    env_val = os.environ.get(name)
    if env_val:
        return env_val

    try:
        creds, project_id = google.auth.default()
    except DefaultCredentialsError:
        return None

    project_id = project_id or os.environ.get("GOOGLE_CLOUD_PROJECT")
    if not project_id:
        return None

    client = secretmanager.SecretManagerServiceClient(credentials=creds)
    secret_path = f"projects/{project_id}/secrets/{name}/versions/latest"
    resp = client.access_secret_version(request={"name": secret_path})
    return resp.payload.data.decode("utf-8").strip()


class Config:
    # LOCAL mode uses SQLite
    LOCAL_DB = os.getenv("LOCAL_DB", "1") == "1"

    if LOCAL_DB:
        SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///local.db")
    else:
        DB_USER = os.getenv("DB_USER", "")
        DB_PASS = get_secret("DB_PASS") or ""
        DB_NAME = os.getenv("DB_NAME", "")
        CLOUD_SQL_CONNECTION_NAME = os.getenv("CLOUD_SQL_CONNECTION_NAME", "")
        SQLALCHEMY_DATABASE_URI = (
            f"postgresql+psycopg2://{DB_USER}:{DB_PASS}@/"
            f"{DB_NAME}?host=/cloudsql/{CLOUD_SQL_CONNECTION_NAME}"
        )

    # every store call gives up after this many seconds
    DB_TIMEOUT_SECONDS = int(os.getenv("DB_TIMEOUT_SECONDS", "10"))

    ORDERS_PAGE_DEFAULT = int(os.getenv("ORDERS_PAGE_DEFAULT", "20"))
    ORDERS_PAGE_MAX = int(os.getenv("ORDERS_PAGE_MAX", "100"))
    ORDER_NUMBER_ATTEMPTS = int(os.getenv("ORDER_NUMBER_ATTEMPTS", "3"))

    # Firestore audit trail of placed orders
    ORDER_EVENTS_ENABLED = os.getenv("ORDER_EVENTS_ENABLED", "0") == "1"
    FIRESTORE_DB_ID = os.getenv("FIRESTORE_DB_ID", "default")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "")
