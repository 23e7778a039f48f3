from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker

from config import Config


def make_engine(db_url: str, timeout_seconds: int = Config.DB_TIMEOUT_SECONDS) -> Engine:
    """
    Build an engine whose connects, pool checkouts and statements are all
    bounded by ``timeout_seconds``.
    """
    url = make_url(db_url)

    if url.get_backend_name() == "sqlite":
        engine = create_engine(
            url,
            echo=False,
            future=True,
            connect_args={"timeout": timeout_seconds, "check_same_thread": False},
        )

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(
        url,
        echo=False,
        future=True,
        pool_pre_ping=True,
        pool_timeout=timeout_seconds,
        connect_args={
            "connect_timeout": timeout_seconds,
            "options": f"-c statement_timeout={timeout_seconds * 1000}",
        },
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    # results leave the session as plain detached rows
    return sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
    )
