#!/usr/bin/env python3
"""Block until Postgres accepts connections. Used by start_api.py before migrations."""
import logging
import os
import sys
import time
from urllib.parse import urlparse

import psycopg2

logger = logging.getLogger("haulage.wait_for_db")


def connect_kwargs(database_url: str) -> dict:
    # SQLAlchemy URL may start with postgresql+psycopg2://; hosted providers hand out postgres://
    p = urlparse(database_url.replace("postgresql+psycopg2://", "postgresql://").replace("postgres://", "postgresql://"))
    return {
        "host": p.hostname or "db",
        "port": p.port or 5432,
        "user": p.username or "haulage",
        "password": p.password or "haulage",
        "dbname": (p.path or "/haulage").lstrip("/") or "haulage",
    }


def wait_for_postgres(database_url: str, timeout_s: float = 60, interval_s: float = 1.0) -> None:
    """Poll until a connection succeeds; re-raise the last OperationalError after ``timeout_s``."""
    kwargs = connect_kwargs(database_url)
    logger.info("waiting for Postgres at %s:%s db=%s user=%s (timeout=%ss)",
                kwargs["host"], kwargs["port"], kwargs["dbname"], kwargs["user"], timeout_s)
    deadline = time.monotonic() + timeout_s
    attempts = 0
    while True:
        attempts += 1
        try:
            psycopg2.connect(connect_timeout=5, **kwargs).close()
            logger.info("Postgres is ready after %d attempt(s)", attempts)
            return
        except psycopg2.OperationalError as e:
            if time.monotonic() >= deadline:
                logger.error("timed out waiting for Postgres: %s", e)
                raise
            time.sleep(interval_s)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="[wait_for_db] %(message)s")
    url = os.getenv("DATABASE_URL")
    if not url:
        sys.exit("DATABASE_URL is not set")
    wait_for_postgres(url, int(os.getenv("DB_WAIT_TIMEOUT", "60")))
