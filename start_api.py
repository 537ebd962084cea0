#!/usr/bin/env python3
"""
Run migrations (same process, same DATABASE_URL), then seed, then uvicorn.
Ensures tables exist before seed and app start.
"""
import os
import sys

from haulage.core.config import settings
from haulage.core.logging_setup import setup_logging

setup_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON, environment=settings.ENV)

# 1) Wait for DB (Postgres only; local SQLite needs no wait)
if not settings.DATABASE_URL.startswith("sqlite"):
    from wait_for_db import wait_for_postgres
    wait_for_postgres(settings.DATABASE_URL, int(os.getenv("DB_WAIT_TIMEOUT", "60")))

# 2) Run migrations using the same settings as the app
from alembic.config import Config
from alembic import command

alembic_cfg = Config(os.path.join(os.path.dirname(__file__), "alembic.ini"))
alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
command.upgrade(alembic_cfg, "head")

# 3) Seed using an engine created *after* migrations (avoids app engine created during Alembic env load)
from sqlalchemy.orm import sessionmaker
from haulage.db.session import make_engine
seed_engine = make_engine(settings.DATABASE_URL)
SeedSession = sessionmaker(autocommit=False, autoflush=False, bind=seed_engine)
seed_db = SeedSession()
from haulage.seed import run as run_seed
run_seed(seed_db)
seed_db.close()
seed_engine.dispose()

# 4) Start uvicorn (replace current process)
os.execv(
    sys.executable,
    [sys.executable, "-m", "uvicorn", "haulage.main:app", "--host", "0.0.0.0", "--port", os.getenv("PORT", "8000")],
)
