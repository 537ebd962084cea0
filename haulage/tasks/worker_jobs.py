import json
import logging

import redis
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from haulage.core.config import settings
from haulage.db.session import SessionLocal
from haulage.services import dispatch_service
from haulage.services.relay import CeleryRelay

logger = logging.getLogger(__name__)

_redis = None


def _redis_client():
    global _redis
    if _redis is None:
        _redis = redis.Redis.from_url(settings.REDIS_URL)
    return _redis


def publish_event(channel: str, event: str, payload: dict, client=None) -> dict:
    """Publish one relay event on Redis pub/sub; subscribers fan it out to sockets."""
    client = client or _redis_client()
    message = json.dumps({"event": event, "payload": payload}, default=str)
    receivers = client.publish(channel, message)
    return {"channel": channel, "event": event, "receivers": receivers}


def expire_dispatch_requests(db: Session | None = None) -> dict:
    own_session = db is None
    db = db or SessionLocal()
    try:
        try:
            expired = dispatch_service.expire_notified(db, CeleryRelay())
        except (ProgrammingError, OperationalError):
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            logger.warning("dispatch expiry skipped: tables missing")
            return {"skipped": True, "reason": "missing_tables"}
        return {"expired": expired}
    finally:
        if own_session:
            db.close()
