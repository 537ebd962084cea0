from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from celery import Celery
from celery.signals import after_setup_logger
from haulage.core.config import settings
from haulage.core.logging_setup import setup_logging


def _redis_url_for_celery(url: str) -> str:
    """Celery requires ssl_cert_reqs for rediss:// (managed Redis with TLS)."""
    if not url or not url.strip().lower().startswith("rediss://"):
        return url
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    if "ssl_cert_reqs" not in qs:
        qs["ssl_cert_reqs"] = ["CERT_NONE"]
        new_query = urlencode(qs, doseq=True)
        return urlunparse(parsed._replace(query=new_query))
    return url


_redis_url = _redis_url_for_celery(settings.REDIS_URL)

celery = Celery(
    "haulage",
    broker=_redis_url,
    backend=_redis_url,
    include=["haulage.tasks.jobs"],
)

celery.conf.timezone = "Asia/Kolkata"
celery.conf.task_ignore_result = True


@after_setup_logger.connect
def on_setup_logger(logger, **kwargs):
    setup_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON, environment=settings.ENV)


celery.conf.beat_schedule = {
    "expire-dispatch-requests-every-minute": {
        "task": "haulage.tasks.jobs.expire_dispatch_requests",
        "schedule": 60.0,
    },
}
