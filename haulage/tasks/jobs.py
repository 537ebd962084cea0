from haulage.tasks.celery_app import celery
from haulage.tasks import worker_jobs


@celery.task(name="haulage.tasks.jobs.publish_event")
def publish_event(channel: str, event: str, payload: dict):
    return worker_jobs.publish_event(channel, event, payload)


@celery.task(name="haulage.tasks.jobs.expire_dispatch_requests")
def expire_dispatch_requests():
    return worker_jobs.expire_dispatch_requests()
