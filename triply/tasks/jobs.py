from triply.tasks.celery_app import celery
from triply.tasks import worker_jobs


@celery.task(name="triply.tasks.jobs.process_outbox")
def process_outbox(limit: int = 50):
    return worker_jobs.process_outbox(limit=limit)


@celery.task(name="triply.tasks.jobs.sync_manifests")
def sync_manifests():
    return worker_jobs.sync_manifests()
