from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from celery import Celery
from celery.signals import after_setup_logger
from triply.core.config import settings
from triply.core.logging import configure_logging


def _redis_url_for_celery(url: str) -> str:
    """Celery requires ssl_cert_reqs for rediss:// (e.g. Upstash TLS)."""
    if not url or not url.strip().lower().startswith("rediss://"):
        return url
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    if "ssl_cert_reqs" not in qs:
        qs["ssl_cert_reqs"] = ["CERT_NONE"]
        return urlunparse(parsed._replace(query=urlencode(qs, doseq=True)))
    return url


_redis_url = _redis_url_for_celery(settings.REDIS_URL)

celery = Celery(
    "triply",
    broker=_redis_url,
    backend=_redis_url,
    include=["triply.tasks.jobs"],
)

celery.conf.timezone = settings.CELERY_TIMEZONE


@after_setup_logger.connect
def on_setup_logger(logger, **kwargs):
    configure_logging()


celery.conf.beat_schedule = {
    "process-outbox-every-minute": {
        "task": "triply.tasks.jobs.process_outbox",
        "schedule": 60.0,
        "kwargs": {"limit": settings.OUTBOX_BATCH_SIZE},
    },
    "sync-manifests-nightly": {
        "task": "triply.tasks.jobs.sync_manifests",
        "schedule": 86400.0,
    },
}
