from celery import Celery
from celery.signals import setup_logging as celery_setup_logging, worker_process_init

from cryptofolio.core.config import settings
from cryptofolio.core.logging import setup_logging
from cryptofolio.core.metrics import metrics
from cryptofolio.core.redis import get_redis

app = Celery("cryptofolio", include=["cryptofolio.tasks.portfolio"])
app.conf.broker_url = settings.CELERY_BROKER_URL
app.conf.result_backend = settings.CELERY_RESULT_BACKEND
app.conf.timezone = settings.CELERY_TIMEZONE
app.conf.enable_utc = True

app.conf.beat_schedule = {
    "portfolio-tick": {
        "task": "cryptofolio.tasks.portfolio.run_tick",
        "schedule": float(settings.TICK_INTERVAL_SECONDS),
        # Firings older than one interval are dropped
        "options": {"expires": settings.TICK_INTERVAL_SECONDS},
    },
}


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    """Workers log in the same format as the API process."""
    setup_logging()


@worker_process_init.connect
def attach_metrics_stream(**kwargs):
    """Worker metrics are also published to the metrics stream."""
    metrics.set_redis(get_redis())
