from celery import Celery
from celery.signals import worker_process_init, worker_process_shutdown
from examica.core.config import settings
import logging
import asyncio

logging.getLogger('celery.backends.redis').setLevel(logging.ERROR)

# One event loop per worker process so pooled async DB connections stay on the loop that opened them
_WORKER_LOOP = None


@worker_process_init.connect
def init_async_loop(**kwargs):
    """Create the persistent event loop when a worker process starts"""
    global _WORKER_LOOP
    _WORKER_LOOP = asyncio.new_event_loop()
    asyncio.set_event_loop(_WORKER_LOOP)
    logging.info(f"Initialized asyncio event loop for worker process {kwargs.get('sender', 'unknown')}")


@worker_process_shutdown.connect
def shutdown_async_loop(**kwargs):
    global _WORKER_LOOP
    if _WORKER_LOOP:
        _WORKER_LOOP.close()
        asyncio.set_event_loop(None)
        _WORKER_LOOP = None
        logging.info("Closed asyncio event loop for worker process")


def get_worker_loop():
    return _WORKER_LOOP


celery_app = Celery(
    "examica_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=['examica.tasks.maintenance']
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    task_routes={
        'examica.tasks.maintenance.*': {'queue': 'maintenance'},
    },

    worker_prefetch_multiplier=1,
    task_acks_late=True,
    worker_max_tasks_per_child=1000,

    task_soft_time_limit=120,
    task_time_limit=300,

    result_expires=3600,
    broker_connection_retry_on_startup=True,
    broker_transport_options={
        'visibility_timeout': 3600,
    },

    beat_schedule={
        'auto-submit-expired-sessions': {
            'task': 'examica.tasks.maintenance.auto_submit_expired_sessions',
            'schedule': 60.0,
        },
        'flush-expiring-answer-caches': {
            'task': 'examica.tasks.maintenance.flush_expiring_answer_caches',
            'schedule': 60.0,
        },
        'prune-security-events': {
            'task': 'examica.tasks.maintenance.prune_security_events',
            'schedule': 3600.0,
        },
    },
)

if __name__ == '__main__':
    celery_app.start()
