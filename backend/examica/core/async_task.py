from celery import Task


class AsyncTask(Task):
    """
    Celery task whose body is a coroutine.

    The coroutine runs on the persistent event loop of the worker process
    rather than on a fresh loop per call.
    """

    def __call__(self, *args, **kwargs):
        from examica.core.celery_app import get_worker_loop

        loop = get_worker_loop()
        if loop is None:
            raise RuntimeError("Asyncio event loop not initialized for worker process")

        return loop.run_until_complete(self.run(*args, **kwargs))
