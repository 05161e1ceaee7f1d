#!/usr/bin/env python3
"""
Celery worker entry point for the Examica maintenance jobs.

    celery -A celery_worker worker -B -Q maintenance
"""

from examica.core.celery_app import celery_app

if __name__ == '__main__':
    celery_app.start()
