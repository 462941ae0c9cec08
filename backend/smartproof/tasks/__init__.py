"""
Celery application factory.
"""

from celery import Celery

celery_app = Celery("smartproof", include=["smartproof.tasks.workflow_tasks"])
celery_app.config_from_object("celeryconfig")
