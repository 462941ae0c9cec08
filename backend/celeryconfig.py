"""
Celery configuration for the compliance workflow workers.

Loaded by `celery_app.config_from_object("celeryconfig")` in smartproof/tasks/__init__.py.
Broker and result-backend URLs come from environment variables,
defaulting to localhost for local dev.
"""

import os

# ═══════════════════════════════════════════════════════════
#  Broker & Result Backend
# ═══════════════════════════════════════════════════════════

broker_url = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
result_backend = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

# ═══════════════════════════════════════════════════════════
#  Serialization — task args are document IDs, results are dicts
# ═══════════════════════════════════════════════════════════

task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]

timezone = "UTC"
enable_utc = True

# ═══════════════════════════════════════════════════════════
#  Task Execution
# ═══════════════════════════════════════════════════════════

# Ack after completion: a task lost with its worker is redelivered,
# and re-running a workflow resumes it from the first unfinished stage
task_acks_late = True
task_reject_on_worker_lost = True

# A workflow occupies its worker for minutes; never hoard queued ones
worker_prefetch_multiplier = 1

# Six stages, each bounded by STAGE_TIMEOUT_SECONDS (10 min default)
task_soft_time_limit = 3600   # 60 min: raises SoftTimeLimitExceeded
task_time_limit = 3660        # 61 min: hard kill

# StoreUnavailableError → self.retry()
task_default_retry_delay = 30
task_max_retries = 5

result_expires = 86400

worker_max_tasks_per_child = 200
worker_send_task_events = False
task_send_sent_event = False

# ═══════════════════════════════════════════════════════════
#  Task Routes
# ═══════════════════════════════════════════════════════════
# Run dedicated workers for the workflow queue:
#   celery -A smartproof.tasks worker -Q workflows

task_routes = {
    "smartproof.tasks.workflow_tasks.*": {"queue": "workflows"},
}

task_default_queue = "default"
