# Overview: Daily reconciliation sweep scheduled with APScheduler.

# backend/stockrecon/scheduler.py

import atexit
import threading

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from flask import Flask


RECONCILE_JOB_ID = "daily_reconciliation_sweep"


def build_trigger(app: Flask) -> CronTrigger:
    return CronTrigger(
        hour=app.config["RECONCILE_CRON_HOUR"],
        minute=app.config["RECONCILE_CRON_MINUTE"],
        timezone=app.config["RECONCILE_TIMEZONE"],
    )


def _run_sweep(app: Flask, stop_event: threading.Event) -> None:
    from .services.reconciliation_service import run_scheduled_sweep

    with app.app_context():
        try:
            run_scheduled_sweep(stop_event=stop_event)
        except Exception:
            app.logger.exception("Scheduled reconciliation failed")


def init_scheduler(app: Flask) -> BackgroundScheduler | None:
    """
    Start the daily sweep when SCHEDULER_ENABLED is set.

    On interpreter exit the stop event is set first so a sweep in progress
    finishes its current entry and returns, then the scheduler shuts down.
    """
    if not app.config.get("SCHEDULER_ENABLED"):
        return None

    stop_event = threading.Event()
    scheduler = BackgroundScheduler(timezone=app.config["RECONCILE_TIMEZONE"])
    scheduler.add_job(
        _run_sweep,
        trigger=build_trigger(app),
        args=(app, stop_event),
        id=RECONCILE_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    app.logger.info(
        "Reconciliation scheduler started (daily at %02d:%02d %s)",
        app.config["RECONCILE_CRON_HOUR"],
        app.config["RECONCILE_CRON_MINUTE"],
        app.config["RECONCILE_TIMEZONE"],
    )

    def _shutdown():
        stop_event.set()
        scheduler.shutdown(wait=True)

    atexit.register(_shutdown)
    app.extensions["reconcile_scheduler"] = scheduler
    return scheduler
