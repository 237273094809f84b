"""Background scheduler for the daily drift evaluation."""

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from authenticity.config import get_settings

logger = logging.getLogger(__name__)

_scheduler: BackgroundScheduler | None = None

# Model types that reviewed feedback reports can be attributed to
FEEDBACK_MODEL_TYPES = ("fraud_scoring", "image_verification")


def run_drift_evaluation(store=None) -> list:
    """Evaluate each model on reviewed feedback and raise drift alerts.

    Returns the drift alerts raised in this run.
    """
    from authenticity.database import get_record_store
    from authenticity.services.feedback_monitor import (
        apply_drift,
        build_evaluation_samples,
        default_retrainer,
        detect_model_drift,
        evaluate_model_performance,
        trigger_model_retraining,
    )

    store = store or get_record_store()
    reports = store.list_reports()
    alerts = []

    for model_type in FEEDBACK_MODEL_TYPES:
        samples = build_evaluation_samples(reports, model_type)
        if not samples:
            logger.warning("Skipping drift evaluation for %s: no reviewed feedback", model_type)
            continue

        performance = evaluate_model_performance(model_type, samples)
        alert = detect_model_drift(performance, store.latest_model_performance(model_type))
        store.add_model_performance(apply_drift(performance, alert))
        if alert is not None:
            store.add_drift_alert(alert)
            trigger_model_retraining(performance.model_id, alert, default_retrainer())
            alerts.append(alert)

    logger.info("Drift evaluation complete: %d alert(s)", len(alerts))
    return alerts


def _run_scheduled_evaluation():
    logger.info("Scheduled drift evaluation triggered")
    try:
        run_drift_evaluation()
    except Exception as e:
        logger.error("Scheduled drift evaluation failed: %s", e, exc_info=True)


def start_scheduler():
    """Start the background drift monitor."""
    global _scheduler
    settings = get_settings()

    if not settings.drift_monitoring_enabled:
        logger.info("Drift monitor disabled")
        return

    _scheduler = BackgroundScheduler()
    _scheduler.add_job(
        _run_scheduled_evaluation,
        "cron",
        hour=settings.drift_schedule_hour,
        minute=0,
        id="daily_drift_evaluation",
        name="Daily Model Drift Evaluation",
        replace_existing=True,
    )
    _scheduler.start()
    logger.info("Scheduler started: daily drift evaluation at %02d:00", settings.drift_schedule_hour)


def stop_scheduler():
    """Stop the background scheduler."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Scheduler stopped")
