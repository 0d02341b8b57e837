import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def update_user_analytics_task(self, user_id, field, amount=1):
    """
    Bump a usage counter on the user (files_uploaded, charts_created, total_downloads).
    A missing user is not an error; the update is simply skipped.
    """
    from api.models import User

    updated = User.objects.increment_counter(user_id, field, amount)
    if not updated:
        logger.warning("User %s not found, %s not incremented", user_id, field)
        return {"status": "skipped", "user_id": user_id, "field": field}

    return {"status": "success", "user_id": user_id, "field": field}


def record_user_activity(user_id, field, amount=1):
    """
    Fire-and-forget counter update. Failures are logged, never raised to the caller.
    """
    try:
        update_user_analytics_task.delay(user_id, field, amount)
    except Exception:
        logger.exception("Could not record %s for user %s", field, user_id)
