# enrollments/tasks.py
"""
Periodic enrollment maintenance, scheduled by Celery beat.
"""

import logging
from celery import shared_task

from enrollments.services import EnrollmentActivator

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def expire_lapsed_enrollments(self):
    """
    Move active enrollments past their access end date to expired.

    Returns:
        {'status': 'success', 'expired': int}
    """
    try:
        expired = EnrollmentActivator.expire_lapsed()
    except Exception as exc:
        logger.error(f"Enrollment expiry sweep failed: {exc}")
        raise self.retry(exc=exc)

    return {'status': 'success', 'expired': len(expired)}
