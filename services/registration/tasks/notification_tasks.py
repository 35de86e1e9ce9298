"""Background tasks for registration e-mails"""
from typing import Dict
import logging
import asyncio
from shared.cache.celery_app import celery_app

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run a coroutine from a synchronous Celery task"""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(
    name="send_registration_confirmation",
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_kwargs={"max_retries": 3},
)
def send_registration_confirmation(self, payload: Dict):
    """
    Send the ticket e-mail of a confirmed registration.

    Retried with exponential backoff when Resend rejects the message.
    """
    from services.notifications.services.email_service import EmailService

    email = payload["email"]
    logger.info(f"[CELERY] Sending ticket e-mail to {email} for {payload.get('event_title')}")

    service = EmailService()
    success = run_async(service.send_registration_confirmation(
        to_email=email,
        attendee_name=payload.get("attendee_name") or "",
        event_title=payload.get("event_title") or "",
        event_date=payload.get("event_date") or "",
        venue=payload.get("venue") or "",
        pass_name=payload.get("pass_name") or "",
        ticket_id=payload["ticket_id"],
        qr_data=payload["qr_data"],
        team_name=payload.get("team_name"),
    ))

    if not success:
        raise RuntimeError(f"Error sending ticket e-mail to {email}")

    logger.info(f"[CELERY] Ticket e-mail sent to {email}")
    return {"status": "sent", "email": email, "ticket_id": payload["ticket_id"]}


def enqueue_registration_confirmation(payload: Dict) -> str:
    """Queue the ticket e-mail; returns the Celery task id"""
    result = send_registration_confirmation.delay(payload)
    logger.info(f"Ticket e-mail queued for ticket {payload.get('ticket_id')} (task {result.id})")
    return result.id
