"""E-mail delivery through Resend"""
import asyncio
import html
import logging
from typing import Optional, List, Union

import resend

from app.core.config import settings
from shared.utils.qr_generator import render_qr_png_base64

logger = logging.getLogger(__name__)


class EmailService:
    """Sends transactional e-mails with Resend; simulates delivery when unconfigured"""

    def __init__(self):
        self.resend_api_key = settings.RESEND_API_KEY
        self.from_email = settings.RESEND_FROM_EMAIL

        if not self.resend_api_key:
            logger.warning("RESEND_API_KEY not configured. E-mails will be simulated.")
            self.resend_configured = False
        else:
            resend.api_key = self.resend_api_key
            self.resend_configured = True
            logger.info(f"EmailService (Resend) initialized with from: {self.from_email}")

    async def send_email(
        self,
        to_email: Union[str, List[str]],
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        attachments: Optional[List[dict]] = None
    ) -> bool:
        """
        Send an e-mail

        Args:
            to_email: recipient or list of recipients
            subject: subject line
            html_content: HTML body
            text_content: plain text body (optional)
            attachments: [{"filename": "ticket.png", "content": "<base64>"}]

        Returns:
            True when Resend accepted the message (or delivery is simulated)
        """
        if not self.resend_configured:
            logger.warning(f"Resend not configured. Simulated e-mail to {to_email}: {subject}")
            return True

        to_emails = [to_email] if isinstance(to_email, str) else to_email

        params = {
            "from": self.from_email,
            "to": to_emails,
            "subject": subject,
            "html": html_content,
        }
        if text_content:
            params["text"] = text_content
        if attachments:
            params["attachments"] = [
                {"filename": item["filename"], "content": item["content"]}
                for item in attachments
            ]

        # The Resend SDK is synchronous
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(None, resend.Emails.send, params)
        except Exception as e:
            logger.error(f"Error sending e-mail to {to_emails}: {e}", exc_info=True)
            return False

        logger.info(f"E-mail sent to {to_emails}: {subject} (ID: {result.get('id', 'N/A')})")
        return True

    async def send_registration_confirmation(
        self,
        to_email: str,
        attendee_name: str,
        event_title: str,
        event_date: str,
        venue: str,
        pass_name: str,
        ticket_id: str,
        qr_data: str,
        team_name: Optional[str] = None
    ) -> bool:
        """Send the ticket e-mail with the QR attached as a PNG"""
        qr_base64 = render_qr_png_base64(qr_data)

        safe_name = html.escape(attendee_name or "there")
        safe_title = html.escape(event_title)
        team_line = (
            f"<p><strong>Team:</strong> {html.escape(team_name)}</p>" if team_name else ""
        )
        qr_block = (
            f'<img src="data:image/png;base64,{qr_base64}" alt="Ticket QR" width="220" height="220"/>'
            if qr_base64 else
            "<p>Open your ticket in the FindMyEvent app to show the QR code.</p>"
        )

        html_content = f"""
        <div style="font-family: Arial, sans-serif; max-width: 560px; margin: 0 auto;">
            <h2 style="color: #007BFF;">You're in, {safe_name}!</h2>
            <p>Your registration for <strong>{safe_title}</strong> is confirmed.</p>
            <p><strong>When:</strong> {html.escape(event_date or "")}</p>
            <p><strong>Where:</strong> {html.escape(venue or "")}</p>
            <p><strong>Pass:</strong> {html.escape(pass_name)}</p>
            {team_line}
            <div style="text-align: center; margin: 24px 0;">{qr_block}</div>
            <p style="color: #666; font-size: 12px;">Ticket ID: {ticket_id}. Show this QR code at the entrance.
            Each ticket can be scanned only once.</p>
        </div>
        """

        text_content = (
            f"Hi {attendee_name},\n\n"
            f"Your registration for {event_title} is confirmed.\n"
            f"When: {event_date}\nWhere: {venue}\nPass: {pass_name}\n"
            + (f"Team: {team_name}\n" if team_name else "")
            + f"\nTicket ID: {ticket_id}\n"
        )

        attachments = None
        if qr_base64:
            attachments = [{"filename": f"ticket-{ticket_id}.png", "content": qr_base64}]

        return await self.send_email(
            to_email=to_email,
            subject=f"Your ticket for {event_title}",
            html_content=html_content,
            text_content=text_content,
            attachments=attachments,
        )
