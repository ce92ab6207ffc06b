"""Email service for Selliox using SendGrid."""

import calendar
from typing import Optional

import httpx

from selliox.errors import DependencyFailure
from selliox.logging_config import get_logger
from selliox.settings import settings

logger = get_logger(__name__)


_LAYOUT = """
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background-color: {accent}; padding: 20px; text-align: center; border-radius: 8px 8px 0 0; }}
        .body {{ background-color: #fff; padding: 20px; border: 1px solid #ddd; border-top: none; border-radius: 0 0 8px 8px; }}
        .box {{ background-color: #f7f7f7; border-radius: 8px; padding: 15px; margin: 20px 0; }}
        .footer {{ margin-top: 30px; font-size: 12px; color: #666; border-top: 1px solid #eee; padding-top: 15px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h1>{heading}</h1></div>
        <div class="body">
            {content}
            <p>Best regards,<br>The Selliox Team</p>
            <div class="footer"><p>This is an automated message. Please do not reply to this email.</p></div>
        </div>
    </div>
</body>
</html>
"""


class EmailService:
    """Email service using SendGrid API.

    Handles the prize draw emails:
    - Winner announcement
    - Payment processed confirmation
    """

    SENDGRID_API_URL = "https://api.sendgrid.com/v3/mail/send"

    def __init__(self):
        """Initialize email service."""
        self.api_key = settings.sendgrid_api_key
        self.from_email = settings.sendgrid_from_email
        self.from_name = settings.sendgrid_from_name
        self.enabled = bool(self.api_key)

        if not self.enabled:
            logger.warning("email_service_disabled", reason="SENDGRID_API_KEY not set")

    async def _send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> bool:
        """Send an email via SendGrid API.

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML body
            text_content: Plain text body (optional)

        Returns:
            True if sent, False if the service is disabled

        Raises:
            DependencyFailure: SendGrid rejected the message or could not be reached
        """
        if not self.enabled:
            logger.warning("email_not_sent", reason="service_disabled", to=to_email)
            return False

        payload = {
            "personalizations": [
                {
                    "to": [{"email": to_email}],
                    "subject": subject,
                }
            ],
            "from": {
                "email": self.from_email,
                "name": self.from_name,
            },
            "content": [
                {"type": "text/html", "value": html_content},
            ],
        }

        if text_content:
            payload["content"].insert(0, {"type": "text/plain", "value": text_content})

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.SENDGRID_API_URL,
                    json=payload,
                    headers=headers,
                    timeout=30.0,
                )

                if response.status_code in (200, 201, 202):
                    logger.info("email_sent", to=to_email, subject=subject)
                    return True

                logger.error(
                    "email_send_failed",
                    to=to_email,
                    status=response.status_code,
                    body=response.text[:200],
                )
                raise DependencyFailure(
                    "Email provider rejected the message",
                    to=to_email,
                    status=response.status_code,
                )

        except httpx.RequestError as e:
            logger.error("email_send_error", to=to_email, error=str(e))
            raise DependencyFailure("Email provider unreachable", to=to_email) from e

    async def send_draw_winner_email(
        self,
        to_email: str,
        user_name: Optional[str],
        prize_amount: float,
        month: int,
        year: int,
        tickets: int,
    ) -> bool:
        """Tell the winner they won and how to claim the prize.

        Args:
            to_email: Winner's email address
            user_name: Winner's name (optional)
            prize_amount: Prize in dollars
            month: Draw month (1-12)
            year: Draw year
            tickets: Winner's tickets in the draw

        Returns:
            True if sent successfully
        """
        period = f"{calendar.month_name[month]} {year}"
        subject = f"Congratulations! You've Won ${prize_amount:g} in Our Monthly Draw!"

        content = f"""
            <p>Dear {user_name or 'there'},</p>
            <p>We're thrilled to inform you that you've won <strong>${prize_amount:g}</strong> in our {period} draw!</p>
            <p>Your {tickets} entries have paid off! To claim your prize, please log in to your account and submit your payment details in the referral section.</p>
            <div class="box">
                <p><strong>Next steps:</strong></p>
                <ol>
                    <li>Log in to your account</li>
                    <li>Go to the Referral section</li>
                    <li>Submit your payment details</li>
                    <li>We'll process your payment within 3-5 business days</li>
                </ol>
            </div>
        """
        html_content = _LAYOUT.format(accent="#F9D949", heading="Congratulations!", content=content)

        text_content = f"""
Dear {user_name or 'there'},

You've won ${prize_amount:g} in our {period} draw with {tickets} entries!

Log in, open the Referral section and submit your payment details to claim your prize.

The Selliox Team
"""

        return await self._send_email(to_email, subject, html_content, text_content)

    async def send_payment_processed_email(
        self,
        to_email: str,
        user_name: Optional[str],
        prize_amount: float,
        month: int,
        year: int,
        bank_name: str | None = None,
        account_holder: str | None = None,
        masked_account_number: str | None = None,
    ) -> bool:
        """Confirm that the prize payment was sent.

        Only the masked account number ever leaves the service.

        Returns:
            True if sent successfully
        """
        period = f"{calendar.month_name[month]} {year}"
        subject = f"Your ${prize_amount:g} Prize Payment Has Been Processed"

        content = f"""
            <p>Dear {user_name or 'there'},</p>
            <p>Great news! We've processed your prize payment of <strong>${prize_amount:g}</strong> from the {period} draw.</p>
            <div class="box">
                <p><strong>Bank:</strong> {bank_name or '-'}</p>
                <p><strong>Account holder:</strong> {account_holder or '-'}</p>
                <p><strong>Account number:</strong> {masked_account_number or '-'}</p>
            </div>
            <p>The payment should appear in your account within 2-3 business days, depending on your bank's processing times.</p>
        """
        html_content = _LAYOUT.format(accent="#4CAF50", heading="Payment Processed", content=content)

        return await self._send_email(to_email, subject, html_content)


# Singleton instance
email_service = EmailService()


async def send_winner_email(draw_id: int) -> bool:
    """Email the winner of a completed draw. Failures are logged only."""
    from selliox.draws.payouts import get_payout_context

    context = get_payout_context(draw_id)
    draw = context["draw"]
    if not context["winner_email"]:
        logger.warning("winner_email_skipped", draw_id=draw_id, reason="no_email")
        return False
    try:
        return await email_service.send_draw_winner_email(
            to_email=context["winner_email"],
            user_name=context["winner_name"],
            prize_amount=draw["prize_amount"],
            month=draw["month"],
            year=draw["year"],
            tickets=draw["winner"]["tickets"] or 0,
        )
    except DependencyFailure as e:
        logger.warning("winner_email_failed", draw_id=draw_id, error=e.message)
        return False


async def send_payment_processed_email(draw_id: int) -> bool:
    """Email the winner that their prize was paid. Failures are logged only."""
    from selliox.draws.payouts import get_payout_context

    context = get_payout_context(draw_id)
    draw = context["draw"]
    if not context["winner_email"]:
        logger.warning("payment_email_skipped", draw_id=draw_id, reason="no_email")
        return False
    try:
        return await email_service.send_payment_processed_email(
            to_email=context["winner_email"],
            user_name=context["winner_name"],
            prize_amount=draw["prize_amount"],
            month=draw["month"],
            year=draw["year"],
            bank_name=context["bank_name"],
            account_holder=context["account_holder"],
            masked_account_number=context["masked_account_number"],
        )
    except DependencyFailure as e:
        logger.warning("payment_email_failed", draw_id=draw_id, error=e.message)
        return False
