"""Outbound email via SendGrid."""

from selliox.email.service import EmailService, email_service, send_payment_processed_email, send_winner_email

__all__ = ["EmailService", "email_service", "send_payment_processed_email", "send_winner_email"]
