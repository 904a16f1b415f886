from datetime import date
from typing import Optional

from app.schemas.job import NotificationJobPayload
from app.services.schedule import days_until_expiry

SIGNATURE = "Best regards,\nReminder System"


def format_expiry_date(value: date) -> str:
    """e.g. March 31, 2025"""
    return value.strftime("%B %d, %Y")


def _plural_days(days: int) -> str:
    return f"{days} day{'s' if days != 1 else ''}"


def _details(description: Optional[str]) -> str:
    return f"Details: {description}\n\n" if description else ""


def compose_message(payload: NotificationJobPayload, today: Optional[date] = None) -> tuple[str, str]:
    """
    Build the (subject, body) for a notification.

    The template depends on how far away the expiry date is: upcoming,
    expiring today, or already expired.
    """
    days = days_until_expiry(payload.expiry_date, today)
    name = payload.product_service_name
    expiry = format_expiry_date(payload.expiry_date)
    details = _details(payload.description)

    if days > 0:
        subject = f"Reminder: {name} expires in {_plural_days(days)}"
        body = (
            f"Dear {payload.client_name},\n\n"
            f"This is a reminder that your {name} will expire on {expiry} "
            f"({_plural_days(days)} from now).\n\n"
            f"{details}"
            "Please take necessary action to renew or update as needed.\n\n"
            f"{SIGNATURE}"
        )
    elif days == 0:
        subject = f"Urgent: {name} expires TODAY"
        body = (
            f"Dear {payload.client_name},\n\n"
            f"This is an urgent reminder that your {name} expires TODAY ({expiry}).\n\n"
            f"{details}"
            "Please take immediate action to renew or update.\n\n"
            f"{SIGNATURE}"
        )
    else:
        subject = f"Alert: {name} has EXPIRED"
        body = (
            f"Dear {payload.client_name},\n\n"
            f"Your {name} has expired on {expiry}.\n\n"
            f"{details}"
            "Please renew or update as soon as possible.\n\n"
            f"{SIGNATURE}"
        )

    return subject, body
