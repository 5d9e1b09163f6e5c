# reservation/services/notifications.py

import logging
import smtplib
from typing import List

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client as TwilioClient

from reservation.identity import Guest, Identity, looks_like_email

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Bistro"


def send_email(address: str, message: str, subject: str = DEFAULT_SUBJECT) -> bool:
    try:
        send_mail(
            subject,
            message,
            settings.DEFAULT_FROM_EMAIL,
            [address],
            fail_silently=False,
        )
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning(f"Failed to e-mail {address}: {exc}")
        return False
    logger.info(f"E-mail '{subject}' sent to {address}")
    return True


def send_sms(phone: str, message: str) -> bool:
    """
    Send a text message through Twilio.
    Without Twilio credentials the message is only logged.
    """
    if not settings.TWILIO_ACCOUNT_SID:
        logger.info(f"SMS to {phone} (not sent, Twilio is not configured): {message}")
        return True

    client = TwilioClient(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
    try:
        client.messages.create(
            body=message,
            from_=settings.TWILIO_PHONE_NUMBER,
            to=phone,
        )
    except TwilioRestException as exc:
        logger.warning(f"Failed to send SMS to {phone}: {exc}")
        return False
    logger.info(f"SMS sent to {phone}")
    return True


def send_to_contact(contact: str, message: str, subject: str = DEFAULT_SUBJECT) -> bool:
    """
    Route a message by the shape of the contact string: anything with an
    "@" is e-mailed, everything else is treated as a phone number.
    Failures are reported as False and never retried here.
    """
    contact = (contact or "").strip()
    if not contact:
        return False
    if looks_like_email(contact):
        return send_email(contact, message, subject)
    return send_sms(contact, message)


def contacts_for(identity: Identity) -> List[str]:
    """
    Resolve the contact channels of a booking identity.
    """
    if isinstance(identity, Guest):
        return [identity.contact]

    user = get_user_model().objects.filter(pk=identity.user_id).first()
    if user is None:
        logger.warning(f"Subscriber {identity.user_id} has no profile, nothing to notify")
        return []
    return user.contacts


def notify(identity: Identity, message: str, subject: str = DEFAULT_SUBJECT) -> bool:
    """
    Send the message to every contact channel of the identity.
    Returns True when at least one channel accepted it.
    """
    results = [send_to_contact(contact, message, subject) for contact in contacts_for(identity)]
    return any(results)


# Messages

def confirmation_message(reservation) -> str:
    return (
        f"Your table for {reservation.party_size} on {reservation.date:%d/%m/%Y} "
        f"at {reservation.start_time:%H:%M} is booked. "
        f"Confirmation code: {reservation.confirmation_code}"
    )


def update_message(reservation) -> str:
    return (
        f"Reservation {reservation.confirmation_code} was updated: "
        f"{reservation.party_size} guests on {reservation.date:%d/%m/%Y} "
        f"at {reservation.start_time:%H:%M}."
    )


def cancellation_message(reservation) -> str:
    message = f"Reservation {reservation.confirmation_code} on {reservation.date:%d/%m/%Y} was cancelled."
    if reservation.cancellation_reason:
        message += f" Reason: {reservation.cancellation_reason}"
    return message


def table_ready_message(reservation, table) -> str:
    return (
        f"Your table is ready! Please come to table {table.number} "
        f"(reservation {reservation.confirmation_code})."
    )


def reminder_message(reservation) -> str:
    return (
        f"Reminder: your reservation for {reservation.party_size} is today "
        f"at {reservation.start_time:%H:%M}. Code: {reservation.confirmation_code}"
    )


def no_show_message(reservation) -> str:
    return (
        f"We missed you! Reservation {reservation.confirmation_code} "
        f"at {reservation.start_time:%H:%M} was marked as a no-show."
    )


def lost_code_message(reservation) -> str:
    return (
        f"Your confirmation code for {reservation.date:%d/%m/%Y} "
        f"at {reservation.start_time:%H:%M} is {reservation.confirmation_code}"
    )


def bill_message(bill) -> str:
    seating = bill.seating
    return (
        f"Bill for table {seating.table.number}: {seating.reservation.party_size} guests, "
        f"total {bill.amount}. Thank you for dining with us!"
    )
