# reservation/identity.py

from dataclasses import dataclass
from typing import Optional, Union

from reservation.exceptions import InvalidIdentity


@dataclass(frozen=True)
class Subscriber:
    """A customer booking under their account."""

    user_id: int


@dataclass(frozen=True)
class Guest:
    """A customer booking with a bare e-mail address or phone number."""

    contact: str


Identity = Union[Subscriber, Guest]


def identity_from(user_id: Optional[int] = None, guest_contact: Optional[str] = None) -> Identity:
    """
    Build the identity of a booking from the two optional request fields.
    Exactly one of them must be given.
    """
    has_user = user_id not in (None, "")
    contact = (guest_contact or "").strip()

    if has_user and contact:
        raise InvalidIdentity("Provide either a subscriber or a guest contact, not both.")
    if not has_user and not contact:
        raise InvalidIdentity("Missing identity: both subscriber and guest contact are empty.")

    if has_user:
        return Subscriber(user_id=int(user_id))
    return Guest(contact=contact)


def looks_like_email(contact: str) -> bool:
    return "@" in contact
