"""
Customer records derived from intake-form answers.

Form headers are free text, so each field is looked up by a list of common
header variants (case-insensitive), with a substring fallback for the
referral question.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.entities import Bookings, Customers
from .clock import local_now, to_timestamp

logger = logging.getLogger(__name__)

FIRST_NAME_KEYS = ("name", "first name", "firstname", "customer name", "customername", "full name")
LAST_NAME_KEYS = ("surname", "last name", "lastname", "customer surname", "customersurname")
EMAIL_KEYS = ("email", "e-mail", "email address", "emailaddress")
PHONE_KEYS = ("phone", "phone number", "phonenumber", "contact", "contact number", "contactnumber", "mobile")
SOCIAL_KEYS = (
    "facebook or instagram name",
    "fb name",
    "facebook name",
    "instagram name",
    "social media name",
    "socialmedianame",
    "fb name/instagram name",
    "fb/instagram",
)
REFERRAL_KEYS = ("referral source", "referralsource", "how did you hear about us", "source")
REFERRAL_HINTS = ("find out", "hear about", "referral", "source")


@dataclass
class CustomerInfo:
    name: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    social_media_name: Optional[str] = None
    referral_source: Optional[str] = None


def _normalize_key(key: str) -> str:
    return key.strip().lower().rstrip("?.:").strip()


def lookup(field_map: dict, variants: tuple[str, ...]) -> Optional[str]:
    """First non-blank value whose header matches one of ``variants``."""
    normalized = {}
    for key, value in field_map.items():
        normalized.setdefault(_normalize_key(key), value)
    for variant in variants:
        value = normalized.get(variant)
        if value and str(value).strip():
            return str(value).strip()
    # social handle headers often carry a trailing explanation in parentheses
    for key, value in normalized.items():
        stem = key.split("(")[0].strip().rstrip(".")
        if stem != key and stem in variants and value and str(value).strip():
            return str(value).strip()
    return None


def extract_customer_info(field_map: dict) -> CustomerInfo:
    first_name = lookup(field_map, FIRST_NAME_KEYS)
    last_name = lookup(field_map, LAST_NAME_KEYS)
    full_name = " ".join(p for p in (first_name, last_name) if p) or "Unknown Customer"

    referral = lookup(field_map, REFERRAL_KEYS)
    if not referral:
        for key, value in field_map.items():
            lower = key.lower()
            if any(h in lower for h in REFERRAL_HINTS) and value and str(value).strip():
                referral = str(value).strip()
                break

    email = lookup(field_map, EMAIL_KEYS)
    return CustomerInfo(
        name=full_name,
        first_name=first_name,
        last_name=last_name,
        email=email.lower() if email else None,
        phone=lookup(field_map, PHONE_KEYS),
        social_media_name=lookup(field_map, SOCIAL_KEYS),
        referral_source=referral,
    )


def get_customer_by_identifier(db: Session, identifier: str) -> Optional[Customers]:
    """Find a customer by email (contains '@') or phone."""
    identifier = (identifier or "").strip()
    if not identifier:
        return None
    if "@" in identifier:
        return (
            db.query(Customers)
            .filter(func.lower(Customers.email) == identifier.lower())
            .first()
        )
    return db.query(Customers).filter(Customers.phone == identifier).first()


def _merge_missing(customer: Customers, info: CustomerInfo, ts: str) -> None:
    if info.email and not customer.email:
        customer.email = info.email
    if info.phone and not customer.phone:
        customer.phone = info.phone
    if info.first_name and not customer.first_name:
        customer.first_name = info.first_name
    if info.last_name and not customer.last_name:
        customer.last_name = info.last_name
    if info.social_media_name and not customer.social_media_name:
        customer.social_media_name = info.social_media_name
    if info.referral_source:
        customer.referral_source = info.referral_source
    customer.updated_at = ts


def find_or_create_customer(
    db: Session,
    info: CustomerInfo,
    now: Optional[datetime] = None,
) -> Customers:
    """
    Match by email, then phone. A match under a different name (someone
    booking for a relative) creates a new customer instead. Flushes but does
    not commit.
    """
    ts = to_timestamp(now or local_now())

    candidates = []
    if info.email:
        candidates.append(get_customer_by_identifier(db, info.email))
    if info.phone:
        candidates.append(get_customer_by_identifier(db, info.phone))

    for existing in candidates:
        if existing is None:
            continue
        if info.name and existing.name and info.name.strip() != existing.name.strip():
            continue
        _merge_missing(existing, info, ts)
        db.flush()
        return existing

    customer = Customers(
        name=info.name,
        first_name=info.first_name,
        last_name=info.last_name,
        email=info.email,
        phone=info.phone,
        social_media_name=info.social_media_name,
        referral_source=info.referral_source,
        created_at=ts,
        updated_at=ts,
    )
    db.add(customer)
    db.flush()
    logger.info(f"Customer created: {customer.id} ({customer.name})")
    return customer


def determine_client_type(db: Session, customer: Customers, exclude_booking_id: Optional[int] = None) -> str:
    """'repeat' if flagged so, or if the customer has other live bookings."""
    if customer.is_repeat_client is not None:
        return "repeat" if customer.is_repeat_client else "new"
    q = db.query(Bookings.id).filter(
        Bookings.customer_id == customer.id,
        Bookings.status != "cancelled",
    )
    if exclude_booking_id is not None:
        q = q.filter(Bookings.id != exclude_booking_id)
    return "repeat" if q.first() else "new"


def display_name(customer: Optional[Customers], customer_data: Optional[dict] = None) -> str:
    if customer and customer.name:
        return customer.name
    if customer_data:
        return extract_customer_info(customer_data).name
    return "Unknown Customer"
