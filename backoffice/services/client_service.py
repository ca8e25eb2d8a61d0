"""
Client Service.

Business logic for client records and their delivery locations.

Rules:
  - Clients and locations are soft-deleted; soft-deleted rows behave as
    missing (NotFoundError) everywhere except restore_client.
  - Exactly one default location per client: the first location created
    becomes default, and setting a default clears the others.
  - db.session.commit() happens only in this file.
"""

import logging

from sqlalchemy import or_

from backoffice.core.exceptions import NotFoundError, ValidationError
from backoffice.models import db
from backoffice.models.client import Client, ClientLocation
from backoffice.utils.helpers import clean_email, commit_or_raise, parse_bool

logger = logging.getLogger(__name__)

_CLIENT_FIELDS = ("name", "contact_name", "email", "telephone", "notes")
_LOCATION_FIELDS = (
    "location_name", "address1", "address2", "town", "postcode",
    "contact_name", "contact_email", "contact_telephone", "notes",
)


# ── Clients ──────────────────────────────────────────────────────────────────


def get_client(client_id: int, include_deleted: bool = False) -> Client:
    client = db.session.get(Client, client_id)
    if client is None or (client.is_deleted and not include_deleted):
        raise NotFoundError(resource="Client", resource_id=client_id)
    return client


def client_query(search: str | None = None):
    """Active clients ordered by name, optionally filtered by a search term."""
    q = Client.query_active()
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(
            Client.name.ilike(like),
            Client.contact_name.ilike(like),
            Client.email.ilike(like),
        ))
    return q.order_by(Client.name, Client.id)


def _apply_client_fields(client: Client, data: dict) -> None:
    for field in _CLIENT_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "email":
            value = clean_email(value)
        elif isinstance(value, str):
            value = value.strip() or None
        setattr(client, field, value)


def create_client(data: dict) -> Client:
    """Create a client.

    Raises:
        ValidationError: If name is missing or email is malformed.
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Client name is required.", details={"name": "required"})

    client = Client()
    _apply_client_fields(client, data)
    db.session.add(client)
    commit_or_raise("Client")
    logger.info("Client created id=%s name=%s", client.id, client.name)
    return client


def update_client(client_id: int, data: dict) -> Client:
    client = get_client(client_id)
    if "name" in data and not (data.get("name") or "").strip():
        raise ValidationError("Client name cannot be blank.", details={"name": "required"})
    _apply_client_fields(client, data)
    commit_or_raise("Client")
    return client


def delete_client(client_id: int) -> Client:
    """Soft-delete a client and all of its locations."""
    client = get_client(client_id)
    client.soft_delete()
    for loc in client.active_locations():
        loc.soft_delete()
    commit_or_raise("Client")
    logger.info("Client soft-deleted id=%s", client_id)
    return client


def restore_client(client_id: int) -> Client:
    """Restore a soft-deleted client. Locations stay deleted and must be restored individually."""
    client = get_client(client_id, include_deleted=True)
    client.restore()
    commit_or_raise("Client")
    logger.info("Client restored id=%s", client_id)
    return client


# ── Locations ────────────────────────────────────────────────────────────────


def get_location(client_id: int, location_id: int) -> ClientLocation:
    """Fetch an active location that belongs to the given (active) client."""
    get_client(client_id)
    loc = db.session.get(ClientLocation, location_id)
    if loc is None or loc.client_id != client_id or loc.is_deleted:
        raise NotFoundError(resource="ClientLocation", resource_id=location_id)
    return loc


def list_locations(client_id: int) -> list[ClientLocation]:
    client = get_client(client_id)
    return sorted(
        client.active_locations(),
        key=lambda loc: (not loc.is_default, loc.location_name.lower()),
    )


def _clear_default(client_id: int, keep_id: int | None = None) -> None:
    q = ClientLocation.query.filter(
        ClientLocation.client_id == client_id,
        ClientLocation.is_default.is_(True),
    )
    if keep_id is not None:
        q = q.filter(ClientLocation.id != keep_id)
    for loc in q.all():
        loc.is_default = False


def create_location(client_id: int, data: dict) -> ClientLocation:
    """Add a location to a client.

    The first active location of a client is always the default.
    """
    client = get_client(client_id)
    location_name = (data.get("location_name") or "").strip()
    if not location_name:
        raise ValidationError("location_name is required.", details={"location_name": "required"})

    is_first = len(client.active_locations()) == 0
    loc = ClientLocation(client_id=client_id)
    for field in _LOCATION_FIELDS:
        if field in data:
            value = data[field]
            if field == "contact_email":
                value = clean_email(value, field="contact_email")
            setattr(loc, field, value)
    loc.location_name = location_name
    loc.is_default = is_first or parse_bool(data.get("is_default"), "is_default")
    if loc.is_default and not is_first:
        _clear_default(client_id)
    db.session.add(loc)
    commit_or_raise("ClientLocation")
    return loc


def update_location(client_id: int, location_id: int, data: dict) -> ClientLocation:
    loc = get_location(client_id, location_id)
    if "location_name" in data and not (data.get("location_name") or "").strip():
        raise ValidationError("location_name cannot be blank.", details={"location_name": "required"})
    for field in _LOCATION_FIELDS:
        if field in data:
            value = data[field]
            if field == "contact_email":
                value = clean_email(value, field="contact_email")
            setattr(loc, field, value)
    if data.get("is_default"):
        _clear_default(client_id, keep_id=loc.id)
        loc.is_default = True
    commit_or_raise("ClientLocation")
    return loc


def set_default_location(client_id: int, location_id: int) -> ClientLocation:
    loc = get_location(client_id, location_id)
    _clear_default(client_id, keep_id=loc.id)
    loc.is_default = True
    commit_or_raise("ClientLocation")
    return loc


def delete_location(client_id: int, location_id: int) -> None:
    """Soft-delete a location. If it was the default, the next one by name takes over."""
    loc = get_location(client_id, location_id)
    was_default = loc.is_default
    loc.soft_delete()
    loc.is_default = False
    if was_default:
        remaining = (
            ClientLocation.query_active()
            .filter(ClientLocation.client_id == client_id, ClientLocation.id != loc.id)
            .order_by(ClientLocation.location_name)
            .first()
        )
        if remaining:
            remaining.is_default = True
    commit_or_raise("ClientLocation")
