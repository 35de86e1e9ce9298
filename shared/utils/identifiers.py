"""Parsing of ids received from clients"""
from uuid import UUID

from shared.utils.exceptions import NotFoundError


def parse_uuid(value, label: str = "id") -> UUID:
    """Parse an id coming from a request; malformed ids are not found"""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, TypeError):
        raise NotFoundError(f"{label} not found")
