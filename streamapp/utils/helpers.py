import os
import re
import secrets
from datetime import datetime, timezone

import magic
from flask import current_app

EMAIL_REGEX = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
WALLET_ADDRESS_REGEX = re.compile(r'^0x[a-fA-F0-9]{40}$')


def get_current_utc():
    """Returns the current datetime in UTC with timezone info."""
    return datetime.now(timezone.utc)


def isoformat_utc(value):
    """Serializes a datetime as an ISO-8601 UTC string ending in 'Z'."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat() + 'Z'


def parse_datetime(value):
    """Parses an ISO-8601 string (a trailing 'Z' is accepted) into an aware UTC datetime."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ['true', '1', 'yes', 'on']


def normalize_address(address):
    """Wallet addresses are compared and stored lower-cased."""
    if not isinstance(address, str) or not address.strip():
        return None
    return address.strip().lower()


def is_wallet_address(value) -> bool:
    return isinstance(value, str) and bool(WALLET_ADDRESS_REGEX.match(value))


def is_valid_email(value) -> bool:
    return isinstance(value, str) and bool(EMAIL_REGEX.match(value))


def clean_optional_text(value):
    """Trims strings and turns empty ones into None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def slugify(text_to_slugify: str, model_to_check, target_column_name: str = 'slug', max_slug_length: int = 140) -> str:
    """
    Generates a URL-friendly slug from a string, unique within
    ``model_to_check.<target_column_name>``.
    """
    slug = (text_to_slugify or '').lower()
    slug = re.sub(r'[^\w\s&-]', '', slug).strip()
    slug = slug.replace('&', 'and')
    slug = re.sub(r'[\s_]+', '-', slug)
    slug = re.sub(r'-+', '-', slug).strip('-')
    base_slug = slug or secrets.token_hex(8)

    # Leave room for a "-xxxxxx" suffix
    base_slug = base_slug[:max_slug_length - 7].strip('-') or secrets.token_hex(8)

    column = getattr(model_to_check, target_column_name)
    candidate = base_slug
    for _ in range(15):
        if not model_to_check.query.filter(column == candidate).first():
            return candidate
        candidate = f"{base_slug}-{secrets.token_hex(3)}"

    current_app.logger.error(f"Slugify: could not find a unique slug for '{text_to_slugify}' after 15 attempts")
    return secrets.token_hex(8)


def check_file_size(file_storage, max_bytes):
    file_storage.seek(0, os.SEEK_END)
    file_size = file_storage.tell()
    file_storage.seek(0)
    if file_size > max_bytes or file_size == 0:
        raise ValueError(f"Invalid file size: {file_size} bytes. Must be between 1 and {max_bytes} bytes.")
    return file_size


def check_file_type(file_storage, allowed_mimes):
    file_header = file_storage.read(2048)
    file_storage.seek(0)
    mime_type = magic.from_buffer(file_header, mime=True)
    if mime_type not in allowed_mimes:
        raise ValueError(f"Invalid file type: {mime_type}. Allowed types: {', '.join(allowed_mimes)}")
    return mime_type
