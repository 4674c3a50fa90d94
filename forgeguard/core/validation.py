"""
Input validation.

Plain functions called by the services before any domain logic runs.
They are independent of storage so they can be tested in isolation.
Each `check_*` returns an error message or None; each `validate_*`
collects messages per field and raises ValidationError.
"""

from __future__ import annotations

import re
import secrets
from datetime import datetime
from pathlib import PurePosixPath

from forgeguard.core.utils import ensure_utc, utc_now
from forgeguard.errors import ValidationError

USERNAME_PATTERN = re.compile(r"^[a-z0-9._-]+@[a-z0-9.-]+\.[a-z]{2,}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
FULL_NAME_PATTERN = re.compile(r"^[a-zA-Z\s'-]+$")
UNSAFE_FILENAME_CHARS = re.compile(r'[/\\<>:"|?*\x00-\x1f]')

ALLOWED_MIME_TYPES = frozenset({
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
})

MAX_DESCRIPTION_LENGTH = 5000
MAX_MESSAGE_LENGTH = 5000


def normalize_identifier(value: str) -> str:
    """Usernames and emails are compared trimmed and lower-cased."""
    return value.strip().lower()


def _raise_if(errors: dict[str, str], message: str = "Validation failed") -> None:
    if errors:
        raise ValidationError(message, errors=errors)


# =============================================================================
# Users
# =============================================================================


def check_username(username: str) -> str | None:
    if not 3 <= len(username) <= 50:
        return "Username must be 3-50 characters"
    if not USERNAME_PATTERN.match(username):
        return "Username must be a valid email format"
    return None


def check_email(email: str) -> str | None:
    if not EMAIL_PATTERN.match(email):
        return "Invalid email format"
    return None


def check_full_name(full_name: str) -> str | None:
    name = full_name.strip()
    if not 2 <= len(name) <= 100:
        return "Full name must be 2-100 characters"
    if not FULL_NAME_PATTERN.match(name):
        return "Full name contains invalid characters"
    return None


def check_password_strength(password: str) -> str | None:
    if len(password) < 8:
        return "Password must be at least 8 characters"
    if not (
        re.search(r"[a-z]", password)
        and re.search(r"[A-Z]", password)
        and re.search(r"\d", password)
        and re.search(r"[^A-Za-z0-9]", password)
    ):
        return "Password must contain uppercase, lowercase, number, and special character"
    return None


def validate_new_user(username: str, email: str, password: str, full_name: str) -> None:
    errors = {}
    for field, message in (
        ("username", check_username(username)),
        ("email", check_email(email)),
        ("password", check_password_strength(password)),
        ("full_name", check_full_name(full_name)),
    ):
        if message:
            errors[field] = message
    _raise_if(errors)


def validate_user_update(email: str | None, full_name: str | None) -> None:
    checks = {
        "email": check_email(email) if email is not None else None,
        "full_name": check_full_name(full_name) if full_name is not None else None,
    }
    _raise_if({field: message for field, message in checks.items() if message})


def validate_password(password: str, field: str = "password") -> None:
    message = check_password_strength(password)
    if message:
        raise ValidationError(message, errors={field: message})


# =============================================================================
# Projects
# =============================================================================


def check_project_name(name: str) -> str | None:
    if not 3 <= len(name.strip()) <= 255:
        return "Project name must be 3-255 characters"
    return None


def check_deadline(deadline: datetime, now: datetime | None = None) -> str | None:
    if ensure_utc(deadline) <= (now or utc_now()):
        return "Deadline must be in the future"
    return None


def validate_project_fields(
    name: str | None = None,
    description: str | None = None,
    deadline: datetime | None = None,
    now: datetime | None = None,
) -> None:
    errors = {}
    name_error = check_project_name(name) if name is not None else None
    if name_error:
        errors["name"] = name_error
    if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
        errors["description"] = f"Description must not exceed {MAX_DESCRIPTION_LENGTH} characters"
    deadline_error = check_deadline(deadline, now) if deadline is not None else None
    if deadline_error:
        errors["deadline"] = deadline_error
    _raise_if(errors)


# =============================================================================
# Documents
# =============================================================================


def validate_upload(
    filename: str,
    content_type: str,
    size: int,
    max_size: int,
    allowed_extensions: list[str],
) -> None:
    errors = {}
    if size <= 0:
        errors["file"] = "File is empty"
    elif size > max_size:
        errors["file"] = f"File size exceeds maximum allowed ({max_size} bytes)"

    extension = PurePosixPath(filename).suffix.lstrip(".").lower()
    if extension not in allowed_extensions:
        errors["filename"] = f"File type .{extension} is not allowed"
    if content_type not in ALLOWED_MIME_TYPES:
        errors["content_type"] = f"MIME type {content_type} is not allowed"
    _raise_if(errors, "Invalid file")


def sanitize_file_name(original_name: str, now: datetime | None = None) -> str:
    """
    Build the stored name: unsafe characters replaced, then a timestamp
    and random suffix appended so names never collide or reveal paths.
    """
    cleaned = UNSAFE_FILENAME_CHARS.sub("_", original_name)[:255]
    path = PurePosixPath(cleaned)
    stem = path.stem or "file"
    timestamp = int((now or utc_now()).timestamp() * 1000)
    return f"{stem}_{timestamp}_{secrets.token_hex(4)}{path.suffix.lower()}"


# =============================================================================
# Messages
# =============================================================================


def clean_message_content(content: str) -> str:
    text = content.strip()
    if not text:
        raise ValidationError("Message content is required", errors={"content": "Message content is required"})
    if len(text) > MAX_MESSAGE_LENGTH:
        message = f"Message must not exceed {MAX_MESSAGE_LENGTH} characters"
        raise ValidationError(message, errors={"content": message})
    return text
