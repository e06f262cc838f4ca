"""Task identifier normalization and generation."""

import secrets
import string
from typing import Callable

from .errors import InvalidPath

ID_ALPHABET = string.ascii_lowercase + string.digits


def normalize_id(raw: str) -> str:
    """Canonicalize a task ID. IDs are case-insensitive, so this only lowercases."""
    return raw.lower()


def generate_id(exists: Callable[[str], bool], length: int = 6, attempts: int = 10) -> str:
    """
    Generate a random task ID that is not yet taken.

    Args:
        exists: Callback reporting whether a candidate ID is already in use
        length: Number of characters in the generated ID
        attempts: How many candidates to try before giving up

    Returns:
        A fresh lowercase alphanumeric ID
    """
    for _ in range(attempts):
        candidate = "".join(secrets.choice(ID_ALPHABET) for _ in range(length))
        if not exists(candidate):
            return candidate

    raise InvalidPath("id", f"failed to generate unique ID after {attempts} attempts")
