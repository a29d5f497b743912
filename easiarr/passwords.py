"""Password helpers for apps that enforce a minimum length."""
from __future__ import annotations

import math


def ensure_min_password_length(password: str, min_length: int) -> str:
    """Repeat ``password`` until it is at least ``min_length`` characters.

    Portainer rejects admin passwords shorter than 12 characters, so the
    global password is padded by repetition and then cut to exactly
    ``min_length``. Passwords that are already long enough are returned as-is.
    """
    if not password:
        raise ValueError("Password cannot be empty")
    if len(password) >= min_length:
        return password
    repeats = math.ceil(min_length / len(password))
    return (password * repeats)[:min_length]


def is_password_valid(password: str, min_length: int) -> bool:
    return password is not None and len(password) >= min_length
