"""Shared normalization helpers for account credential inputs."""

from __future__ import annotations


def normalize_username(*, username: str) -> str:
    """Trim one username and reject blank values.

    Case and interior characters are preserved; usernames compare exactly.
    """

    normalized = username.strip()
    if not normalized:
        raise ValueError("username cannot be blank")
    return normalized
