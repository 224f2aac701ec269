"""User rights carried in identity claims. Devices are users too."""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class UserRights(str, Enum):
    read_device = "read-device"
    create_device = "create-device"
    create_data_point = "create-data-point"


def is_entitled(rights: Iterable[str] | None, required: UserRights) -> bool:
    if not rights:
        return False
    return any(right == required.value for right in rights)


class AuthenticationError(Exception):
    """The request carries no valid identity claim."""


class AuthorizationError(Exception):
    """The identity claim lacks a right required by the operation."""
