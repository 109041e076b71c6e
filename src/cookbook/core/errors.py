# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations


class CookbookError(Exception):
    """Base class for errors a caller is expected to translate for the user."""


class DuplicateKeyError(CookbookError):
    def __init__(self, entity: str, field: str, value: object = None):
        self.entity = entity
        self.field = field
        self.value = value
        super().__init__(f"Duplicate value for {entity}.{field}")


class DuplicateEmailError(CookbookError):
    def __init__(self, email: str):
        self.email = email
        super().__init__("User already exists")


class StorageError(Exception):
    """The persistence backend is unavailable or failed mid-operation."""
