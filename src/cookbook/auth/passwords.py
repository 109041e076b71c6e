# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Password hashing.

Stored format is ``<salt hex>:<digest hex>`` with an Argon2id digest.
Values without the ``:`` separator are legacy unsalted SHA-256 hex digests,
still accepted on verify and never produced by ``hash_password``.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from typing import Union

from argon2.low_level import Type, hash_secret_raw

SEPARATOR = ":"
SALT_BYTES = 16
DIGEST_BYTES = 64

# Changing any of these invalidates every stored salted hash.
TIME_COST = 3
MEMORY_COST_KIB = 65536
PARALLELISM = 4


@dataclass(frozen=True)
class SaltedHash:
    salt: str
    digest: str


@dataclass(frozen=True)
class LegacyHash:
    digest: str


HashFormat = Union[SaltedHash, LegacyHash]


def parse_stored_hash(stored: str) -> HashFormat:
    if SEPARATOR in stored:
        salt, digest = stored.split(SEPARATOR, 1)
        return SaltedHash(salt=salt, digest=digest)
    return LegacyHash(digest=stored)


def _derive(plain: str, salt: bytes) -> str:
    raw = hash_secret_raw(
        secret=plain.encode("utf-8"),
        salt=salt,
        time_cost=TIME_COST,
        memory_cost=MEMORY_COST_KIB,
        parallelism=PARALLELISM,
        hash_len=DIGEST_BYTES,
        type=Type.ID,
    )
    return raw.hex()


def _legacy_digest(plain: str) -> str:
    return hashlib.sha256(plain.encode("utf-8")).hexdigest()


def _same(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def hash_password(plain: str) -> str:
    if not plain:
        raise ValueError("Empty password")
    salt = secrets.token_bytes(SALT_BYTES)
    return f"{salt.hex()}{SEPARATOR}{_derive(plain, salt)}"


def verify_password(plain: str, stored: str) -> bool:
    if not plain or not stored:
        return False
    fmt = parse_stored_hash(stored)
    if isinstance(fmt, LegacyHash):
        return _same(_legacy_digest(plain), fmt.digest)
    try:
        salt = bytes.fromhex(fmt.salt)
    except ValueError:
        return False
    if not salt:
        return False
    return _same(_derive(plain, salt), fmt.digest)


def needs_rehash(stored: str) -> bool:
    return isinstance(parse_stored_hash(stored or ""), LegacyHash)
