# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Credential and session lifecycle.

This package provides:
- Password hashing/verification (argon2, legacy SHA-256 accepted)
- Server-side sessions with absolute expiry
- Single-use password reset tokens
- User accounts and their activity log
- Signed session cookies (itsdangerous)
"""
