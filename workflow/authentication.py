"""
Token authentication for the placement API.

Kept in its own module, free of view imports, so that DRF can load it
from ``DEFAULT_AUTHENTICATION_CLASSES`` during startup without circular
imports.
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    """DRF token authentication using the ``Token`` keyword.

    Inactive users are refused by the base class; the subclass exists
    to give settings a stable import path.
    """

    keyword = 'Token'
