"""
Custom exception types for the facturation.pro API client.

These exceptions allow callers to distinguish between failures
occurring during the OAuth2 token exchange and those arising from
API requests.
"""

from __future__ import annotations

from typing import Optional

import requests


class FacturationProError(Exception):
    """Base exception for all facturation.pro client errors."""


class FacturationProAuthError(FacturationProError):
    """Raised when exchanging or refreshing an OAuth2 token fails."""


class FacturationProAPIError(FacturationProError):
    """Raised when an API request fails or returns an error status.

    ``status_code`` and ``response`` are ``None`` when the request
    never produced a response (connection error, timeout).
    """

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        response: Optional[requests.Response] = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.response = response
