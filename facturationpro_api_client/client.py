"""
Client implementation for the facturation.pro REST API.

This module defines the :class:`FacturationProClient` class which
obtains OAuth2 tokens from the facturation.pro authorization server
(authorization code and refresh token grants, delegated to
``requests-oauthlib``) and performs HTTP requests against the
customers, invoices and account endpoints.  Every response passes
through a :class:`~facturationpro_api_client.ratelimit.RateLimitTracker`
which mirrors the ``X-RateLimit-Remaining`` header.

Usage
-----

.. code-block:: python

    from facturationpro_api_client import FacturationProClient

    client = FacturationProClient(
        client_id="abc123",
        client_secret="shhsecret",
        redirect_uri="https://example.com/callback",
        scope="read_write",
    )

    # Send the user to the authorization page, then exchange the
    # redirect URI they come back with for a token
    url, state = client.authorization_url()
    token = client.get_token_from_uri(redirected_uri, state=state)

    for firm in client.get_firms(token["access_token"]):
        print(firm["name"])

The client does not store tokens.  Each endpoint method takes the
access token explicitly and callers are responsible for refreshing it
with :meth:`FacturationProClient.get_new_access_token`.
"""

from __future__ import annotations

import logging
import os
from typing import Any, BinaryIO, Dict, List, Optional, Tuple, Union
from urllib.parse import quote, quote_plus

import requests
from dotenv import load_dotenv
from oauthlib.oauth2.rfc6749.errors import OAuth2Error
from requests.auth import HTTPBasicAuth
from requests.exceptions import InvalidJSONError
from requests_oauthlib import OAuth2Session

from .exceptions import FacturationProAPIError, FacturationProAuthError
from .models import Account, Credit, Customer, Firm, Invoice
from .ratelimit import RateLimitTracker

logger = logging.getLogger(__name__)

API_BASE_URL = "https://www.facturation.pro"
AUTHORIZATION_URL = "https://www.facturation.pro/oauth/authorize"
TOKEN_URL = "https://www.facturation.pro/oauth/token"

SCOPES = ("read", "read_write")

_DOWNLOAD_CHUNK_SIZE = 8192


def _redact(text: str, secret: str) -> str:
    """Mask ``secret`` in ``text``, raw and in its URL-encoded forms."""
    for form in {secret, quote(secret, safe=""), quote_plus(secret)}:
        text = text.replace(form, "***")
    return text


class FacturationProClient:
    """A thin client for the facturation.pro REST API.

    Parameters
    ----------
    client_id : str
        OAuth client identifier of your facturation.pro application.
    client_secret : str
        OAuth client secret of your application.
    redirect_uri : str
        Redirect URI registered for the application.  The user is sent
        back there with an authorization ``code`` after granting access.
    scope : str, optional
        Either ``"read"`` or ``"read_write"``.  Defaults to ``"read"``.
    base_url : str, optional
        Override the API base URL.
    authorization_url : str, optional
        Override the OAuth authorization endpoint.
    token_url : str, optional
        Override the OAuth token endpoint.
    timeout : float, optional
        Timeout in seconds applied to every HTTP request.  Defaults to
        ``30``.
    session : requests.Session, optional
        Session used for API requests.  A new one is created when
        omitted.  The rate-limit hook is appended to its response hooks.
    rate_limit : RateLimitTracker, optional
        Tracker receiving every API response.  A default tracker
        (600 requests per 60 seconds) is created when omitted.

    Notes
    -----
    The rate-limit counter is advisory: nothing prevents a request
    from being sent when :meth:`check_rate_limit` returns ``False``.
    """

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scope: str = "read",
        base_url: Optional[str] = None,
        authorization_url: Optional[str] = None,
        token_url: Optional[str] = None,
        timeout: Optional[float] = 30.0,
        session: Optional[requests.Session] = None,
        rate_limit: Optional[RateLimitTracker] = None,
    ) -> None:
        if not client_id:
            raise ValueError("client_id must be provided")
        if not client_secret:
            raise ValueError("client_secret must be provided")
        if not redirect_uri:
            raise ValueError("redirect_uri must be provided")
        if scope not in SCOPES:
            raise ValueError(
                "scope must be either 'read' or 'read_write', got %r" % scope
            )

        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scope = scope
        self.base_url = base_url or API_BASE_URL
        self.auth_url = authorization_url or AUTHORIZATION_URL
        self.token_url = token_url or TOKEN_URL
        self.timeout = timeout

        self.rate_limit = rate_limit or RateLimitTracker()
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._session.hooks["response"].append(self.rate_limit.on_response)

    @classmethod
    def from_env(cls, **overrides: Any) -> "FacturationProClient":
        """Build a client from ``FACTURATION_PRO_*`` environment variables.

        A ``.env`` file in the working directory is loaded first but
        never overrides variables already set.  Keyword arguments take
        precedence over the environment.
        """
        load_dotenv(override=False)
        settings: Dict[str, Any] = {
            "client_id": os.environ.get("FACTURATION_PRO_CLIENT_ID", ""),
            "client_secret": os.environ.get("FACTURATION_PRO_CLIENT_SECRET", ""),
            "redirect_uri": os.environ.get("FACTURATION_PRO_REDIRECT_URI", ""),
            "scope": os.environ.get("FACTURATION_PRO_SCOPE", "read"),
            "base_url": os.environ.get("FACTURATION_PRO_BASE_URL") or None,
        }
        timeout = os.environ.get("FACTURATION_PRO_HTTP_TIMEOUT_SECONDS")
        if timeout:
            settings["timeout"] = float(timeout)
        settings.update(overrides)
        return cls(**settings)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def close(self) -> None:
        """Cancel the pending rate-limit check and release the session."""
        self.rate_limit.cancel()
        hooks = self._session.hooks["response"]
        if self.rate_limit.on_response in hooks:
            hooks.remove(self.rate_limit.on_response)
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> "FacturationProClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # OAuth2
    # ------------------------------------------------------------------
    def _oauth_session(self, state: Optional[str] = None) -> OAuth2Session:
        # Fresh session per call: the client keeps no OAuth state.
        return OAuth2Session(
            self.client_id,
            redirect_uri=self.redirect_uri,
            scope=[self.scope],
            state=state,
        )

    def authorization_url(self, state: Optional[str] = None) -> Tuple[str, str]:
        """Return the URL to send the user to and the OAuth ``state``.

        A random state is generated when none is given.  The client does
        not remember it; pass it back to :meth:`get_token_from_uri` to
        have the callback checked against it.
        """
        with self._oauth_session() as oauth:
            return oauth.authorization_url(self.auth_url, state=state)

    def get_token_from_uri(self, uri: str, *, state: Optional[str] = None) -> Dict[str, Any]:
        """Exchange the authorization response URI for a token.

        Parameters
        ----------
        uri : str
            The full redirect URI the user came back with, including the
            ``code`` query parameter.
        state : str, optional
            The state returned by :meth:`authorization_url` for this
            user.  When given, the ``state`` of ``uri`` must match it.

        Returns
        -------
        dict
            ``access_token``, ``refresh_token``, ``token_type`` and
            ``expires_in``.  One request is taken from the rate-limit
            budget.

        Raises
        ------
        FacturationProAuthError
            If the state does not match, the authorization server
            rejects the code or cannot be reached.
        """
        self.rate_limit.consume(1)
        try:
            with self._oauth_session(state) as oauth:
                token = oauth.fetch_token(
                    self.token_url,
                    authorization_response=uri,
                    client_secret=self.client_secret,
                    timeout=self.timeout,
                )
        except (OAuth2Error, requests.RequestException) as exc:
            raise FacturationProAuthError(f"Failed to obtain access token: {exc}") from exc
        logger.debug("Obtained access token from authorization code")
        return dict(token)

    def get_new_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """Use ``refresh_token`` to obtain a fresh access token."""
        if not refresh_token:
            raise ValueError("refresh_token must be provided")
        self.rate_limit.consume(1)
        try:
            with self._oauth_session() as oauth:
                token = oauth.refresh_token(
                    self.token_url,
                    refresh_token=refresh_token,
                    auth=HTTPBasicAuth(self.client_id, self.client_secret),
                    timeout=self.timeout,
                )
        except (OAuth2Error, requests.RequestException) as exc:
            raise FacturationProAuthError(f"Failed to refresh access token: {exc}") from exc
        logger.debug("Refreshed access token")
        return dict(token)

    # ------------------------------------------------------------------
    # HTTP request helpers
    # ------------------------------------------------------------------
    def _prepare_url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        access_token: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
        stream: bool = False,
    ) -> requests.Response:
        """Send an authenticated request and return the raw response.

        The access token is sent as the ``access_token`` query
        parameter.  The rate-limit hook has already seen the response
        when this method raises.

        Raises
        ------
        FacturationProAPIError
            If the request cannot be sent or the status is 4xx/5xx.
        """
        if not access_token:
            raise ValueError("access_token must be provided")
        url = self._prepare_url(path)
        query: Dict[str, Any] = dict(params or {})
        query["access_token"] = access_token

        logger.debug("%s %s", method, url)
        try:
            response = self._session.request(
                method,
                url,
                params=query,
                json=json,
                timeout=self.timeout,
                stream=stream,
            )
        except InvalidJSONError as exc:
            raise TypeError(f"Request body for {url} is not JSON serializable: {exc}") from exc
        except requests.RequestException as exc:
            self.rate_limit.arm()
            message = _redact(str(exc), access_token)
            raise FacturationProAPIError(
                f"Failed to connect to {url}: {message}", url=url
            ) from exc

        if response.status_code >= 400:
            err_text = response.text
            try:
                err_text = str(response.json())
            except ValueError:
                pass
            response.close()
            raise FacturationProAPIError(
                f"{response.status_code} Error for {url}: {err_text}",
                url=url,
                status_code=response.status_code,
                response=response,
            )
        return response

    def _request_json(self, method: str, path: str, access_token: str, **kwargs: Any) -> Any:
        """Like :meth:`_request` but return the decoded body.

        Bodies are parsed as JSON whatever their ``Content-Type``; an
        empty body yields ``None`` and anything that is not JSON is
        returned as text.
        """
        response = self._request(method, path, access_token, **kwargs)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------
    def get_customers(
        self, firm_id: int, access_token: str, *, api_id: Optional[int] = None
    ) -> List[Customer]:
        """List the customers of a firm.

        When ``api_id`` is given only the customers created with that
        external identifier are returned.
        """
        params = {"api_id": api_id} if api_id is not None else None
        return self._request_json(
            "GET", f"firms/{firm_id}/customers.json", access_token, params=params
        )

    def create_customer(self, firm_id: int, customer: Customer, access_token: str) -> Customer:
        return self._request_json(
            "POST", f"firms/{firm_id}/customers.json", access_token, json=customer
        )

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------
    def get_account(self, access_token: str) -> Account:
        return self._request_json("GET", "account.json", access_token)

    def get_firms(self, access_token: str) -> List[Firm]:
        """Return the firms the account has access to.

        An empty list is returned when the account payload is empty, not
        a JSON object, or has no ``firms`` key.
        """
        account = self.get_account(access_token)
        if not isinstance(account, dict):
            return []
        return account.get("firms") or []

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------
    def get_invoices(self, firm_id: int, access_token: str) -> List[Invoice]:
        return self._request_json("GET", f"firms/{firm_id}/invoices.json", access_token)

    def get_invoice(self, firm_id: int, invoice_id: int, access_token: str) -> Invoice:
        return self._request_json(
            "GET", f"firms/{firm_id}/invoices/{invoice_id}.json", access_token
        )

    def create_invoice(self, firm_id: int, invoice: Invoice, access_token: str) -> Invoice:
        return self._request_json(
            "POST", f"firms/{firm_id}/invoices.json", access_token, json=invoice
        )

    def create_credit(self, firm_id: int, invoice_id: int, access_token: str) -> Credit:
        """Refund an invoice, creating a credit note for its full amount."""
        return self._request_json(
            "POST", f"firms/{firm_id}/invoices/{invoice_id}/refund.json", access_token
        )

    def download_invoice(
        self,
        firm_id: int,
        invoice_id: int,
        access_token: str,
        *,
        original: bool = True,
        dest: Optional[BinaryIO] = None,
    ) -> Union[bytes, int]:
        """Download the PDF of an invoice.

        Parameters
        ----------
        firm_id : int
            Firm owning the invoice.
        invoice_id : int
            Invoice to download.
        access_token : str
            OAuth2 access token.
        original : bool, optional
            Request the original document (``original=1``) rather than
            a duplicate.  Defaults to ``True``.
        dest : binary file object, optional
            When given, the PDF is streamed into it chunk by chunk.

        Returns
        -------
        bytes or int
            The PDF content, or the number of bytes written to ``dest``.
        """
        params = {"original": 1} if original else None
        path = f"firms/{firm_id}/invoices/{invoice_id}.pdf"
        if dest is None:
            return self._request("GET", path, access_token, params=params).content

        written = 0
        response = self._request("GET", path, access_token, params=params, stream=True)
        try:
            for chunk in response.iter_content(chunk_size=_DOWNLOAD_CHUNK_SIZE):
                if chunk:
                    dest.write(chunk)
                    written += len(chunk)
        finally:
            response.close()
        return written

    # ------------------------------------------------------------------
    # Rate limit
    # ------------------------------------------------------------------
    @property
    def requests_remaining(self) -> int:
        return self.rate_limit.remaining

    def check_rate_limit(self, request_count: int) -> bool:
        """Return whether ``request_count`` more requests fit in the budget."""
        return self.rate_limit.can_issue(request_count)


def create(
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    scope: str = "read",
    **kwargs: Any,
) -> FacturationProClient:
    """Shortcut for :class:`FacturationProClient`."""
    return FacturationProClient(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
        scope=scope,
        **kwargs,
    )
