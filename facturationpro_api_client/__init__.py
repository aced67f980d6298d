"""
Python client for interacting with the facturation.pro REST API.

This package provides a `FacturationProClient` class that handles the
OAuth2 authorization code flow against facturation.pro and exposes the
customers, invoices, credits and account endpoints as methods.  Each
API response updates an advisory rate-limit counter read from the
`X-RateLimit-Remaining` header.

Examples
--------

```python
from facturationpro_api_client import create

client = create(
    client_id="YOUR_CLIENT_ID",
    client_secret="YOUR_CLIENT_SECRET",
    redirect_uri="https://example.com/callback",
    scope="read_write",
)

url, state = client.authorization_url()
token = client.get_token_from_uri(redirected_uri, state=state)
invoices = client.get_invoices(1234, token["access_token"])

if not client.check_rate_limit(len(invoices)):
    ...  # slow down
```
"""

from .client import FacturationProClient, create
from .exceptions import (
    FacturationProAPIError,
    FacturationProAuthError,
    FacturationProError,
)
from .models import Account, Credit, Customer, Firm, Invoice, InvoiceLine
from .ratelimit import RateLimitTracker

__all__ = [
    "FacturationProClient",
    "create",
    "FacturationProError",
    "FacturationProAuthError",
    "FacturationProAPIError",
    "RateLimitTracker",
    "Account",
    "Credit",
    "Customer",
    "Firm",
    "Invoice",
    "InvoiceLine",
]
