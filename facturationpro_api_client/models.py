"""
Typed shapes of the JSON payloads exchanged with facturation.pro.

These are plain dictionaries at runtime.  Only the commonly used keys
are listed; the API may return more and the client passes everything
through untouched.
"""

from __future__ import annotations

from typing import List, Optional, TypedDict


class Customer(TypedDict, total=False):
    id: int
    api_id: int
    api_custom: str
    company_name: str
    civility: str
    first_name: str
    last_name: str
    email: str
    phone: str
    street: str
    zip_code: str
    city: str
    country: str
    vat_number: str
    siret: str
    created_at: str
    updated_at: str


class InvoiceLine(TypedDict, total=False):
    title: str
    quantity: float
    unit_price: float
    vat: float
    position: int


class Invoice(TypedDict, total=False):
    id: int
    invoice_ref: str
    customer_id: int
    title: str
    invoiced_on: str
    term_on: str
    currency: str
    total: str
    total_with_vat: str
    paid_on: Optional[str]
    draft: bool
    items: List[InvoiceLine]
    customer: Customer


class Credit(Invoice, total=False):
    refund_of_id: int


class Firm(TypedDict, total=False):
    id: int
    name: str
    country: str
    currency: str


class Account(TypedDict, total=False):
    id: int
    email: str
    first_name: str
    last_name: str
    firms: List[Firm]
