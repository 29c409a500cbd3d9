"""Normalize Xero's loosely-typed payloads into ``ResourceRecord`` values.

Xero returns PascalCase documents whose fields vary by resource (``Invoices``,
``CreditNotes``, ``BankTransactions``, ``Payments``), with amounts as numbers
or strings and dates either ISO strings or ``/Date(1704067200000+0000)/``.
Everything downstream only sees the normalized shape.
"""
import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Literal, Optional

from .models import ResourcePayload, ResourceRecord, ResourceType

RESOURCE_ENDPOINTS: Dict[ResourceType, str] = {
    ResourceType.INVOICES: "Invoices",
    ResourceType.CREDIT_NOTES: "CreditNotes",
    ResourceType.BANK_TRANSACTIONS: "BankTransactions",
    ResourceType.PAYMENTS: "Payments",
}

ID_FIELDS: Dict[ResourceType, str] = {
    ResourceType.INVOICES: "InvoiceID",
    ResourceType.CREDIT_NOTES: "CreditNoteID",
    ResourceType.BANK_TRANSACTIONS: "BankTransactionID",
    ResourceType.PAYMENTS: "PaymentID",
}

# Document types that represent money going out
OUTGOING_TYPES = {"ACCPAY", "ACCPAYCREDIT", "SPEND", "SPEND-OVERPAYMENT", "SPEND-PREPAYMENT"}
OUTGOING_TYPES |= {"SPENDOVERPAYMENT", "SPENDPREPAYMENT", "PAYTRANSFER", "ACCPAYPAYMENT"}

MS_DATE_PATTERN = re.compile(r"/Date\((-?\d+)([+-]\d{4})?\)/")

ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """Parse an amount, treating missing or malformed values as zero."""
    if value is None or isinstance(value, bool):
        return ZERO
    try:
        amount = Decimal(str(value).strip() or "0")
    except InvalidOperation:
        return ZERO
    if not amount.is_finite():
        return ZERO
    return amount.quantize(Decimal("0.01"))


def to_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value)
    match = MS_DATE_PATTERN.fullmatch(text)
    if match:
        millis = int(match.group(1))
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).date()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def _direction(resource_type: ResourceType, item: Dict[str, Any]) -> Literal["in", "out"]:
    doc_type = str(item.get("Type") or item.get("PaymentType") or "").upper()
    if doc_type in OUTGOING_TYPES:
        return "out"
    if resource_type is ResourceType.BANK_TRANSACTIONS and doc_type.startswith("SPEND"):
        return "out"
    return "in"


def normalize_record(
    resource_type: ResourceType, item: Dict[str, Any]
) -> Optional[ResourceRecord]:
    """Map one Xero document to a ResourceRecord, or None if it has no ID."""
    record_id = item.get(ID_FIELDS[resource_type]) or item.get("id")
    if not record_id:
        return None

    contact = item.get("Contact") or {}
    contact_name = contact.get("Name") if isinstance(contact, dict) else None

    if resource_type is ResourceType.PAYMENTS:
        amount = to_decimal(item.get("Amount"))
        subtotal, tax, total, amount_paid = amount, ZERO, amount, amount
        invoice = item.get("Invoice") or {}
        if contact_name is None and isinstance(invoice, dict):
            invoice_contact = invoice.get("Contact") or {}
            contact_name = invoice_contact.get("Name")
    else:
        tax = to_decimal(item.get("TotalTax"))
        total = to_decimal(item.get("Total"))
        subtotal = (
            to_decimal(item["SubTotal"]) if "SubTotal" in item else total - tax
        )
        if "AmountPaid" in item:
            amount_paid = to_decimal(item.get("AmountPaid"))
        elif resource_type is ResourceType.BANK_TRANSACTIONS:
            amount_paid = total
        else:
            amount_paid = ZERO

    reference = (
        item.get("InvoiceNumber")
        or item.get("CreditNoteNumber")
        or item.get("Reference")
    )

    return ResourceRecord(
        id=str(record_id),
        reference=str(reference) if reference else None,
        document_date=to_date(item.get("Date") or item.get("DateString")),
        contact_name=contact_name,
        status=item.get("Status"),
        direction=_direction(resource_type, item),
        subtotal=subtotal,
        tax=tax,
        total=total,
        amount_paid=amount_paid,
    )


def extract_items(resource_type: ResourceType, body: Any) -> List[Dict[str, Any]]:
    """
    Pull the document list out of a Xero or demo-service body.

    Accepts the Xero envelope (``{"Invoices": [...]}``), the app envelope
    (``{"success": true, "data": ...}``) or a bare list.
    """
    if isinstance(body, dict) and "data" in body and "success" in body:
        body = body["data"]
    if isinstance(body, dict):
        body = body.get(RESOURCE_ENDPOINTS[resource_type], [])
    if not isinstance(body, list):
        raise ValueError(f"Expected a list of {resource_type.value}")
    return [item for item in body if isinstance(item, dict)]


def normalize_payload(
    resource_type: ResourceType, tenant_id: str, body: Any
) -> ResourcePayload:
    records = []
    for item in extract_items(resource_type, body):
        record = normalize_record(resource_type, item)
        if record is not None:
            records.append(record)
    return ResourcePayload(resource_type=resource_type, tenant_id=tenant_id, records=records)
