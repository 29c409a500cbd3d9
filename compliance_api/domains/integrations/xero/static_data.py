# compliance_api/domains/integrations/xero/static_data.py
"""Bundled sample documents served when no other source answers."""
from datetime import date
from decimal import Decimal
from typing import Dict, List

from .models import ResourcePayload, ResourceRecord, ResourceType

STATIC_RECORDS: Dict[ResourceType, List[ResourceRecord]] = {
    ResourceType.INVOICES: [
        ResourceRecord(
            id="static-inv-001",
            reference="INV-0001",
            document_date=date(2024, 1, 15),
            contact_name="Acme Corporation",
            status="PAID",
            direction="in",
            subtotal=Decimal("50000.00"),
            tax=Decimal("5000.00"),
            total=Decimal("55000.00"),
            amount_paid=Decimal("55000.00"),
        ),
        ResourceRecord(
            id="static-inv-002",
            reference="INV-0002",
            document_date=date(2024, 2, 12),
            contact_name="Tech Solutions Ltd",
            status="AUTHORISED",
            direction="in",
            subtotal=Decimal("40000.00"),
            tax=Decimal("4000.00"),
            total=Decimal("44000.00"),
            amount_paid=Decimal("0.00"),
        ),
        ResourceRecord(
            id="static-inv-003",
            reference="INV-0003",
            document_date=date(2024, 3, 8),
            contact_name="Global Industries",
            status="PAID",
            direction="in",
            subtotal=Decimal("60000.00"),
            tax=Decimal("6000.00"),
            total=Decimal("66000.00"),
            amount_paid=Decimal("66000.00"),
        ),
    ],
    ResourceType.CREDIT_NOTES: [
        ResourceRecord(
            id="static-cn-001",
            reference="CN-0001",
            document_date=date(2024, 2, 20),
            contact_name="Acme Corporation",
            status="AUTHORISED",
            direction="in",
            subtotal=Decimal("2000.00"),
            tax=Decimal("200.00"),
            total=Decimal("2200.00"),
            amount_paid=Decimal("0.00"),
        ),
    ],
    ResourceType.BANK_TRANSACTIONS: [
        ResourceRecord(
            id="static-bt-001",
            reference="DEP-0001",
            document_date=date(2024, 1, 16),
            contact_name="Acme Corporation",
            status="AUTHORISED",
            direction="in",
            subtotal=Decimal("50000.00"),
            tax=Decimal("5000.00"),
            total=Decimal("55000.00"),
            amount_paid=Decimal("55000.00"),
        ),
        ResourceRecord(
            id="static-bt-002",
            reference="OFFICE-RENT",
            document_date=date(2024, 2, 1),
            contact_name="City Property Management",
            status="AUTHORISED",
            direction="out",
            subtotal=Decimal("8000.00"),
            tax=Decimal("800.00"),
            total=Decimal("8800.00"),
            amount_paid=Decimal("8800.00"),
        ),
    ],
    ResourceType.PAYMENTS: [
        ResourceRecord(
            id="static-pay-001",
            reference="INV-0001",
            document_date=date(2024, 1, 16),
            contact_name="Acme Corporation",
            status="AUTHORISED",
            direction="in",
            subtotal=Decimal("55000.00"),
            tax=Decimal("0.00"),
            total=Decimal("55000.00"),
            amount_paid=Decimal("55000.00"),
        ),
        ResourceRecord(
            id="static-pay-002",
            reference="INV-0003",
            document_date=date(2024, 3, 20),
            contact_name="Global Industries",
            status="AUTHORISED",
            direction="in",
            subtotal=Decimal("66000.00"),
            tax=Decimal("0.00"),
            total=Decimal("66000.00"),
            amount_paid=Decimal("66000.00"),
        ),
    ],
}


def static_payload(resource_type: ResourceType, tenant_id: str) -> ResourcePayload:
    return ResourcePayload(
        resource_type=resource_type,
        tenant_id=tenant_id,
        records=list(STATIC_RECORDS[resource_type]),
    )
