# compliance_api/domains/integrations/xero/summary.py
from decimal import Decimal
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from .models import (
    ErrorKind,
    ResourcePayload,
    ResourceResult,
    ResourceType,
    SourceTier,
)

ZERO = Decimal("0")


class ResourceSummary(BaseModel):
    """Aggregate figures for one resource payload."""

    resource_type: ResourceType = Field(..., description="Summarized resource")
    count: int = Field(0, description="Number of records")
    subtotal: Decimal = Field(ZERO, description="Sum of amounts excluding tax")
    tax: Decimal = Field(ZERO, description="Sum of tax")
    total: Decimal = Field(ZERO, description="Sum of amounts including tax")
    paid: Decimal = Field(ZERO, description="Sum of amounts settled")
    outstanding: Decimal = Field(ZERO, description="Total minus paid")
    average: Decimal = Field(ZERO, description="Average total per record")


class BasSummary(BaseModel):
    """GST position for a Business Activity Statement."""

    total_sales: Decimal = Field(ZERO, description="Sales excluding GST")
    total_purchases: Decimal = Field(ZERO, description="Purchases excluding GST")
    gst_on_sales: Decimal = Field(ZERO, description="GST collected")
    gst_on_purchases: Decimal = Field(ZERO, description="GST paid")
    net_gst: Decimal = Field(ZERO, description="GST payable (negative is a refund)")
    source_tiers: List[SourceTier] = Field(
        default_factory=list, description="Tiers the figures came from"
    )


def summarize(payload: ResourcePayload) -> ResourceSummary:
    records = payload.records
    subtotal = sum((r.subtotal for r in records), ZERO)
    tax = sum((r.tax for r in records), ZERO)
    total = sum((r.total for r in records), ZERO)
    paid = sum((r.amount_paid for r in records), ZERO)

    average = (total / len(records)).quantize(Decimal("0.01")) if records else ZERO

    return ResourceSummary(
        resource_type=payload.resource_type,
        count=len(records),
        subtotal=subtotal,
        tax=tax,
        total=total,
        paid=paid,
        outstanding=total - paid,
        average=average,
    )


def build_bas_summary(results: Iterable[ResourceResult]) -> BasSummary:
    """
    Compute the GST position from fetched documents.

    Money-in records count as sales and money-out records as purchases.
    """
    summary = BasSummary()
    for result in results:
        if result.source_tier not in summary.source_tiers:
            summary.source_tiers.append(result.source_tier)
        for record in result.data.records:
            if record.direction == "in":
                summary.total_sales += record.subtotal
                summary.gst_on_sales += record.tax
            else:
                summary.total_purchases += record.subtotal
                summary.gst_on_purchases += record.tax

    summary.net_gst = summary.gst_on_sales - summary.gst_on_purchases
    return summary


class FinancialSummary(BaseModel):
    """Invoice figures and GST position for one tenant."""

    tenant_id: str = Field(..., description="Tenant the figures belong to")
    invoices: ResourceSummary = Field(..., description="Invoice aggregates")
    bas: BasSummary = Field(..., description="GST position")
    degraded_reason: Optional[ErrorKind] = Field(
        None, description="Why live data was not used"
    )


def build_financial_summary(invoices: ResourceResult) -> FinancialSummary:
    return FinancialSummary(
        tenant_id=invoices.data.tenant_id,
        invoices=summarize(invoices.data),
        bas=build_bas_summary([invoices]),
        degraded_reason=invoices.degraded_reason,
    )
