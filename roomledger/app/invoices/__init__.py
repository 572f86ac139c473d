"""Invoice draft compilation."""

from .compiler import build_invoice_draft, compute_tax_cents, period_start, summarize_usage_counts
from .models import InvoiceDraft, InvoiceLine, InvoiceLineKind, InvoiceOptions, RateCard, RateCardEntry

__all__ = [
    "InvoiceDraft",
    "InvoiceLine",
    "InvoiceLineKind",
    "InvoiceOptions",
    "RateCard",
    "RateCardEntry",
    "build_invoice_draft",
    "compute_tax_cents",
    "period_start",
    "summarize_usage_counts",
]
