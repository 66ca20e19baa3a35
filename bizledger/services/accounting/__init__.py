"""KUDiR accounting package."""

from bizledger.services.accounting.kudir import (
    KudirService,
    document_description,
    month_bounds,
    quarter_bounds,
)

__all__ = [
    "KudirService",
    "document_description",
    "month_bounds",
    "quarter_bounds",
]
