"""Query package: live lists and summaries over the ledger."""

from farmledger.queries.live import NEWEST_FIRST, LiveQuery, date_range_filters
from farmledger.queries.executor import UNASSIGNED_CROP, LedgerQueries

__all__ = [
    "LedgerQueries",
    "LiveQuery",
    "NEWEST_FIRST",
    "UNASSIGNED_CROP",
    "date_range_filters",
]
