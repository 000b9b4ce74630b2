"""Page slicing for sorted report grids."""

from qaboard.reporting.types import ReportResult

# Sentinel page size meaning "every row"
ALL_ROWS = "All"


def paginate(rows: list[dict], page: int = 1, page_size: int | None = None) -> ReportResult:
    """Slice ``rows`` into a 1-based page.

    ``page_size=None`` returns every row; the result then reports the total
    count as its page size.
    """
    total = len(rows)
    if page_size is None:
        page_rows = list(rows)
    else:
        start = (page - 1) * page_size
        page_rows = rows[start:start + page_size]

    return ReportResult(
        results=page_rows,
        all_results=list(rows),
        total_count=total,
        page=page,
        page_size=page_size or total,
    )
