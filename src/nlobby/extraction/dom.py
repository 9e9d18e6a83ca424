"""Record extraction from the server-rendered MUI DataGrid on the news page."""

from datetime import datetime

from bs4 import BeautifulSoup, Tag

from src.nlobby.logging import get_logger

GRID_FIELDS = ("title", "menuName", "isImportant", "isUnread", "publishedAt")

# Portal renders dates as "2025/07/13 09:00" in local time
GRID_DATE_FORMATS = ("%Y-%m-%d %H:%M", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d")

log = get_logger(__name__)


def parse_grid_date(text: str, now: datetime | None = None) -> datetime:
    """Parse a grid date cell; unparsable text yields now."""
    candidate = text.strip().replace("/", "-")
    if candidate:
        for fmt in GRID_DATE_FORMATS:
            try:
                return datetime.strptime(candidate, fmt)
            except ValueError:
                continue
        try:
            return datetime.fromisoformat(candidate)
        except ValueError:
            pass
    return now or datetime.now()


def _title_cell(cell: Tag) -> tuple[str, str | None]:
    link = cell.find("a")
    if isinstance(link, Tag):
        span = link.find("span")
        text = span.get_text(strip=True) if isinstance(span, Tag) else link.get_text(strip=True)
        return text, link.get("href")
    return cell.get_text(strip=True), None


def parse_row(row: Tag) -> dict | None:
    """Turn one grid row into a record, or None when it has no title."""
    row_id = row.get("data-id")
    if not row_id:
        return None

    record: dict = {"id": row_id}
    for cell in row.select('div[role="gridcell"][data-field]'):
        name = cell.get("data-field")
        text = cell.get_text(strip=True)
        if name == "title":
            record["title"], href = _title_cell(cell)
            if href:
                record["href"] = href
        elif name == "menuName":
            record["menuName"] = text
        elif name == "isImportant":
            record["isImportant"] = bool(text) or cell.find(True) is not None
        elif name == "isUnread":
            record["isUnread"] = bool(text)
        elif name == "publishedAt":
            record["publishedAt"] = parse_grid_date(text).isoformat()

    if not record.get("title"):
        log.debug("grid_row_skipped", row_id=row_id, reason="no_title")
        return None
    return record


def extract_grid_rows(html: str, container_index: int = 1) -> list[dict]:
    """Extract news rows from the DataGrid body.

    The grid body is the role="presentation" element at container_index
    (the first one is the grid header on the current layout).

    Args:
        html: Rendered news page.
        container_index: Which presentation container holds the rows.

    Returns:
        Records with id, title, href, menuName, isImportant, isUnread and
        publishedAt (ISO string); empty when the grid is not found.
    """
    soup = BeautifulSoup(html, "lxml")
    containers = soup.select('div[role="presentation"]')
    if len(containers) <= container_index:
        log.debug("grid_not_found", containers=len(containers), wanted=container_index)
        return []

    rows = containers[container_index].select('div[role="row"][data-id]')
    records = [record for record in (parse_row(row) for row in rows) if record]
    log.debug("grid_parsed", rows=len(rows), records=len(records))
    return records
