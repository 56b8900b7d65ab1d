"""Timeline page parsing utilities.

This module turns the HTML timeline page of the Endeavor portal into
structured `Entry` records. The page has no machine-readable format, so
extraction follows a fixed chain of CSS selectors:

- `container` locates one element per pending entry
- `block` narrows a container to the element holding the text
- `id_date` yields the "ID - DD-Mon-YYYY" text
- `project_info` yields the customer and project number fragments, in order

Any drift in that markup surfaces as an `EntryParseError` for the whole
page rather than as a partial listing.
"""

from dataclasses import dataclass
from datetime import date, datetime
from logging import getLogger
from re import compile

from bs4 import BeautifulSoup

from .errors import EntryParseError

logger = getLogger(__name__)

ID_DATE_SEPARATOR = " - "
SOURCE_DATE_FORMAT = "%d-%b-%Y"
DISPLAY_DATE_FORMAT = "%d/%b/%Y"
URL_SAFE_ID = compile(r"^[A-Za-z0-9._~-]+$")


@dataclass(frozen=True)
class Entry:
    """A pending timesheet entry scraped from the timeline page.

    Args:
        id: Opaque identifier used as ``app_id`` in follow-up URLs
        date: Calendar day the entry refers to
        customer: Customer name as shown on the page
        project_number: Project number as shown on the page
    """

    id: str
    date: date
    customer: str
    project_number: str

    def __str__(self) -> str:
        day = self.date.strftime(DISPLAY_DATE_FORMAT)
        return f"{day} ({self.customer}) -- #{self.id} | {self.project_number}"

    def to_dict(self) -> dict[str, str]:
        """Return a JSON/CSV friendly mapping of the entry."""
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "project_number": self.project_number,
            "customer": self.customer,
        }


def parse_entry(id_date: str, project_info: list[str]) -> Entry:
    """Build an `Entry` from the two text fragments of a timeline item.

    Args:
        id_date: Text like "A123 - 05-Jan-2024"
        project_info: Exactly two fragments, customer then project number

    Returns:
        The parsed Entry

    Raises:
        EntryParseError: If any part of the text is malformed
    """
    entry_id, sep, date_text = id_date.partition(ID_DATE_SEPARATOR)
    if not sep:
        raise EntryParseError(f"Text {ID_DATE_SEPARATOR!r} not found in: {id_date!r}")
    entry_id = entry_id.strip()
    date_text = date_text.strip()
    if not URL_SAFE_ID.match(entry_id):
        raise EntryParseError(f"Invalid entry id {entry_id!r} in: {id_date!r}")
    try:
        entry_date = datetime.strptime(date_text, SOURCE_DATE_FORMAT).date()
    except ValueError as e:
        raise EntryParseError(f"Could not parse date: {date_text!r}") from e

    if len(project_info) != 2:
        raise EntryParseError(
            f"Found {len(project_info)} items when parsing the text for project "
            f"info, expected 2\nproject_info: {project_info!r}"
        )
    customer, project_number = project_info

    return Entry(
        id=entry_id,
        date=entry_date,
        customer=customer,
        project_number=project_number,
    )


@dataclass(frozen=True)
class EntrySelectors:
    """CSS selectors describing where entries live on the timeline page."""

    container: str
    block: str
    id_date: str
    project_info: str


DEFAULT_SELECTORS = EntrySelectors(
    container=(
        "body > div.wrapper.fullheight-side > div.main-panel.full-height > "
        "div.content > div > div.col-md-12 > div > div > div.d-flex"
    ),
    block="div.flex-1.ml-3.pt-1",
    id_date="h6 > b",
    project_info=":scope > span",
)


def extract_entries(
    html: str, selectors: EntrySelectors = DEFAULT_SELECTORS
) -> list[Entry]:
    """Extract every entry on the timeline page, in document order.

    An empty list is returned when no container matches. A container that
    is present but malformed fails the whole extraction.

    Raises:
        EntryParseError: If a container lacks an expected node or its text
            cannot be parsed
    """
    soup = BeautifulSoup(html, "html.parser")
    entries = []
    for index, container in enumerate(soup.select(selectors.container)):
        block = container.select_one(selectors.block)
        if block is None:
            raise EntryParseError(f"Entry #{index}: block selection was empty")

        id_date_node = block.select_one(selectors.id_date)
        if id_date_node is None:
            raise EntryParseError(f"Entry #{index}: cannot find 'id - date' field")

        project_node = block.select_one(selectors.project_info)
        if project_node is None:
            raise EntryParseError(f"Entry #{index}: cannot find project field")

        entry = parse_entry(
            id_date_node.get_text(" ", strip=True), list(project_node.stripped_strings)
        )
        logger.debug(f"found {entry.id}: {entry.date} ({entry.customer})")
        entries.append(entry)

    return entries
