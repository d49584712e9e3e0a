"""Page and block creation on top of the Roam client."""

import json
import logging
from collections.abc import Callable, Iterable
from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .client import RoamClient
from .errors import HTTPStatusError, PageNotFoundError, RoamAPIError
from .queries import find_page_uid

logger = logging.getLogger(__name__)

CHILDREN_VIEW_TYPES = ("bullet", "numbered", "document")


class ItemStatus(str, Enum):
    """Outcome of one item in a bulk write."""

    CREATED = "created"
    SKIPPED = "skipped"
    FAILED = "failed"


class FailedItem(BaseModel):
    item: str
    error: str


class PageCreationReport(BaseModel):
    created: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed: list[FailedItem] = Field(default_factory=list)


class BlockWriteReport(BaseModel):
    written: list[str] = Field(default_factory=list)
    failed: list[FailedItem] = Field(default_factory=list)


ProgressCallback = Callable[[ItemStatus], None]


def ordinal_suffix(day: int) -> str:
    """Return ordinal suffix (st, nd, rd, th) for a day number.

    Args:
        day: The day of the month (1-31).

    Returns:
        The ordinal suffix string ('st', 'nd', 'rd', or 'th').
    """
    if day in (1, 21, 31):
        return "st"
    if day in (2, 22):
        return "nd"
    if day in (3, 23):
        return "rd"
    return "th"


def daily_page_title(day: date) -> str:
    """Format a date the way Roam titles daily notes, e.g. ``February 5th, 2026``."""
    return f"{day:%B} {day.day}{ordinal_suffix(day.day)}, {day.year}"


def create_page_action(
    title: str, children_view_type: str | None = None
) -> dict[str, Any]:
    """Build a ``create-page`` write action."""
    page: dict[str, Any] = {"title": title}
    if children_view_type:
        page["children-view-type"] = children_view_type
    return {"action": "create-page", "page": page}


def create_block_action(
    parent_uid: str, string: str, order: int | str = "last"
) -> dict[str, Any]:
    """Build a ``create-block`` action appending ``string`` under ``parent_uid``."""
    return {
        "action": "create-block",
        "location": {"parent-uid": parent_uid, "order": order},
        "block": {"string": string},
    }


def unique_titles(titles: Iterable[str]) -> list[str]:
    """Drop duplicate titles, keeping the first occurrence of each."""
    return list(dict.fromkeys(titles))


def is_already_exists(error: RoamAPIError) -> bool:
    """Check whether a failed write was rejected because the page exists.

    The service answers with a JSON body whose ``message`` says the page
    "already exists". Non-JSON bodies are checked as plain text.
    """
    if not isinstance(error, HTTPStatusError):
        return False
    try:
        data = json.loads(error.body)
    except json.JSONDecodeError:
        return "already exists" in error.body
    message = data.get("message") if isinstance(data, dict) else None
    return isinstance(message, str) and "already exists" in message


def _error_message(error: RoamAPIError) -> str:
    if isinstance(error, HTTPStatusError):
        try:
            data = json.loads(error.body)
        except json.JSONDecodeError:
            return error.body or str(error)
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return error.body
    return str(error)


def ensure_page_uid(client: RoamClient, title: str) -> str:
    """Return the uid of a page, creating the page first if needed.

    Raises:
        PageNotFoundError: If the page still cannot be found after creation.
    """
    uid = find_page_uid(client, title)
    if uid:
        return uid

    logger.info("Page %r does not exist, creating it", title)
    client.write(create_page_action(title))

    uid = find_page_uid(client, title)
    if not uid:
        raise PageNotFoundError(f"Failed to get UID for page '{title}' after creation")
    return uid


def create_pages(
    client: RoamClient,
    titles: Iterable[str],
    children_view_type: str | None = None,
    on_progress: ProgressCallback | None = None,
) -> PageCreationReport:
    """Create pages one request at a time.

    Pages that already exist are skipped. Any other failure is recorded
    against its title and the remaining titles are still attempted.
    """
    report = PageCreationReport()

    for title in titles:
        try:
            client.write(create_page_action(title, children_view_type))
        except RoamAPIError as e:
            if is_already_exists(e):
                logger.info("Page %r already exists, skipping", title)
                report.skipped.append(title)
                status = ItemStatus.SKIPPED
            else:
                logger.info("Failed to create page %r: %s", title, e)
                report.failed.append(FailedItem(item=title, error=_error_message(e)))
                status = ItemStatus.FAILED
        else:
            report.created.append(title)
            status = ItemStatus.CREATED

        if on_progress is not None:
            on_progress(status)

    return report


def write_blocks(
    client: RoamClient,
    parent_uid: str,
    lines: Iterable[str],
    on_progress: ProgressCallback | None = None,
) -> BlockWriteReport:
    """Append one block per line under ``parent_uid``, in order."""
    report = BlockWriteReport()

    for line in lines:
        try:
            client.write(create_block_action(parent_uid, line))
        except RoamAPIError as e:
            logger.info("Failed to write block under %s: %s", parent_uid, e)
            report.failed.append(FailedItem(item=line, error=_error_message(e)))
            status = ItemStatus.FAILED
        else:
            report.written.append(line)
            status = ItemStatus.CREATED

        if on_progress is not None:
            on_progress(status)

    return report
