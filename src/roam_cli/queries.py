"""Datalog lookups used by the command-line tools.

Query strings are opaque payloads for the remote service. User-supplied
values always travel in ``args`` and are never interpolated into a query.
"""

import logging
from typing import NamedTuple

from .client import RoamClient
from .errors import HTTPStatusError
from .tree import Block

logger = logging.getLogger(__name__)

# Recursive rule matching any block nested (at any depth) under a page
ANCESTOR_RULE = (
    "[[(ancestor ?b ?a) [?a :block/children ?b]] "
    "[(ancestor ?b ?a) [?parent :block/children ?b] (ancestor ?parent ?a)]]"
)

PAGE_UID_QUERY = """[:find ?uid
 :in $ ?title
 :where [?e :node/title ?title]
        [?e :block/uid ?uid]]"""

CHILDREN_QUERY = """[:find ?childUid ?childString ?childOrder
 :in $ ?parentUid
 :where [?parent :block/uid ?parentUid]
        [?parent :block/children ?child]
        [?child :block/uid ?childUid]
        [?child :block/string ?childString]
        [?child :block/order ?childOrder]]"""

REFERENCES_QUERY = """[:find ?block-str ?block-uid ?page-title
 :in $ ?ref-title %
 :where [?ref-page :node/title ?ref-title]
        [?block :block/refs ?ref-page]
        [?block :block/string ?block-str]
        [?block :block/uid ?block-uid]
        (ancestor ?block ?page)
        [?page :node/title ?page-title]]"""

# Only finds references in top-level blocks of a page
REFERENCES_FALLBACK_QUERY = """[:find ?block-str ?block-uid ?page-title
 :in $ ?ref-title
 :where [?ref-page :node/title ?ref-title]
        [?block :block/refs ?ref-page]
        [?block :block/string ?block-str]
        [?block :block/uid ?block-uid]
        [?page :node/title ?page-title]
        [?page :block/children ?block]]"""

MODIFIED_SINCE_QUERY = """[:find ?title (max ?time)
 :in $ ?start %
 :where [?page :node/title ?title]
        (ancestor ?block ?page)
        [?block :edit/time ?time]
        [(> ?time ?start)]]"""

# Only sees edits recorded on the page entity itself
MODIFIED_SINCE_FALLBACK_QUERY = """[:find ?title (max ?time)
 :in $ ?start
 :where [?page :node/title ?title]
        [?page :edit/time ?time]
        [(> ?time ?start)]]"""


class Reference(NamedTuple):
    """A block that links to a page."""

    string: str
    uid: str
    page: str


class PageEdit(NamedTuple):
    title: str
    last_edited: int | None


def find_page_uid(client: RoamClient, title: str) -> str | None:
    """Look up a page's uid by its exact title.

    Returns:
        The uid, or None if no page has that title.
    """
    results = client.query(PAGE_UID_QUERY, [title])
    if results:
        return results[0][0]
    return None


def fetch_children(client: RoamClient, parent_uid: str) -> list[Block]:
    """Get the immediate children of a page or block, sorted by order."""
    results = client.query(CHILDREN_QUERY, [parent_uid])
    blocks = [
        Block(uid=uid, string=string, order=order) for uid, string, order in results
    ]
    return sorted(blocks, key=lambda b: b.order)


def find_references(client: RoamClient, title: str) -> list[Reference]:
    """Get blocks that reference a page (backlinks).

    Tries the recursive ancestor-rule query first so nested blocks are
    found too. If the service rejects it, falls back to the query that only
    sees top-level blocks.
    """
    try:
        results = client.query(REFERENCES_QUERY, [title, ANCESTOR_RULE])
    except HTTPStatusError as e:
        logger.warning(
            "Ancestor query for references to %s failed (HTTP %s), "
            "falling back to top-level blocks",
            title,
            e.status_code,
        )
        results = client.query(REFERENCES_FALLBACK_QUERY, [title])

    return [Reference(string=s, uid=uid, page=page) for s, uid, page in results]


def group_references(references: list[Reference]) -> dict[str, list[Reference]]:
    """Group references by the page they appear on, keeping first-seen order."""
    by_page: dict[str, list[Reference]] = {}
    for ref in references:
        by_page.setdefault(ref.page, []).append(ref)
    return by_page


def find_pages_modified_since(client: RoamClient, start_ms: int) -> list[PageEdit]:
    """Get pages edited after ``start_ms`` (epoch milliseconds), newest first.

    Uses the ancestor rule to catch block-level edits, falling back to
    page-level edit times if the service rejects the rule query.
    """
    try:
        results = client.query(MODIFIED_SINCE_QUERY, [start_ms, ANCESTOR_RULE])
    except HTTPStatusError as e:
        logger.warning(
            "Ancestor query for modified pages failed (HTTP %s), "
            "falling back to page edit times",
            e.status_code,
        )
        results = client.query(MODIFIED_SINCE_FALLBACK_QUERY, [start_ms])

    edits = [PageEdit(title=title, last_edited=time) for title, time in results]
    edits.sort(key=lambda e: e.last_edited or 0, reverse=True)
    logger.info("Found %d pages modified since %d", len(edits), start_ms)
    return edits
