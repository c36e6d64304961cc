"""Listing identifier extraction.

Turns raw listing references (URLs scraped from a results page) into
canonical listing IDs. References that don't point at an item page are
dropped rather than mapped to a placeholder.
"""

import re
from typing import Dict, Iterable, List, Optional, Pattern, Union

# Path segment identifying a single listing, e.g. ".../vehicles/item/abc123"
DEFAULT_ITEM_PATTERN = r"/item/([a-z0-9]+)"

# Marker for unresolvable references; never a valid listing ID
UNKNOWN = "unknown"


def compile_pattern(pattern: Union[str, Pattern, None] = None) -> Pattern:
    if pattern is None:
        pattern = DEFAULT_ITEM_PATTERN
    if isinstance(pattern, str):
        return re.compile(pattern, re.IGNORECASE)
    return pattern


_DEFAULT = compile_pattern()


def extract(reference: str, pattern: Optional[Pattern] = None) -> Optional[str]:
    """Return the canonical listing ID for a reference, or None."""
    if not reference:
        return None
    match = (pattern or _DEFAULT).search(reference)
    if not match:
        return None
    listing_id = match.group(1)
    if listing_id == UNKNOWN:
        return None
    return listing_id


def extract_all(references: Iterable[str], pattern: Optional[Pattern] = None) -> List[str]:
    """Extract IDs from all references, dropping those that don't resolve.

    First-seen order is preserved. Duplicates are kept; callers that need
    set semantics deduplicate themselves.
    """
    ids = []
    for reference in references:
        listing_id = extract(reference, pattern)
        if listing_id is not None:
            ids.append(listing_id)
    return ids


def index_by_id(references: Iterable[str], pattern: Optional[Pattern] = None) -> Dict[str, str]:
    """Map each listing ID to the first reference that resolved to it.

    References that don't resolve are dropped. Used to report the page URL
    a new listing was found at.
    """
    ids: Dict[str, str] = {}
    for reference in references:
        listing_id = extract(reference, pattern)
        if listing_id is not None and listing_id not in ids:
            ids[listing_id] = reference
    return ids
