"""Guards against false "new listing" storms from broken scrapes.

A scrape that suddenly returns nothing, or far fewer listings than last
time, usually means the page layout or a selector broke, not that the
listings disappeared. Replacing the stored set with such a result would make
every listing look new once the scrape recovers, so these observations are
classified before the stored set is touched.
"""

from typing import List, Sequence

from listingwatch.api.schemas import Verdict

# Stored sets at or below this size are too small for a shrink to be suspicious
MIN_SIGNIFICANT_SIZE = 5


def classify_observation(
    previous_count: int,
    current_count: int,
    min_significant_size: int = MIN_SIGNIFICANT_SIZE,
) -> Verdict:
    """Decide how a fresh observation should be applied to the stored set.

    Returns:
        FIRST_RUN if nothing is stored yet, EMPTY_RESULT if the scrape found
        nothing while listings are stored, PARTIAL_RESULT if it shrank below
        a significantly sized stored set, NORMAL otherwise.
    """
    if previous_count == 0:
        return Verdict.FIRST_RUN
    if current_count == 0:
        return Verdict.EMPTY_RESULT
    if current_count < previous_count and previous_count > min_significant_size:
        return Verdict.PARTIAL_RESULT
    return Verdict.NORMAL


def merge_preserving_order(previous: Sequence[str], current: Sequence[str]) -> List[str]:
    """Union of both sequences: previous order first, then unseen current IDs."""
    merged = list(previous)
    seen = set(merged)
    for listing_id in current:
        if listing_id not in seen:
            seen.add(listing_id)
            merged.append(listing_id)
    return merged
