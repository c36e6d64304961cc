"""Change detection between scrape runs.

Compares a topic's current listings against the IDs stored from previous
runs, reports the genuinely new ones, and updates the stored set. Works with
the observation guard so that a broken scrape neither loses known listings
nor floods the user with "new" ones once it recovers.
"""

import logging
from typing import Dict, Iterable, List, Optional, Pattern, Set

from listingwatch.api.schemas import DecisionResult, StoreDocument, TopicState, Verdict
from listingwatch.db.store import TopicStateStore
from listingwatch.pipeline.extractor import compile_pattern, extract_all, index_by_id
from listingwatch.resilience.observation_guard import (
    MIN_SIGNIFICANT_SIZE, classify_observation, merge_preserving_order,
)

logger = logging.getLogger(__name__)


def detect_changes(previous_ids: Set[str], current_ids: Set[str]) -> Dict[str, set]:
    """Diff two sets of listing IDs to find added, removed, and retained.

    Args:
        previous_ids: IDs stored from earlier runs.
        current_ids: IDs from the current scrape.

    Returns:
        Dict with 'added', 'removed', and 'retained' sets.
    """
    return {
        "added": current_ids - previous_ids,
        "removed": previous_ids - current_ids,
        "retained": current_ids & previous_ids,
    }


def build_change_summary(changes: Dict[str, set]) -> Dict[str, int]:
    """Summarize changes into counts for logs and scan reports."""
    return {
        "added_count": len(changes["added"]),
        "removed_count": len(changes["removed"]),
        "retained_count": len(changes["retained"]),
        "total_count": len(changes["added"]) + len(changes["retained"]),
    }


class ChangeDetector:
    """Finds new listings for a topic and keeps the stored set up to date."""

    def __init__(
        self,
        store: TopicStateStore,
        item_pattern: Optional[str] = None,
        min_significant_size: int = MIN_SIGNIFICANT_SIZE,
    ):
        self.store = store
        self.pattern: Pattern = compile_pattern(item_pattern)
        self.min_significant_size = min_significant_size

    async def detect(self, topic: str, observation: Iterable[str]) -> DecisionResult:
        """Apply one scrape of a topic. Never raises.

        The first observation of a topic is stored but reports nothing new.
        Any failure degrades to "nothing persisted, nothing new".
        """
        try:
            return await self._detect(topic, list(observation))
        except Exception as e:
            logger.error("Change detection failed for %s: %s", topic, e, exc_info=True)
            return DecisionResult(
                topic=topic,
                verdict=Verdict.FAILED,
                updated_state=TopicState(topic=topic),
            )

    async def _detect(self, topic: str, observation: List[str]) -> DecisionResult:
        current_ids = list(dict.fromkeys(extract_all(observation, self.pattern)))
        cap = self.store.retention_cap
        if cap and len(current_ids) > cap:
            logger.warning(
                "%s: page has %d listings but only %d are retained, older ones will be "
                "reported as new again; raise detection.retention_cap",
                topic, len(current_ids), cap,
            )

        doc: StoreDocument = await self.store.load()
        previous_ids = doc.get_topic(topic)
        previous_set = set(previous_ids)

        summary = build_change_summary(detect_changes(previous_set, set(current_ids)))
        verdict = classify_observation(
            len(previous_ids), len(current_ids), self.min_significant_size,
        )

        logger.info(
            "%s: %d total, %d previously seen, %d new (%s)",
            topic, len(current_ids), len(previous_ids), summary["added_count"], verdict.value,
        )

        if verdict is Verdict.EMPTY_RESULT:
            logger.warning(
                "Found 0 listings for %s, not updating state (potential scraping failure)", topic,
            )
            return DecisionResult(
                topic=topic,
                verdict=verdict,
                updated_state=TopicState(topic=topic, seen_ids=previous_ids),
                **summary,
            )

        if verdict is Verdict.FIRST_RUN:
            new_ids = []
            next_ids = current_ids
            logger.info("First observation of %s, tracking %d listings silently", topic, len(next_ids))
        else:
            new_ids = [i for i in current_ids if i not in previous_set]
            if verdict is Verdict.PARTIAL_RESULT:
                logger.warning(
                    "Found %d listings vs %d stored for %s, keeping stored ones and adding new",
                    len(current_ids), len(previous_ids), topic,
                )
                next_ids = merge_preserving_order(previous_ids, current_ids)
            else:
                next_ids = current_ids

        doc.topics[topic] = next_ids
        if not await self.store.save(doc):
            logger.error("State for %s was not persisted, reporting no new listings", topic)
            return DecisionResult(
                topic=topic,
                verdict=verdict,
                updated_state=TopicState(topic=topic, seen_ids=previous_ids),
                **summary,
            )

        found_at = index_by_id(observation, self.pattern)
        new_references = [found_at[i] for i in new_ids]
        return DecisionResult(
            topic=topic,
            verdict=verdict,
            new_ids=new_ids,
            new_references=new_references,
            updated_state=TopicState(topic=topic, seen_ids=doc.get_topic(topic)),
            persisted=True,
            **summary,
        )
