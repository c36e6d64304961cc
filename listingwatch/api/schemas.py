"""Pydantic models for tracked state, detection results and API schemas."""

from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional, List, Dict

LAST_UPDATED_KEY = "lastUpdated"


class TopicState(BaseModel):
    """Previously seen listing IDs for one topic, in discovery order."""
    topic: str
    seen_ids: List[str] = []


class StoreDocument(BaseModel):
    """Everything the state store persists: per-topic IDs plus a timestamp."""
    topics: Dict[str, List[str]] = {}
    last_updated: Optional[str] = None

    @classmethod
    def from_wire(cls, data: dict) -> "StoreDocument":
        """Build a document from its JSON form.

        The wire format keeps topics as top-level keys next to ``lastUpdated``.
        Raises ValueError if the payload isn't shaped like a store document.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

        last_updated = data.get(LAST_UPDATED_KEY)
        if last_updated is not None and not isinstance(last_updated, str):
            raise ValueError(f"Invalid {LAST_UPDATED_KEY}: {last_updated!r}")

        topics = {}
        for key, value in data.items():
            if key == LAST_UPDATED_KEY:
                continue
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ValueError(f"Topic '{key}' is not a list of strings")
            topics[key] = list(value)

        return cls(topics=topics, last_updated=last_updated)

    def to_wire(self) -> dict:
        data = {topic: list(ids) for topic, ids in self.topics.items()}
        data[LAST_UPDATED_KEY] = self.last_updated
        return data

    def get_topic(self, topic: str) -> List[str]:
        return list(self.topics.get(topic, []))


class Verdict(str, Enum):
    """Which branch of change detection decided the outcome."""
    FIRST_RUN = "first_run"
    EMPTY_RESULT = "empty_result"
    PARTIAL_RESULT = "partial_result"
    NORMAL = "normal"
    FAILED = "failed"


class DecisionResult(BaseModel):
    """Outcome of one change-detection call for a topic."""
    topic: str
    verdict: Verdict
    new_ids: List[str] = []
    new_references: List[str] = []
    updated_state: TopicState
    persisted: bool = False
    total_count: int = 0
    added_count: int = 0
    removed_count: int = 0
    retained_count: int = 0

    @property
    def has_new(self) -> bool:
        return bool(self.new_ids)


class ScanRequest(BaseModel):
    """Request to start a scan cycle through the API."""
    force_notify: bool = False
    topics: Optional[List[str]] = Field(
        default=None, description="Limit the scan to these topics; all enabled topics if omitted",
    )


class ScanStatusResponse(BaseModel):
    """Response for scan job status."""
    job_id: str
    status: str  # queued, running, completed, failed
    created_at: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error: Optional[str] = None
    result: Optional[dict] = None


class TopicStats(BaseModel):
    current_listings: int = 0


class StatsResponse(BaseModel):
    """Store summary for the status endpoint."""
    last_updated: Optional[str] = None
    topics: Dict[str, TopicStats] = {}
