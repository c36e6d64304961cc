"""Scan cycle orchestration.

One cycle walks the enabled topics in order: fetch the results page, run
change detection, and, if the notification window allows it, send one
message per new listing. State tracking happens on every cycle; only the
notifications depend on the time of day. A failing topic is reported and
skipped without affecting the others.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Tuple

from listingwatch.api.schemas import DecisionResult
from listingwatch.config import AppConfig, DeliveryPolicy, MessageTemplates, ProjectConfig
from listingwatch.db.database import create_store
from listingwatch.db.store import TopicStateStore
from listingwatch.notify.gate import is_eligible, local_hour
from listingwatch.notify.telegram import BaseNotifier, LogNotifier, TelegramNotifier
from listingwatch.pipeline.change_detector import ChangeDetector
from listingwatch.scraper.base_strategy import BaseScrapeStrategy, FetchError
from listingwatch.scraper.http_strategy import HttpListingStrategy

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def build_components(
    config: AppConfig, dry_run: bool = False,
) -> Tuple[TopicStateStore, BaseScrapeStrategy, BaseNotifier]:
    """Create the production store, scraper and notifier for a config."""
    store = create_store(
        config.storage.backend, config.storage.path, config.detection.retention_cap,
    )
    strategy = HttpListingStrategy(config.acquisition)
    if dry_run:
        notifier: BaseNotifier = LogNotifier()
    else:
        credentials = config.credentials
        notifier = TelegramNotifier(credentials.api_token or "", credentials.chat_id or "")
    return store, strategy, notifier


async def deliver_decision(
    notifier: BaseNotifier,
    decision: DecisionResult,
    policy: DeliveryPolicy,
    sleep: Sleep = asyncio.sleep,
) -> int:
    """Send notifications for one topic's decision. Returns messages sent.

    Each new listing gets its own message, up to ``policy.max_per_cycle``,
    followed by a summary of the rest. No new listings means one
    "nothing new" message.
    """
    templates = policy.templates
    topic = decision.topic
    new_urls = decision.new_references

    if not new_urls:
        return int(await notifier.send(templates.nothing_new.format(topic=topic)))

    messages = [
        templates.new_listing.format(topic=topic, url=url)
        for url in new_urls[:policy.max_per_cycle]
    ]
    remaining = len(new_urls) - policy.max_per_cycle
    if remaining > 0:
        messages.append(templates.remainder.format(topic=topic, count=remaining))

    sent = 0
    for i, message in enumerate(messages):
        if i:
            # Stay under the chat rate limit
            await sleep(policy.message_delay_seconds)
        if await notifier.send(message):
            sent += 1

    logger.info("Sent %d notifications for %s", sent, topic)
    return sent


async def send_failure_notice(
    notifier: BaseNotifier, policy: DeliveryPolicy, topic: str, error: Exception,
) -> bool:
    """Tell the chat a topic's scan failed. Never raises."""
    try:
        message = policy.templates.failure.format(topic=topic, error=error)
    except (KeyError, IndexError, ValueError) as e:
        logger.error("Failure template for %s is unusable (%s), sending plain notice", topic, e)
        message = MessageTemplates().failure.format(topic=topic, error=error)
    return await notifier.send(message)


async def _scan_topic(
    project: ProjectConfig,
    detector: ChangeDetector,
    strategy: BaseScrapeStrategy,
    notifier: BaseNotifier,
    policy: DeliveryPolicy,
    eligible: bool,
    sleep: Sleep,
) -> dict:
    observation = await strategy.fetch(project.url)
    decision = await detector.detect(project.topic, observation)

    sent = 0
    if eligible:
        sent = await deliver_decision(notifier, decision, policy, sleep)
    else:
        logger.info(
            "Outside notification window, skipping notifications for %s (%d new)",
            project.topic, len(decision.new_ids),
        )

    return {
        "status": "completed",
        "verdict": decision.verdict.value,
        "persisted": decision.persisted,
        "total": decision.total_count,
        "new": len(decision.new_ids),
        "removed": decision.removed_count,
        "sent": sent,
    }


async def run_cycle(
    config: AppConfig,
    store: TopicStateStore,
    strategy: BaseScrapeStrategy,
    notifier: BaseNotifier,
    now: Optional[datetime] = None,
    manual_override: bool = False,
    topics: Optional[List[str]] = None,
    require_credentials: bool = True,
    sleep: Sleep = asyncio.sleep,
) -> dict:
    """Run one scan over all enabled topics (or the named subset).

    Returns a report with the overall status, whether notifications were
    allowed, and a per-topic result dict. Missing credentials abort the
    cycle before any topic is touched.
    """
    if require_credentials and not config.credentials.complete:
        logger.error("Telegram credentials missing. Set TELEGRAM_API_TOKEN and CHAT_ID")
        return {"status": "aborted", "error": "missing credentials", "eligible": False, "topics": {}}

    now = now or datetime.now(timezone.utc)
    window = config.notification_window
    eligible = is_eligible(now, window, manual_override)
    logger.info(
        "Starting scan at %02d:00 %s, notifications %s%s",
        local_hour(now, window.timezone), window.timezone,
        "enabled" if eligible else "disabled",
        " (manual override)" if manual_override else "",
    )

    detector = ChangeDetector(
        store,
        item_pattern=config.detection.item_pattern,
        min_significant_size=config.detection.min_significant_size,
    )

    projects = config.enabled_projects
    if topics is not None:
        projects = [p for p in projects if p.topic in topics]

    results = {}
    for project in projects:
        logger.info("Processing: %s", project.topic)
        try:
            results[project.topic] = await _scan_topic(
                project, detector, strategy, notifier, config.delivery, eligible, sleep,
            )
        except Exception as e:
            logger.error(
                "%s: failed: %s", project.topic, e, exc_info=not isinstance(e, FetchError),
            )
            results[project.topic] = {"status": "failed", "error": str(e)}
            await send_failure_notice(notifier, config.delivery, project.topic, e)

    logger.info("Scan completed: %s", results)
    return {"status": "completed", "eligible": eligible, "topics": results}
