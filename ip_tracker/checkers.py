"""Monitoring checkers: the external lookups behind each monitoring item type.

Every checker takes a snapshot of a MonitoringItem and returns a
CheckOutcome. The trademark checker talks to the USPTO; the domain,
marketplace and social checkers produce deterministic demo findings until
a registrar, marketplace or social API integration is configured.
"""

import hashlib
import logging
from datetime import datetime, timedelta

import requests

from .api.uspto_client import TrademarkSearchClient
from .matcher import (
    calculate_similarity,
    domain_priority,
    is_domain_suspicious,
    is_listing_suspicious,
    is_post_relevant,
    suggest_similarity_action,
    suggest_trademark_action,
    trademark_priority,
)
from .models import AlertDraft, CheckOutcome, MonitoringItem

logger = logging.getLogger(__name__)

CHECK_INTERVALS = {
    "hourly": timedelta(hours=1),
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
    "monthly": timedelta(days=30),
}


def next_check_at(frequency: str, now: datetime) -> datetime:
    """When the next check is due; unknown frequencies fall back to daily."""
    return now + CHECK_INTERVALS.get(frequency, CHECK_INTERVALS["daily"])


class MonitoringChecker:
    """Base class for checkers. Subclasses implement ``check``.

    The lifecycle stops waiting for a check after its timeout but cannot stop
    the thread running it, so any network call a checker makes needs its own
    timeout (``TrademarkSearchClient`` passes one to every request).
    """

    def check(self, item: MonitoringItem, now: datetime | None = None) -> CheckOutcome:
        raise NotImplementedError

    def _outcome(self, item: MonitoringItem, results, alerts, now: datetime) -> CheckOutcome:
        return CheckOutcome(
            success=True,
            results=results,
            alerts_raised=alerts,
            checked_at=now,
            next_check_at=next_check_at(item.frequency, now),
        )


class TrademarkChecker(MonitoringChecker):
    """Watches the USPTO register for new filings and confusingly similar marks."""

    def __init__(
        self,
        client: TrademarkSearchClient,
        similarity_threshold: float = 0.7,
        lookback_days: int = 30,
    ):
        self.client = client
        self.similarity_threshold = similarity_threshold
        self.lookback_days = lookback_days

    def check(self, item: MonitoringItem, now: datetime | None = None) -> CheckOutcome:
        now = now or datetime.now()
        since = item.last_checked or now - timedelta(days=self.lookback_days)
        results = []
        alerts = []
        errors = []

        for keyword in item.keywords:
            try:
                applications = self.client.monitor_new_applications([keyword], since)
                similar = self.client.find_similar_trademarks(
                    keyword,
                    include_variations=item.include_variations,
                    threshold=self.similarity_threshold,
                )
            except requests.exceptions.RequestException as e:
                logger.error(f"Trademark search failed for keyword '{keyword}': {e}")
                errors.append(f"{keyword}: {e}")
                continue

            for app in applications:
                mark = app.get("markDescription") or ""
                alerts.append(AlertDraft(
                    type="new_application",
                    priority=trademark_priority(keyword, mark),
                    title=f"New Trademark Application: {mark}",
                    description=f"New application filed by {app.get('applicantName') or 'unknown applicant'}",
                    keyword=keyword,
                    data=app,
                    suggested_action=suggest_trademark_action(keyword, mark),
                    detected_at=now,
                ))
                results.append(app)

            for mark in similar:
                similarity = mark.get("similarity") or calculate_similarity(keyword, mark.get("markDescription") or "")
                alerts.append(AlertDraft(
                    type="similar_mark",
                    priority="high" if similarity > 0.9 else "medium",
                    title=f"Similar Trademark Found: {mark.get('markDescription')}",
                    description=f"{round(similarity * 100)}% similar to your brand",
                    keyword=keyword,
                    data=mark,
                    suggested_action=suggest_similarity_action(similarity),
                    detected_at=now,
                ))
                results.append(mark)

        if item.keywords and len(errors) == len(item.keywords):
            return CheckOutcome.failure("Trademark search failed: " + "; ".join(errors))

        return self._outcome(item, results, alerts, now)


def _stable_suffix(*parts: str) -> str:
    return hashlib.sha1("|".join(parts).encode()).hexdigest()[:8]


class DomainChecker(MonitoringChecker):
    """Flags registered domains that reuse or typosquat a keyword."""

    VARIATIONS = ("{k}shop", "{k}-store", "{k}plus", "buy{k}", "{k}online")

    def lookup(self, keyword: str, extensions: list[str], now: datetime) -> list[dict]:
        """Registered domains for a keyword. Override for a real registrar feed."""
        return [
            {
                "name": f"{pattern.format(k=keyword.lower())}{ext}",
                "registrationDate": (now - timedelta(days=1)).date().isoformat(),
                "registrant": "Private Registration",
                "status": "active",
            }
            for pattern in self.VARIATIONS
            for ext in extensions[:2]
        ]

    def check(self, item: MonitoringItem, now: datetime | None = None) -> CheckOutcome:
        now = now or datetime.now()
        results = []
        alerts = []
        for keyword in item.keywords:
            for domain in self.lookup(keyword, item.extensions, now):
                if not is_domain_suspicious(keyword, domain["name"]):
                    continue
                alerts.append(AlertDraft(
                    type="domain_registration",
                    priority=domain_priority(keyword, domain["name"]),
                    title=f"Suspicious Domain Registered: {domain['name']}",
                    description=f"Domain registered on {domain['registrationDate']}",
                    keyword=keyword,
                    data=domain,
                    suggested_action="Review domain and consider action if trademark infringement",
                    detected_at=now,
                ))
                results.append(domain)
        return self._outcome(item, results, alerts, now)


class MarketplaceChecker(MonitoringChecker):
    """Flags marketplace listings that use a keyword in title or description."""

    def lookup(self, keyword: str, platform: str, now: datetime) -> list[dict]:
        """Listings for a keyword on one platform. Override for a real marketplace API."""
        return [
            {
                "id": f"{platform}-{_stable_suffix(keyword, platform, '1')}",
                "title": f"{keyword} Compatible Accessories",
                "description": f"High quality accessories for {keyword} products",
                "price": "$29.99",
                "seller": "TechAccessories123",
                "platform": platform,
                "url": f"https://{platform}.com/listing/123",
            },
            {
                "id": f"{platform}-{_stable_suffix(keyword, platform, '2')}",
                "title": f"Genuine {keyword} Replacement Parts",
                "description": f"Original {keyword} parts and components",
                "price": "$49.99",
                "seller": "PartsSupplier",
                "platform": platform,
                "url": f"https://{platform}.com/listing/456",
            },
        ]

    def check(self, item: MonitoringItem, now: datetime | None = None) -> CheckOutcome:
        now = now or datetime.now()
        results = []
        alerts = []
        for keyword in item.keywords:
            for platform in item.platforms:
                for listing in self.lookup(keyword, platform, now):
                    if not is_listing_suspicious(keyword, listing):
                        continue
                    alerts.append(AlertDraft(
                        type="suspicious_listing",
                        priority="medium",
                        title=f"Suspicious Listing on {platform}: {listing['title']}",
                        description="Potential trademark infringement detected",
                        keyword=keyword,
                        platform=platform,
                        data=listing,
                        suggested_action="Review listing and consider takedown request",
                        detected_at=now,
                    ))
                    results.append(listing)
        return self._outcome(item, results, alerts, now)


class SocialChecker(MonitoringChecker):
    """Reports brand mentions on social platforms; negative ones are high priority."""

    def lookup(self, keyword: str, platform: str, now: datetime) -> list[dict]:
        """Posts mentioning a keyword. Override for a real social API."""
        return [
            {
                "id": f"{platform}-{_stable_suffix(keyword, platform, '1')}",
                "content": f"Just got my new {keyword} product and loving it! #{keyword} #tech",
                "author": "@happycustomer",
                "platform": platform,
                "type": "post",
                "sentiment": "positive",
                "url": f"https://{platform}.com/post/123",
            },
            {
                "id": f"{platform}-{_stable_suffix(keyword, platform, '2')}",
                "content": f"Has anyone had issues with {keyword}? Mine stopped working after a week...",
                "author": "@techreviewer",
                "platform": platform,
                "type": "post",
                "sentiment": "negative",
                "url": f"https://{platform}.com/post/456",
            },
        ]

    def check(self, item: MonitoringItem, now: datetime | None = None) -> CheckOutcome:
        now = now or datetime.now()
        results = []
        alerts = []
        for keyword in item.keywords:
            for platform in item.social_platforms:
                for post in self.lookup(keyword, platform, now):
                    if not is_post_relevant(keyword, post):
                        continue
                    negative = post.get("sentiment") == "negative"
                    alerts.append(AlertDraft(
                        type="brand_mention",
                        priority="high" if negative else "low",
                        title=f"Brand Mention on {platform}",
                        description=f"Your brand was mentioned in a {post.get('type', 'post')}",
                        keyword=keyword,
                        platform=platform,
                        data=post,
                        action_required=negative,
                        suggested_action=(
                            "Consider response to negative mention" if negative else "Monitor for engagement"
                        ),
                        detected_at=now,
                    ))
                    results.append(post)
        return self._outcome(item, results, alerts, now)


class MonitoringDispatcher(MonitoringChecker):
    """Routes each item to the checker registered for its type."""

    def __init__(self, checkers: dict[str, MonitoringChecker]):
        self.checkers = checkers

    def check(self, item: MonitoringItem, now: datetime | None = None) -> CheckOutcome:
        checker = self.checkers.get(item.type)
        if checker is None:
            return CheckOutcome.failure(f"Unsupported monitoring type: {item.type}")
        logger.info(f"Running {item.type} check for '{item.name}'")
        return checker.check(item, now)


def build_default_checker(client: TrademarkSearchClient, similarity_threshold: float = 0.7,
                          lookback_days: int = 30) -> MonitoringDispatcher:
    return MonitoringDispatcher({
        "trademark": TrademarkChecker(client, similarity_threshold, lookback_days),
        "domain": DomainChecker(),
        "marketplace": MarketplaceChecker(),
        "social": SocialChecker(),
    })
