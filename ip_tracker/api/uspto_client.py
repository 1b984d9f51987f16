"""USPTO trademark search and TSDR status client for brand monitoring."""

import json
import logging
import time
from datetime import date, datetime

import requests

from ..matcher import calculate_similarity, generate_mark_variations
from ..models import parse_date

logger = logging.getLogger(__name__)

SEARCH_FIELDS = (
    "serialNumber,registrationNumber,markDrawingCode,typeOfMark,markDescription,"
    "goodsAndServices,applicantName,applicationDate,registrationDate,statusCode,statusDate"
)


class TrademarkSearchClient:
    """Client for the USPTO trademark search and TSDR case status APIs.

    Search results come back Solr-style, with every field wrapped in a
    single-element list; they are flattened into plain dicts keyed the same
    way the monitoring alerts store them.
    """

    SEARCH_URL = "https://tmsearch.uspto.gov/search/v1.0"
    STATUS_URL = "https://tsdrapi.uspto.gov/ts/cd"
    SEARCH_ENDPOINT = "/trademark/search"

    def __init__(
        self,
        api_key: str = "",
        rate_limit: int = 60,
        timeout: int = 30,
        max_retries: int = 3,
        search_url: str | None = None,
        status_url: str | None = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.search_url = (search_url or self.SEARCH_URL).rstrip("/")
        self.status_url = (status_url or self.STATUS_URL).rstrip("/")
        self.min_interval = 60.0 / rate_limit  # seconds between requests
        self._last_request_time = 0.0
        self.session = requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": "IPTracker-BrandMonitoring/1.0",
        })
        if api_key:
            self.session.headers["USPTO-API-KEY"] = api_key

    def _rate_limit(self):
        """Enforce rate limiting between requests."""
        elapsed = time.time() - self._last_request_time
        if elapsed < self.min_interval:
            time.sleep(self.min_interval - elapsed)
        self._last_request_time = time.time()

    def _request(self, method: str, url: str, **kwargs) -> dict:
        """Make an API request with retry logic."""
        for attempt in range(1, self.max_retries + 1):
            self._rate_limit()
            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)

                if response.status_code == 429:
                    wait = min(2 ** attempt * 5, 60)
                    logger.warning(f"Rate limited (429). Waiting {wait}s before retry {attempt}/{self.max_retries}")
                    time.sleep(wait)
                    continue

                # 404 means no results found
                if response.status_code == 404:
                    return {}

                response.raise_for_status()
                return response.json()

            except requests.exceptions.Timeout:
                logger.warning(f"Request timeout (attempt {attempt}/{self.max_retries})")
                if attempt == self.max_retries:
                    raise
                time.sleep(2 ** attempt)

            except requests.exceptions.HTTPError:
                if response.status_code >= 500 and attempt < self.max_retries:
                    logger.warning(f"Server error {response.status_code} (attempt {attempt}/{self.max_retries})")
                    time.sleep(2 ** attempt)
                    continue
                raise

        return {}

    def search_trademarks(
        self,
        keyword: str,
        rows: int = 50,
        start: int = 0,
        sort: str = "score desc",
    ) -> list[dict]:
        """Search trademark applications and registrations by keyword.

        Args:
            keyword: Mark text to search for.
            rows: Maximum number of results.
            start: Result offset.
            sort: Solr sort expression, e.g. "applicationDate desc".

        Returns:
            List of flattened trademark records.
        """
        logger.info(f"Searching USPTO trademarks: keyword='{keyword}', rows={rows}")
        data = self._request("GET", f"{self.search_url}{self.SEARCH_ENDPOINT}", params={
            "q": keyword,
            "f": "json",
            "s": start,
            "rows": rows,
            "sort": sort,
            "fl": SEARCH_FIELDS,
        })
        docs = (data.get("response") or {}).get("docs") or []
        results = []
        for doc in docs:
            record = self._parse_search_doc(doc)
            if record:
                results.append(record)
        return results

    def get_trademark_details(self, serial_number: str) -> dict | None:
        """Fetch the TSDR case status for one serial number."""
        data = self._request(
            "GET",
            f"{self.status_url}/casestatus/sn{serial_number}/info",
            params={"format": "json"},
        )
        if not data:
            return None
        return self._parse_status(data)

    def monitor_new_applications(self, keywords: list[str], since: datetime | date) -> list[dict]:
        """Applications matching any keyword filed after ``since``."""
        since_date = since.date() if isinstance(since, datetime) else since
        applications = []
        for keyword in keywords:
            results = self.search_trademarks(keyword, rows=20, sort="applicationDate desc")
            for app in results:
                filed = app.get("applicationDate")
                if filed and filed > since_date:
                    applications.append(app)
        return remove_duplicates(applications, "serialNumber")

    def find_similar_trademarks(
        self,
        mark: str,
        include_variations: bool = True,
        threshold: float = 0.7,
    ) -> list[dict]:
        """Marks similar to (but not identical with) ``mark``.

        Each returned record carries its ``similarity`` ratio.
        """
        queries = generate_mark_variations(mark) if include_variations else [mark]
        similar = []
        for query in queries:
            for record in self.search_trademarks(query, rows=10):
                description = record.get("markDescription") or ""
                if description == mark:
                    continue
                similarity = calculate_similarity(mark, description)
                if similarity > threshold:
                    similar.append({**record, "similarity": similarity})
        return remove_duplicates(similar, "serialNumber")

    def check_status_changes(self, known: list[dict]) -> list[dict]:
        """Compare known applications against their current TSDR status.

        Args:
            known: Dicts with ``serialNumber`` and ``lastKnownStatus``.

        Returns:
            Current details for each application whose status changed.
        """
        changes = []
        for app in known:
            try:
                current = self.get_trademark_details(app["serialNumber"])
            except requests.exceptions.RequestException as e:
                logger.error(f"Status check failed for {app['serialNumber']}: {e}")
                continue
            if current and current.get("status") != app.get("lastKnownStatus"):
                changes.append({
                    **current,
                    "previousStatus": app.get("lastKnownStatus"),
                    "changeDetected": datetime.now().isoformat(),
                })
        return changes

    def _parse_search_doc(self, doc: dict) -> dict | None:
        """Flatten a Solr search document; returns None when unusable."""
        try:
            def first(key):
                value = doc.get(key)
                if isinstance(value, list):
                    return value[0] if value else None
                return value

            serial = first("serialNumber")
            if not serial:
                return None

            return {
                "serialNumber": str(serial),
                "registrationNumber": first("registrationNumber"),
                "markDescription": first("markDescription") or "N/A",
                "applicantName": first("applicantName"),
                "applicationDate": parse_date(first("applicationDate")),
                "registrationDate": parse_date(first("registrationDate")),
                "status": first("statusCode"),
                "statusDate": parse_date(first("statusDate")),
                "markType": first("typeOfMark"),
                "goodsAndServices": first("goodsAndServices"),
                "drawingCode": first("markDrawingCode"),
            }
        except Exception as e:
            logger.error(f"Failed to parse trademark data: {e}")
            logger.debug(f"Raw data: {json.dumps(doc, default=str)[:500]}")
            return None

    def _parse_status(self, data: dict) -> dict:
        trademark = data.get("trademark") or {}
        applicant = (trademark.get("applicant") or [{}])[0]
        prosecution = (trademark.get("prosecution") or [{}])[0]
        return {
            "serialNumber": trademark.get("serialNumber"),
            "registrationNumber": trademark.get("registrationNumber"),
            "markDescription": trademark.get("markDescription"),
            "applicantName": applicant.get("applicantName"),
            "applicationDate": trademark.get("applicationDate"),
            "registrationDate": trademark.get("registrationDate"),
            "status": prosecution.get("statusCode"),
            "statusDescription": prosecution.get("statusDescription"),
            "statusDate": prosecution.get("statusDate"),
            "markType": trademark.get("typeOfMark"),
            "goodsAndServices": trademark.get("goodsAndServices"),
            "events": trademark.get("prosecutionEvent") or [],
        }


def remove_duplicates(records: list[dict], key: str) -> list[dict]:
    """Keep the first record for each value of ``key``."""
    seen = set()
    unique = []
    for record in records:
        value = record.get(key)
        if value in seen:
            continue
        seen.add(value)
        unique.append(record)
    return unique
