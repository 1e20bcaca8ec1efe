import logging
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from racedata.core.config import API_KEY, API_URL

logger = logging.getLogger(__name__)

DAILY_ENDPOINT = "/api/races/daily"


class IngestionClient:
    """
    Submits daily race batches to a running ingestion API.
    Uses requests.Session for connection pooling.
    """

    def __init__(self, base_url: str = API_URL, api_key: Optional[str] = API_KEY, timeout: int = 60):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = self._get_http_session()

    def _get_http_session(self) -> requests.Session:
        """
        Creates a requests Session with a built-in retry strategy.
        POST is retried because ingestion upserts by natural key.
        """
        session = requests.Session()
        retry_strategy = Retry(
            total=3,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "POST"],
            raise_on_status=False
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        if self.api_key:
            session.headers["X-API-Key"] = self.api_key
        return session

    def submit(self, batch: Dict[str, Any]) -> Dict[str, Any]:
        """
        Posts one batch and returns the decoded response body.
        A 400 still carries the statistics and is returned, not raised.
        """
        url = f"{self.base_url}{DAILY_ENDPOINT}"
        logger.info("Submitting %d races to %s", len(batch.get("races", [])), url)
        response = self.session.post(url, json=batch, timeout=self.timeout)
        if response.status_code == 400:
            return response.json()
        response.raise_for_status()
        return response.json()

    def health(self) -> Dict[str, Any]:
        response = self.session.get(f"{self.base_url}/", timeout=self.timeout)
        response.raise_for_status()
        return response.json()
