# src/scrapers/base_scraper.py

"""Abstract base class for storefront scrapers."""

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any

import cloudscraper  # type: ignore[import-untyped]
from bs4 import BeautifulSoup
from curl_cffi import requests as curl_requests

from src.config.settings import Settings

_NUMBER_RE = re.compile(r"\d[\d\s.,]*")
_DECIMAL_TAIL_RE = re.compile(r"[.,]\d{1,2}$")


def parse_price(text: str | None) -> Decimal | None:
    """Extract a price from text like ``'1 299,99 zł'`` or ``'AED 1,299.00'``.

    The last ``.`` or ``,`` followed by one or two digits is the decimal
    separator; every other separator or space is a thousands mark.
    Returns ``None`` when no number is present.
    """
    if not text:
        return None
    match = _NUMBER_RE.search(text)
    if not match:
        return None
    raw = re.sub(r"\s", "", match.group(0)).rstrip(".,")
    tail = _DECIMAL_TAIL_RE.search(raw)
    if tail:
        whole = re.sub(r"[.,]", "", raw[: tail.start()])
        normalised = f"{whole}.{tail.group(0)[1:]}"
    else:
        normalised = re.sub(r"[.,]", "", raw)
    try:
        return Decimal(normalised)
    except InvalidOperation:
        return None


class BaseScraper(ABC):
    """Abstract base class for storefront scrapers."""

    # Cloudflare challenge page markers (checked before keyword scan)
    _CF_CHALLENGE_MARKERS: list[str] = [
        "challenges.cloudflare.com",
        "cdn-cgi/challenge-platform",
        "just a moment",
        "cf-turnstile",
        "cf_chl_opt",
    ]

    def __init__(self, source_name: str) -> None:
        self.source_name = source_name
        self.logger = logging.getLogger(
            f"price_tracker.{source_name}"
        )
        self.settings = Settings()
        self.selectors: dict[str, str] = self._load_selectors()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self._current_delay: float = self.settings.REQUEST_DELAY
        self._consecutive_failures: int = 0
        self._circuit_open: bool = False
        self._circuit_opened_at: float = 0.0
        self._request_timeout: int = self.settings.REQUEST_TIMEOUT

    def _load_selectors(self) -> dict[str, str]:
        """Load CSS selectors for this source from selectors.json."""
        with open(self.settings.SELECTORS_PATH, encoding="utf-8") as f:
            all_selectors: dict[str, Any] = json.load(f)
        result: dict[str, str] = all_selectors.get(
            self.source_name, {}
        )
        return result

    def _validate_response(
        self, resp: curl_requests.Response,
    ) -> bool:
        """Check for Cloudflare challenge pages and CAPTCHA indicators."""
        text = resp.text
        lower = text.lower()

        for marker in self._CF_CHALLENGE_MARKERS:
            if marker in lower:
                self.logger.warning(
                    "[%s] Cloudflare challenge detected "
                    "(marker: '%s')",
                    self.source_name,
                    marker,
                )
                return False

        # Skip the keyword scan on pages with real content to avoid
        # false positives from product descriptions
        has_body_content = "<body" in lower and len(text) > 5000
        if not has_body_content:
            for keyword in self.settings.CAPTCHA_KEYWORDS:
                if keyword in lower:
                    self.logger.warning(
                        "[%s] CAPTCHA keyword '%s' detected",
                        self.source_name,
                        keyword,
                    )
                    return False
        return True

    def _check_circuit(self) -> bool:
        """Return True if the circuit breaker blocks this request.

        After CIRCUIT_BREAKER_COOLDOWN seconds the breaker enters
        a half-open state, allowing a single probe request through.
        """
        if not self._circuit_open:
            return False
        elapsed = time.time() - self._circuit_opened_at
        if elapsed >= self.settings.CIRCUIT_BREAKER_COOLDOWN:
            self.logger.info(
                "[%s] Circuit breaker half-open after %.0fs",
                self.source_name,
                elapsed,
            )
            self._circuit_open = False
            return False
        return True

    def _record_success(self) -> None:
        """Reset failure counters after a successful fetch."""
        self._consecutive_failures = 0
        self._circuit_open = False
        self._circuit_opened_at = 0.0
        self._current_delay = self.settings.REQUEST_DELAY

    def _record_failure(self) -> None:
        """Track failure and open circuit breaker if needed."""
        self._consecutive_failures += 1
        if (
            self._consecutive_failures
            >= self.settings.CIRCUIT_BREAKER_THRESHOLD
        ):
            self._circuit_open = True
            self._circuit_opened_at = time.time()
            self.logger.error(
                "[%s] Circuit breaker opened after %d "
                "consecutive failures",
                self.source_name,
                self._consecutive_failures,
            )

    def _escalate_delay(self) -> None:
        """Double the current delay up to the configured max."""
        max_delay = (
            self.settings.REQUEST_DELAY
            * self.settings.MAX_DELAY_MULTIPLIER
        )
        self._current_delay = min(self._current_delay * 2, max_delay)
        self.logger.warning(
            "[%s] Rate-limited, delay escalated to %.1fs",
            self.source_name,
            self._current_delay,
        )

    def _remaining(self, deadline: float | None) -> float | None:
        """Seconds left before *deadline*, or None when unbounded."""
        if deadline is None:
            return None
        return deadline - time.monotonic()

    def _pause(self, seconds: float, deadline: float | None) -> None:
        """Sleep for *seconds*, never past *deadline*."""
        remaining = self._remaining(deadline)
        if remaining is not None:
            seconds = min(seconds, max(remaining, 0.0))
        time.sleep(seconds)

    def _fetch_get(
        self,
        url: str,
        headers: dict[str, str],
        deadline: float | None = None,
    ) -> curl_requests.Response | None:
        """GET with retries, adaptive delay, and circuit breaker.

        With a *deadline* (``time.monotonic()`` value) no attempt starts
        after it and each request's timeout is cut to the time left.
        """
        if self._check_circuit():
            return None
        for attempt in range(self.settings.MAX_RETRIES):
            remaining = self._remaining(deadline)
            if remaining is not None and remaining <= 0:
                self.logger.warning(
                    "[%s] Budget exhausted before attempt %d for %s",
                    self.source_name,
                    attempt + 1,
                    url,
                )
                break
            timeout: float = self._request_timeout
            if remaining is not None:
                timeout = min(timeout, remaining)
            try:
                resp = self.session.get(
                    url,
                    headers=headers,
                    timeout=timeout,
                )
                if resp.status_code == 200:
                    if not self._validate_response(resp):
                        self._escalate_delay()
                        self._pause(self._current_delay, deadline)
                        continue
                    self._record_success()
                    return resp
                self.logger.warning(
                    "[%s] HTTP %d on attempt %d",
                    self.source_name,
                    resp.status_code,
                    attempt + 1,
                )
                if resp.status_code == 404:
                    break
                if resp.status_code in (429, 403):
                    self._escalate_delay()
                    self._pause(self._current_delay, deadline)
            except Exception as exc:
                self.logger.warning(
                    "[%s] Request error on attempt %d: %s",
                    self.source_name,
                    attempt + 1,
                    exc,
                    exc_info=True,
                )
                self._pause(self._current_delay * (attempt + 1), deadline)
        self._record_failure()
        return None

    def _get_page(
        self, url: str, budget: float | None = None,
    ) -> BeautifulSoup | None:
        """Fetch a page, falling back to cloudscraper on failure.

        *budget* caps the whole call, fallback included, in seconds.
        """
        if self._check_circuit():
            self.logger.warning(
                "[%s] Circuit open, skipping %s", self.source_name, url,
            )
            return None
        deadline = None if budget is None else time.monotonic() + budget
        headers: dict[str, str] = {
            **self.settings.DEFAULT_HEADERS,
            "Referer": self._get_homepage(),
        }

        # Primary: curl_cffi (browser-impersonating TLS)
        resp = self._fetch_get(url, headers, deadline)
        if resp:
            return BeautifulSoup(resp.text, "lxml")

        remaining = self._remaining(deadline)
        if remaining is not None and remaining <= 0:
            self.logger.warning(
                "[%s] No budget left for cloudscraper on %s",
                self.source_name,
                url,
            )
            return None

        # Fallback: cloudscraper (JS challenge solver)
        self.logger.info(
            "[%s] curl_cffi exhausted, falling back to cloudscraper",
            self.source_name,
        )
        try:
            _cs: Any = cloudscraper
            scraper: Any = _cs.create_scraper()
            fallback_resp: Any = scraper.get(
                url,
                headers=headers,
                timeout=(
                    self._request_timeout
                    if remaining is None
                    else min(self._request_timeout, remaining)
                ),
            )
            if fallback_resp.status_code == 200:
                return BeautifulSoup(str(fallback_resp.text), "lxml")
        except Exception as e:
            self.logger.error(
                "[%s] cloudscraper fallback also failed: %s",
                self.source_name,
                e,
                exc_info=True,
            )

        return None

    @abstractmethod
    def _get_homepage(self) -> str:
        """Return the homepage URL for the Referer header."""
        ...
