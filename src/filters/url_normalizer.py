# src/filters/url_normalizer.py

"""Canonical item identifiers derived from product URLs."""

import re
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

# Campaign / session params that vary between shares of the same product
_TRACKING_PARAMS: frozenset[str] = frozenset({
    "gclid", "fbclid", "msclkid", "ref", "ref_",
    "mpshopid", "mpofferid", "cq_src", "cq_cmp",
    "cq_con", "cq_term", "cq_med", "cq_plac", "cq_net",
})

_TRACKING_PREFIXES: tuple[str, ...] = ("utm_",)

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def _is_tracking(param: str) -> bool:
    lowered = param.lower()
    return lowered in _TRACKING_PARAMS or lowered.startswith(
        _TRACKING_PREFIXES
    )


def normalize_item_id(raw: str) -> str:
    """Strip tracking params and cosmetic noise to get a stable item id.

    Scheme and host are lowercased, the fragment and any trailing slash on
    the path are dropped.  Strings that are not URLs are only trimmed.
    """
    raw = raw.strip()
    if not _SCHEME_RE.match(raw):
        return raw

    parsed = urlparse(raw)
    params = parse_qs(parsed.query, keep_blank_values=True)
    cleaned = {
        k: v for k, v in sorted(params.items())
        if not _is_tracking(k)
    }
    new_query = urlencode(cleaned, doseq=True) if cleaned else ""
    path = parsed.path.rstrip("/") or "/"
    return urlunparse((
        parsed.scheme.lower(),
        parsed.netloc.lower(),
        path,
        parsed.params,
        new_query,
        "",
    ))


def is_item_url(text: str, host: str) -> bool:
    """Return True if *text* is an http(s) URL on *host* or a subdomain."""
    parsed = urlparse(text.strip())
    if parsed.scheme not in ("http", "https"):
        return False
    netloc = parsed.hostname or ""
    return netloc == host or netloc.endswith(f".{host}")
