"""UTM, click-id and referrer classification.

Pure functions: given a page URL and a referrer, work out where the visit
came from.

Classification precedence:
1. Any UTM field on the URL - attribution comes straight from the UTMs.
2. A referrer on a different host - source/medium from the referrer domain
   (search engines are ``organic``, social networks ``social``, anything
   else ``referral``).
3. Otherwise ``direct``/``direct``.
"""

from dataclasses import dataclass
from urllib.parse import parse_qs, urlparse

from tracklayer.models.base import Clock, iso_from_ms, now_ms
from tracklayer.models.events import Attribution, ClickIds

UTM_FIELDS: tuple[str, ...] = (
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
)

CLICK_ID_PARAMS: tuple[str, ...] = (
    "gclid",  # Google Ads
    "fbclid",  # Meta
    "ttclid",  # TikTok
    "msclkid",  # Microsoft Advertising
)

SOCIAL_PLATFORMS: tuple[tuple[str, str], ...] = (
    ("facebook.com", "facebook"),
    ("fb.com", "facebook"),
    ("twitter.com", "twitter"),
    ("x.com", "twitter"),
    ("t.co", "twitter"),
    ("linkedin.com", "linkedin"),
    ("youtube.com", "youtube"),
    ("youtu.be", "youtube"),
    ("instagram.com", "instagram"),
    ("tiktok.com", "tiktok"),
)

SEARCH_ENGINES: tuple[tuple[str, str], ...] = (
    ("google.com", "google"),
    ("bing.com", "bing"),
    ("yahoo.com", "yahoo"),
    ("duckduckgo.com", "duckduckgo"),
)

SOCIAL_SOURCES = frozenset(name for _, name in SOCIAL_PLATFORMS)
SEARCH_SOURCES = frozenset(name for _, name in SEARCH_ENGINES)


@dataclass
class UTMParams:
    """UTM fields parsed from a URL."""

    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    utm_content: str | None = None

    def has_any(self) -> bool:
        """Check if any UTM field is present."""
        return any(
            [
                self.utm_source,
                self.utm_medium,
                self.utm_campaign,
                self.utm_term,
                self.utm_content,
            ]
        )


def _query_params(url: str) -> dict[str, str]:
    """First value of each query parameter; empty values are dropped."""
    try:
        query = urlparse(url).query
    except ValueError:
        return {}
    return {key: values[0] for key, values in parse_qs(query).items() if values and values[0]}


def _hostname(url: str | None) -> str | None:
    if not url:
        return None
    try:
        return urlparse(url).hostname
    except ValueError:
        return None


def _matches_domain(host: str, domain: str) -> bool:
    """Label-aligned match: ``www.google.com`` and ``google.com.au`` match ``google.com``."""
    return f".{domain}." in f".{host}."


def parse_utm_params(url: str) -> UTMParams:
    """Extract UTM fields from a URL's query string."""
    params = _query_params(url)
    return UTMParams(**{name: params.get(name) for name in UTM_FIELDS})


def extract_click_ids(url: str) -> ClickIds:
    """Extract known ad-platform click identifiers from a URL."""
    params = _query_params(url)
    return ClickIds(**{name: params.get(name) for name in CLICK_ID_PARAMS})


def source_from_referrer(referrer: str | None) -> str:
    """Map a referrer URL to a source name.

    Known platforms get their canonical name; anything else is the bare
    hostname with a leading ``www.`` stripped.
    """
    if not referrer:
        return "direct"

    host = _hostname(referrer)
    if not host:
        return "unknown"
    host = host.lower()

    for domain, name in SOCIAL_PLATFORMS + SEARCH_ENGINES:
        if _matches_domain(host, domain):
            return name

    return host.removeprefix("www.")


def medium_from_referrer(referrer: str | None) -> str:
    """Map a referrer URL to a medium: organic, social or referral."""
    if not referrer:
        return "direct"

    source = source_from_referrer(referrer)
    if source in SEARCH_SOURCES:
        return "organic"
    if source in SOCIAL_SOURCES:
        return "social"
    return "referral"


def is_external_referrer(referrer: str | None, current_url: str) -> bool:
    """Check if the referrer is on a different host than the current page."""
    referrer_host = _hostname(referrer)
    if not referrer_host:
        return False
    return referrer_host != _hostname(current_url)


def create_attribution(
    utm: UTMParams,
    referrer: str | None = None,
    clock: Clock | None = None,
) -> Attribution:
    """Build an attribution record stamped with the current time."""
    timestamp = iso_from_ms((clock or now_ms)())
    return Attribution(
        source=utm.utm_source,
        medium=utm.utm_medium,
        campaign=utm.utm_campaign,
        term=utm.utm_term,
        content=utm.utm_content,
        referrer=referrer or None,
        timestamp=timestamp,
    )


def classify_visit(
    url: str,
    referrer: str | None = None,
    clock: Clock | None = None,
) -> Attribution:
    """Classify a visit into a single attribution record."""
    utm = parse_utm_params(url)
    if utm.has_any():
        return create_attribution(utm, referrer, clock)

    if referrer and is_external_referrer(referrer, url):
        return create_attribution(
            UTMParams(
                utm_source=source_from_referrer(referrer),
                utm_medium=medium_from_referrer(referrer),
            ),
            referrer,
            clock,
        )

    return create_attribution(UTMParams(utm_source="direct", utm_medium="direct"), clock=clock)
