"""Submission analytics.

Pure domain functions: request metadata enrichment at intake, and the
per-form statistics computed over stored submissions. No I/O.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from formrelay.domain.clock import as_utc

META_KEY = "_meta"
UNKNOWN = "Unknown"

# Order matters: Edge and Opera user agents also advertise Chrome and Safari.
_BROWSER_MARKERS: list[tuple[str, str]] = [
    ("Edg", "Edge"),
    ("OPR", "Opera"),
    ("Opera", "Opera"),
    ("SamsungBrowser", "Samsung Internet"),
    ("Firefox", "Firefox"),
    ("FxiOS", "Firefox"),
    ("CriOS", "Chrome"),
    ("Chrome", "Chrome"),
    ("Safari", "Safari"),
]

_OS_MARKERS: list[tuple[str, str]] = [
    ("Windows", "Windows"),
    ("iPhone", "iOS"),
    ("iPad", "iOS"),
    ("Android", "Android"),
    ("Mac OS X", "macOS"),
    ("Macintosh", "macOS"),
    ("CrOS", "ChromeOS"),
    ("Linux", "Linux"),
]


@dataclass(frozen=True)
class RequestMetadata:
    """Request headers the enricher reads."""

    user_agent: str | None = None
    country: str | None = None
    accept_language: str | None = None
    forwarded_for: str | None = None

    @classmethod
    def from_headers(cls, headers) -> "RequestMetadata":
        return cls(
            user_agent=headers.get("user-agent"),
            country=headers.get("cf-ipcountry"),
            accept_language=headers.get("accept-language"),
            forwarded_for=headers.get("x-forwarded-for"),
        )


def detect_browser(user_agent: str | None) -> str:
    if not user_agent:
        return UNKNOWN
    for marker, name in _BROWSER_MARKERS:
        if marker in user_agent:
            return name
    return UNKNOWN


def detect_os(user_agent: str | None) -> str | None:
    if not user_agent:
        return None
    for marker, name in _OS_MARKERS:
        if marker in user_agent:
            return name
    return None


def primary_language(accept_language: str | None) -> str | None:
    """First language tag of an Accept-Language header, without its q-value."""
    if not accept_language:
        return None
    first = accept_language.split(",")[0].split(";")[0].strip()
    return first or None


def normalize_country(country: str | None) -> str:
    # Cloudflare sends XX for unknown and T1 for Tor exit nodes
    if not country:
        return UNKNOWN
    code = country.strip().upper()
    if not code or code in ("XX", "T1"):
        return UNKNOWN
    return code


def client_ip(forwarded_for: str | None) -> str | None:
    if not forwarded_for:
        return None
    first = forwarded_for.split(",")[0].strip()
    return first or None


def enrich(raw_data: dict[str, Any], request: RequestMetadata) -> dict[str, Any]:
    """Return a copy of ``raw_data`` with derived analytics under ``_meta``.

    Original keys pass through untouched; the caller must reject payloads
    that already carry ``_meta``.

    Raises:
        ValueError: if ``raw_data`` already contains the reserved key.
    """
    if META_KEY in raw_data:
        raise ValueError(f"'{META_KEY}' is a reserved submission key")

    meta: dict[str, Any] = {
        "browser": detect_browser(request.user_agent),
        "country": normalize_country(request.country),
    }
    os_name = detect_os(request.user_agent)
    if os_name:
        meta["os"] = os_name
    language = primary_language(request.accept_language)
    if language:
        meta["language"] = language
    ip = client_ip(request.forwarded_for)
    if ip:
        meta["ip"] = ip

    enriched = dict(raw_data)
    enriched[META_KEY] = meta
    return enriched


def strip_meta(data: dict[str, Any] | None) -> dict[str, Any]:
    """Submitter-provided fields only."""
    return {k: v for k, v in (data or {}).items() if k != META_KEY}


def analytics_summary(data: dict[str, Any] | None) -> dict[str, str]:
    meta = (data or {}).get(META_KEY) or {}
    return {
        "browser": meta.get("browser") or UNKNOWN,
        "location": meta.get("country") or UNKNOWN,
    }


# ---------------------------------------------------------------------------
# Per-form statistics
# ---------------------------------------------------------------------------

TimeRange = Literal["day", "week", "month"]

_DEFAULT_GAP = timedelta(minutes=2, seconds=30)
_MAX_GAP = timedelta(hours=24)
_DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def _time_series(created: list[datetime], now: datetime, time_range: TimeRange) -> list[dict]:
    points = []
    if time_range == "day":
        start = now.replace(minute=0, second=0, microsecond=0) - timedelta(hours=23)
        for i in range(24):
            lo = start + timedelta(hours=i)
            hi = lo + timedelta(hours=1)
            points.append({
                "time": f"{lo.hour}:00",
                "submissions": sum(1 for c in created if lo <= c < hi),
            })
        return points

    days = 7 if time_range == "week" else 30
    start = now.replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(days=days - 1)
    for i in range(days):
        lo = start + timedelta(days=i)
        hi = lo + timedelta(days=1)
        label = _DAY_NAMES[lo.weekday()] if time_range == "week" else f"{lo.month}/{lo.day}"
        points.append({"time": label, "submissions": sum(1 for c in created if lo <= c < hi)})
    return points


def summarize_submissions(
    submissions: list[tuple[datetime, dict[str, Any] | None]],
    form_created_at: datetime,
    time_range: TimeRange = "day",
    now: datetime | None = None,
) -> dict[str, Any]:
    """Compute dashboard statistics for one form.

    Args:
        submissions: (created_at, data) pairs in any order.
        form_created_at: creation time of the form, for the daily rate.
        time_range: bucket layout of the time series.
        now: current time (for deterministic testing).
    """
    now = as_utc(now or datetime.now(UTC))
    created = sorted(as_utc(c) for c, _ in submissions)
    total = len(created)

    days_alive = max(1.0, (now - as_utc(form_created_at)).total_seconds() / 86400)

    one_week_ago = now - timedelta(days=7)
    two_weeks_ago = now - timedelta(days=14)
    last_week = sum(1 for c in created if c >= one_week_ago)
    previous_week = sum(1 for c in created if two_weeks_ago <= c < one_week_ago)
    if previous_week == 0:
        growth = 1.0 if last_week > 0 else 0.0
    else:
        growth = (last_week - previous_week) / previous_week

    last_24h = sum(1 for c in created if c >= now - timedelta(days=1))

    hour_counts = Counter(c.hour for c in created)
    peak_hour = max(sorted(hour_counts), key=lambda h: hour_counts[h]) if hour_counts else 0

    abandoned = sum(1 for _, data in submissions if (data or {}).get("isAbandoned") is True)
    completion_rate = (total - abandoned) / total if total else 0.9

    gaps = [b - a for a, b in zip(created, created[1:]) if b - a <= _MAX_GAP]
    avg_gap = sum(gaps, timedelta()) / len(gaps) if gaps else _DEFAULT_GAP

    series = _time_series(created, now, time_range)

    browsers: Counter[str] = Counter()
    locations: Counter[str] = Counter()
    for _, data in submissions:
        summary = analytics_summary(data)
        browsers[summary["browser"]] += 1
        locations[summary["location"]] += 1

    return {
        "total_submissions": total,
        "daily_submission_rate": total / days_alive,
        "week_over_week_growth": growth,
        "last_24_hours_submissions": last_24h,
        "engagement_score": min(10.0, total / 10),
        "peak_submission_hour": peak_hour,
        "completion_rate": completion_rate,
        "average_response_time": round(avg_gap.total_seconds() / 60, 1),
        "time_series": series,
        "latest_data_point": series[-1] if series else {"time": "", "submissions": 0},
        "time_range": time_range,
        "browser_stats": [{"name": k, "value": v} for k, v in browsers.most_common()],
        "location_stats": [{"name": k, "value": v} for k, v in locations.most_common()],
    }
