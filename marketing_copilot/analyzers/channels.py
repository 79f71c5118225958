"""
Traffic-source normalisation shared by the attribution analyzers.
"""
from typing import Optional

from marketing_copilot.models.records import AnalyticsSession

CHANNELS = ("google", "meta", "organic_search", "email", "direct", "social_organic", "other")
PAID_CHANNELS = ("google", "meta")

CHANNEL_DISPLAY_NAMES = {
    "google": "Google Ads",
    "meta": "Meta Ads",
    "organic_search": "Organic Search",
    "email": "Email",
    "direct": "Direct",
    "social_organic": "Social (Organic)",
    "other": "Other",
}

_GOOGLE = ("google", "gclid")
_META = ("facebook", "instagram", "fb", "meta", "fbclid")
_ORGANIC_EXACT = ("bing", "yahoo", "duckduckgo", "baidu", "yandex")
_EMAIL = ("email", "newsletter", "klaviyo", "mailchimp", "sendgrid", "drip")
_DIRECT = ("direct", "(direct)", "none", "", "(none)")
_SOCIAL = ("social", "twitter", "linkedin", "tiktok")


def normalize_channel(source: Optional[str]) -> str:
    """Map a raw source / UTM value to a canonical channel name."""
    if source is None:
        return "direct"

    s = source.lower().strip()

    if any(token in s for token in _GOOGLE) or s in ("cpc", "google-ads"):
        return "google"
    if any(token in s for token in _META) or s == "ig":
        return "meta"
    if "organic" in s or s in _ORGANIC_EXACT:
        return "organic_search"
    if any(token in s for token in _EMAIL):
        return "email"
    if s in _DIRECT:
        return "direct"
    if any(token in s for token in _SOCIAL):
        return "social_organic"
    return "other"


def is_paid_channel(channel: str) -> bool:
    return channel in PAID_CHANNELS


def channel_display_name(channel: str) -> str:
    return CHANNEL_DISPLAY_NAMES.get(channel, channel)


def first_touch_channel(session: AnalyticsSession) -> str:
    return normalize_channel(session.first_touch_source or session.utm_source)


def last_touch_channel(session: AnalyticsSession) -> str:
    return normalize_channel(session.last_touch_source or session.utm_source or session.first_touch_source)
