"""
Coarse request classification: device family from User-Agent, traffic
source from Referer. Both are total: any input yields a label.
"""

DESKTOP = "Desktop"
MOBILE = "Mobile"
TABLET = "Tablet"

DIRECT = "Direct"
ORGANIC_SEARCH = "Organic Search"
SOCIAL_MEDIA = "Social Media"
REFERRAL = "Referral"

HANDHELD_MARKERS = ("mobile", "android", "iphone", "ipad", "ipod")
TABLET_MARKERS = ("ipad", "tablet")

SEARCH_ENGINES = ("google", "bing", "yahoo", "duckduckgo", "baidu")
SOCIAL_PLATFORMS = (
    "facebook",
    "twitter",
    "instagram",
    "linkedin",
    "pinterest",
    "reddit",
    "tiktok",
)


def classify_device(ua: str | None) -> str:
    """
    Desktop / Mobile / Tablet. A missing User-Agent counts as Desktop.
    """
    if not ua:
        return DESKTOP
    ua_lower = ua.lower()

    if any(marker in ua_lower for marker in HANDHELD_MARKERS):
        if any(marker in ua_lower for marker in TABLET_MARKERS):
            return TABLET
        return MOBILE
    return DESKTOP


def classify_source(referrer: str | None) -> str:
    """
    Search engines win over social platforms when a referrer mentions both.
    """
    if not referrer:
        return DIRECT
    ref_lower = referrer.lower()

    if any(name in ref_lower for name in SEARCH_ENGINES):
        return ORGANIC_SEARCH
    if any(name in ref_lower for name in SOCIAL_PLATFORMS):
        return SOCIAL_MEDIA
    return REFERRAL
