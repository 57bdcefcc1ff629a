from urllib.parse import urlsplit


class InvalidTarget(ValueError):
    """The website URL typed into the launcher can't be scanned."""


def normalize_website_url(raw: str) -> str:
    """
    Turn launcher input into an absolute http(s) URL.

        example.com           -> https://example.com
        http://shop.example/  -> http://shop.example/
    """
    url = (raw or "").strip()
    if not url:
        raise InvalidTarget("Website URL is required")
    if "://" not in url:
        url = f"https://{url}"

    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError as exc:
        raise InvalidTarget("Please enter a valid URL") from exc

    if parts.scheme.lower() not in ("http", "https"):
        raise InvalidTarget("URL must use http or https")
    if not host or " " in url:
        raise InvalidTarget("Please enter a valid URL")
    return url


def domain_of(url: str) -> str:
    """Host part of a URL, without a leading ``www.``."""
    host = urlsplit(url).hostname or ""
    return host[4:] if host.startswith("www.") else host
