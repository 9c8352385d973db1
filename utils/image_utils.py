"""
Image URL helpers.

Used when comparing supplier images against downstream images, where the
same image often comes back with a different host casing or a cache-busting
query string.
"""

from typing import Any, Optional
from urllib.parse import urlsplit, urlunsplit
import json


IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif", ".svg")


def clean_image_url(url: Optional[str]) -> Optional[str]:
    """
    Normalize an image URL for comparison.

    Scheme and host are lowercased, protocol-relative URLs get https,
    query string and fragment are dropped.

    Examples:
        "HTTPS://CDN.Example.com/a/B.jpg?v=123" -> "https://cdn.example.com/a/B.jpg"
        "//cdn.example.com/x.png" -> "https://cdn.example.com/x.png"
    """
    if not url:
        return None

    url = url.strip()
    if url.startswith("//"):
        url = "https:" + url

    parts = urlsplit(url)
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, "", ""))


def is_valid_image_url(url: Optional[str]) -> bool:
    """Absolute http(s) URL whose path ends in a known image extension."""
    if not url:
        return False

    parts = urlsplit(url.strip())
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        return False

    return parts.path.lower().endswith(IMAGE_EXTENSIONS)


def parse_json_value(value: Any) -> Any:
    """
    Stored image fields are JSON columns but older rows hold JSON strings.

    Returns the decoded value, or the value unchanged if it is not a JSON string.
    """
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def first_image_url(images: Any) -> Optional[str]:
    """URL of the first image in a stored image list."""
    images = parse_json_value(images)
    if not isinstance(images, list) or not images:
        return None

    first = images[0]
    if isinstance(first, dict):
        return first.get("url") or first.get("src")
    if isinstance(first, str):
        return first
    return None


def image_src(image: Any) -> Optional[str]:
    """src of a stored single-image object."""
    image = parse_json_value(image)
    if isinstance(image, dict):
        return image.get("src") or image.get("url")
    return None
