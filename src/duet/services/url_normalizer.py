"""Submission URL validation and scheme normalization."""

import re
from urllib.parse import urlsplit

from duet.errors.exceptions import InvalidInputError

_ALLOWED_SCHEMES = {"http", "https"}
_WHITESPACE = re.compile(r"\s")
_HAS_SCHEME = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def normalize_source_url(raw: str | None) -> str:
    """Return ``raw`` as an absolute http(s) URL.

    Values without a scheme get ``https://`` prepended, so
    ``tiktok.com/@a/video/1`` becomes ``https://tiktok.com/@a/video/1``.

    Raises:
        InvalidInputError: empty input, embedded whitespace, or no usable host.
    """
    value = (raw or "").strip()
    if not value:
        raise InvalidInputError("Please enter a valid URL")
    if _WHITESPACE.search(value):
        raise InvalidInputError("URL must not contain whitespace", {"url": value})

    if not _HAS_SCHEME.match(value):
        value = f"https://{value}"

    try:
        parts = urlsplit(value)
        host = parts.hostname
    except ValueError as exc:
        raise InvalidInputError(f"Could not parse URL: {exc}", {"url": value}) from exc

    if parts.scheme.lower() not in _ALLOWED_SCHEMES:
        raise InvalidInputError("Only http and https URLs are supported", {"url": value})
    if not host or ("." not in host and host != "localhost"):
        raise InvalidInputError("URL is missing a valid host", {"url": value})

    return value
