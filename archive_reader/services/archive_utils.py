"""Archived-URL rewriting and target URL variants."""

import ipaddress
import re
from typing import Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

from archive_reader.config import settings
from archive_reader.services.exceptions import ValidationError

ARCHIVE_ORIGIN = settings.WAYBACK_ORIGIN.rstrip("/")

MODIFIER_IMAGE = "im"
MODIFIER_DIRECT = "id"

ALLOWED_URL_SCHEMES = {"http", "https"}

_TIMESTAMP_RE = re.compile(r"^\d{14}$")
_ARCHIVE_PATH_RE = re.compile(r"/web/(\d{14})([a-z]{2}_)?/")


def _prefix_pattern(origin: str) -> re.Pattern[str]:
    host = re.escape(urlsplit(origin).netloc or origin)
    return re.compile(rf"^https?://{host}/web/\d{{14}}(?:[a-z]{{2}}_)?/")


def is_http_url(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        parsed = urlsplit(value)
    except ValueError:
        return False
    return parsed.scheme.lower() in ALLOWED_URL_SCHEMES and bool(parsed.netloc)


def validate_target_url(raw: Optional[str]) -> str:
    """Return the target URL with its fragment stripped, or raise ValidationError."""
    candidate = (raw or "").strip()
    if not candidate:
        raise ValidationError("Missing url parameter.")
    if not is_http_url(candidate):
        raise ValidationError(
            "Please provide a valid http or https URL.", url=candidate
        )
    parsed = urlsplit(candidate)
    path = parsed.path or "/"
    return urlunsplit((parsed.scheme.lower(), parsed.netloc, path, parsed.query, ""))


def absolutize_url(value: str, base_url: Optional[str]) -> str:
    if not base_url:
        return value
    try:
        return urljoin(base_url, value)
    except ValueError:
        return value


def is_archive_url(url: Optional[str], origin: str = ARCHIVE_ORIGIN) -> bool:
    return bool(url) and url.startswith(f"{origin}/web/")


def build_archive_url(
    url: str,
    timestamp: Optional[str],
    modifier: Optional[str] = None,
    *,
    origin: str = ARCHIVE_ORIGIN,
) -> str:
    """Point ``url`` at its archived copy for ``timestamp``.

    URLs already under the archive keep their own timestamp; only the replay
    modifier is swapped when one is requested.
    """
    if not timestamp:
        return url
    if is_archive_url(url, origin):
        if not modifier:
            return url
        match = _ARCHIVE_PATH_RE.search(url)
        if not match:
            return url
        if match.group(2) == f"{modifier}_":
            return url
        return url.replace(match.group(0), f"/web/{match.group(1)}{modifier}_/", 1)
    suffix = f"{modifier}_" if modifier else ""
    return f"{origin}/web/{timestamp}{suffix}/{url}"


def strip_archive_prefix(url: Optional[str], *, origin: str = ARCHIVE_ORIGIN) -> str:
    if not url:
        return ""
    return _prefix_pattern(origin).sub("", url, count=1)


def rewrite_srcset(
    value: str,
    base_url: Optional[str],
    timestamp: Optional[str],
    modifier: Optional[str] = None,
    *,
    origin: str = ARCHIVE_ORIGIN,
) -> str:
    rewritten: list[str] = []
    for part in value.split(","):
        pieces = part.strip().split()
        if not pieces:
            continue
        absolute = absolutize_url(pieces[0], base_url)
        archived = build_archive_url(absolute, timestamp, modifier, origin=origin)
        rewritten.append(" ".join([archived, *pieces[1:]]))
    return ", ".join(rewritten)


def first_srcset_url(value: Optional[str]) -> str:
    if not value:
        return ""
    first = value.split(",")[0].strip()
    return first.split()[0] if first else ""


def extract_timestamp(
    capture_url: Optional[str], fallback: Optional[str] = None
) -> Optional[str]:
    """Return a 14-digit capture timestamp or None, never a partial value."""
    if fallback and _TIMESTAMP_RE.match(str(fallback)):
        return str(fallback)
    match = _ARCHIVE_PATH_RE.search(capture_url or "")
    return match.group(1) if match else None


def _is_bare_host(hostname: str) -> bool:
    if hostname == "localhost":
        return True
    try:
        ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        return False
    return True


def generate_url_variants(url: str) -> list[str]:
    """Small lexical variants of ``url`` to recover from index mismatches.

    The original URL is always first; only it may trigger a capture request.
    """
    parsed = urlsplit(url)
    hostname = parsed.hostname or ""
    path = parsed.path or "/"

    paths = [path]
    if path != "/":
        paths.append(path[:-1] if path.endswith("/") else f"{path}/")

    netlocs = [parsed.netloc]
    if hostname and not _is_bare_host(hostname):
        if parsed.netloc.lower().startswith("www."):
            netlocs.append(parsed.netloc[4:])
        else:
            netlocs.append(f"www.{parsed.netloc}")

    variants: list[str] = []
    for netloc, candidate_path in (
        (netlocs[0], paths[0]),
        *((netlocs[0], p) for p in paths[1:]),
        *((n, paths[0]) for n in netlocs[1:]),
        *((n, p) for n in netlocs[1:] for p in paths[1:]),
    ):
        variant = urlunsplit(
            (parsed.scheme, netloc, candidate_path, parsed.query, "")
        )
        if variant not in variants:
            variants.append(variant)
    return variants
