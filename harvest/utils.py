"""Utility helpers for the harvest pipeline."""

from __future__ import annotations

import json
import re
from typing import Any
from urllib.parse import urljoin, urlparse


JSON_BLOCK_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
WHITESPACE_RE = re.compile(r"\s+")
NUMBER_RE = re.compile(r"\d+(?:[.,]\d+)?")


def extract_json_object(content: str) -> dict[str, Any]:
    """Extract and parse the first JSON object from a model response.

    Fenced ``json`` blocks win; otherwise the first brace that starts a
    decodable object is used, so surrounding prose is ignored.
    """

    match = JSON_BLOCK_RE.search(content)
    if match:
        try:
            payload = json.loads(match.group(1))
        except json.JSONDecodeError:
            payload = None
        if isinstance(payload, dict):
            return payload

    decoder = json.JSONDecoder()
    start = content.find("{")
    while start != -1:
        try:
            payload, _ = decoder.raw_decode(content, start)
        except json.JSONDecodeError:
            start = content.find("{", start + 1)
            continue
        if isinstance(payload, dict):
            return payload
        start = content.find("{", start + 1)
    raise ValueError("No JSON object found in response")


def collapse_whitespace(value: str | None) -> str:
    """Collapse runs of whitespace and strip the ends."""

    if not value:
        return ""
    return WHITESPACE_RE.sub(" ", value).strip()


def name_key(value: str) -> str:
    """Return the case-insensitive comparison key used for titles and names."""

    return collapse_whitespace(value).casefold()


def parse_float(value: Any) -> float | None:
    """Return the first number found in ``value`` as a float."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = NUMBER_RE.search(str(value))
    if not match:
        return None
    try:
        return float(match.group(0).replace(",", "."))
    except ValueError:
        return None


def parse_int(value: Any) -> int | None:
    """Return the first integer found in ``value``."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    match = re.search(r"\d+", str(value).replace(",", ""))
    if not match:
        return None
    return int(match.group(0))


def absolute_url(href: str | None, base: str) -> str | None:
    """Resolve ``href`` against ``base``; protocol-relative links become https."""

    if not href:
        return None
    href = href.strip()
    if not href or href.startswith(("javascript:", "data:", "#")):
        return None
    if href.startswith("//"):
        return f"https:{href}"
    return urljoin(base, href)


def host_of(url: str) -> str:
    """Return the lower-cased host of ``url`` without a ``www.`` prefix."""

    host = (urlparse(url).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def host_matches(url: str, domains: tuple[str, ...] | list[str]) -> bool:
    """Return whether ``url`` is served by one of ``domains`` or a subdomain."""

    host = host_of(url)
    if not host:
        return False
    return any(host == domain or host.endswith(f".{domain}") for domain in domains)
