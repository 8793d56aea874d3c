"""Stream manifest decoding."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from typing import Optional

log = logging.getLogger(__name__)

_URL_PATTERN = re.compile(r"https?://[\w\-.~:?#\[\]@!$&'()*+,;=%/]+")
_WHITESPACE = re.compile(r"\s+")


def decode_manifest(blob: Optional[str]) -> Optional[str]:
    """Turn a base64 stream manifest into a playable URL.

    Manifests are either JSON carrying a ``urls`` list or opaque text (DASH
    XML, for instance) that embeds the URL somewhere. Returns None when no
    URL can be recovered.
    """
    if not blob or not isinstance(blob, str):
        return None

    try:
        compact = _WHITESPACE.sub("", blob)
        padded = compact + "=" * (-len(compact) % 4)
        decoded = base64.b64decode(padded, validate=True).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError) as err:
        log.debug("Manifest is not valid base64: %s", err)
        return None

    try:
        parsed = json.loads(decoded)
    except ValueError:
        match = _URL_PATTERN.search(decoded)
        return match.group(0) if match else None

    if isinstance(parsed, dict):
        urls = parsed.get("urls")
        if isinstance(urls, list) and urls and isinstance(urls[0], str) and urls[0]:
            return urls[0]
    return None
