#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import os
import re
import sys
import json
import logging
import urllib.parse
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

import requests
from pathlib import Path
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

T = TypeVar("T")

# =========================
# Consts
# =========================
UA = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"

DEFAULT_TRACK_URL = "http://hypem.com/track"
DEFAULT_GO_URL = "http://hypem.com/go/sc"
DEFAULT_SERVE_URL = "http://hypem.com/serve/source"
DEFAULT_PREFERRED_HOST = "soundcloud.com"
DEFAULT_NOT_FOUND_PATH = "/not/found"
DEFAULT_TIMEOUT = 20.0

DISPLAY_LIST_START = '<script type="application/json" id="displayList-data">'
DISPLAY_LIST_END = '<script type="text/javascript">'
SCRIPT_CLOSE = "</script>"

# Outcome reasons
OK = "ok"
NOT_FOUND = "not_found"
HTTP_ERROR = "http_error"
TRANSPORT_ERROR = "transport_error"
PARSE_ERROR = "parse_error"
MISSING = "missing"

# =========================
# Models
# =========================
@dataclass(frozen=True)
class HypemConfig:
    auth_cookie: str = ""
    track_url: str = DEFAULT_TRACK_URL
    go_url: str = DEFAULT_GO_URL
    serve_url: str = DEFAULT_SERVE_URL
    preferred_host: str = DEFAULT_PREFERRED_HOST
    not_found_path: str = DEFAULT_NOT_FOUND_PATH
    timeout: float = DEFAULT_TIMEOUT
    user_agent: str = UA

    @property
    def track_prefix(self) -> str:
        return self.track_url.rstrip("/") + "/"


@dataclass(frozen=True)
class ResolvedLocation:
    url: str
    host: str
    path: str

    @classmethod
    def from_url(cls, url: str) -> "ResolvedLocation":
        up = urllib.parse.urlparse(url)
        return cls(url=url, host=(up.hostname or "").lower(), path=up.path or "")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of one pipeline step: a value, or the reason there is none."""
    value: Optional[T] = None
    reason: str = OK
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.reason == OK and self.value is not None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, reason: str, detail: str = "") -> "Outcome[T]":
        return cls(reason=reason, detail=detail)

# =========================
# Config
# =========================
def _env(name: str, default: str = "") -> str:
    v = (os.getenv(name) or "").strip().strip('"').strip("'")
    return v or default

def load_config(env_file: Optional[Path] = None) -> HypemConfig:
    """
    Builds a config from the environment (and a .env file, default: next to this module).
    Call it again to pick up a rotated cookie.
    """
    load_dotenv(env_file or Path(__file__).with_name(".env"))
    raw_timeout = _env("HYPEM_TIMEOUT", str(DEFAULT_TIMEOUT))
    try:
        timeout = float(raw_timeout)
    except ValueError:
        raise ValueError(f"HYPEM_TIMEOUT must be a number of seconds, got {raw_timeout!r}")
    return HypemConfig(
        auth_cookie=_env("HYPEM_AUTH_COOKIE"),
        track_url=_env("HYPEM_TRACK_URL", DEFAULT_TRACK_URL),
        go_url=_env("HYPEM_GO_URL", DEFAULT_GO_URL),
        serve_url=_env("HYPEM_SERVE_URL", DEFAULT_SERVE_URL),
        preferred_host=_env("HYPEM_PREFERRED_HOST", DEFAULT_PREFERRED_HOST).lower(),
        not_found_path=_env("HYPEM_NOT_FOUND_PATH", DEFAULT_NOT_FOUND_PATH),
        timeout=timeout,
    )

# =========================
# Helpers
# =========================
def _endpoint(base: str, *parts: str) -> str:
    return "/".join([base.rstrip("/")] + [urllib.parse.quote(p, safe="") for p in parts])

def _headers(config: HypemConfig, auth: bool = False) -> dict:
    headers = {"User-Agent": config.user_agent}
    if auth:
        headers["Cookie"] = config.auth_cookie
    return headers

def _status_failure(r: requests.Response) -> Outcome:
    reason = NOT_FOUND if r.status_code == 404 else HTTP_ERROR
    return Outcome.failure(reason, f"HTTP {r.status_code}")

def _is_absolute_url(url: str) -> bool:
    try:
        up = urllib.parse.urlparse(url)
    except ValueError:
        return False
    return bool(up.scheme and up.netloc)

# =========================
# Identifier extractor
# =========================
def extract_hypem_id(hypem_track_url: Optional[str], config: Optional[HypemConfig] = None) -> str:
    """
    http://hypem.com/track/2c87x/Some+Title -> "2c87x". Anything else -> "".
    """
    config = config or HypemConfig()
    url = (hypem_track_url or "").strip()
    if not url.startswith(config.track_prefix):
        return ""
    # first path segment after the track base, query and fragment dropped
    segment = re.split(r"[/?#]", url[len(config.track_prefix):], maxsplit=1)[0]
    return urllib.parse.unquote(segment)

# =========================
# Redirect resolver
# =========================
def get_go_location(hypem_id: str, config: HypemConfig, session: Any = None) -> Outcome[ResolvedLocation]:
    http = session or requests
    go_url = _endpoint(config.go_url, hypem_id)
    try:
        r = http.head(go_url, headers=_headers(config), allow_redirects=False, timeout=config.timeout)
    except requests.RequestException as e:
        logger.warning("go request for %s failed: %r", hypem_id, e)
        return Outcome.failure(TRANSPORT_ERROR, repr(e))

    if not 300 <= r.status_code < 400:
        logger.debug("go request for %s answered HTTP %s", hypem_id, r.status_code)
        return _status_failure(r)
    location = (r.headers.get("Location") or "").strip()
    if not location:
        return Outcome.failure(MISSING, "no Location header")
    try:
        resolved = ResolvedLocation.from_url(urllib.parse.urljoin(go_url, location))
    except ValueError as e:
        logger.warning("go location for %s is not a valid URL: %r", hypem_id, location)
        return Outcome.failure(PARSE_ERROR, str(e))
    return Outcome.success(resolved)

# =========================
# Host classifier
# =========================
def is_preferred_location(location: Optional[ResolvedLocation], config: HypemConfig) -> bool:
    return (
        location is not None
        and location.host == config.preferred_host.lower()
        and location.path != config.not_found_path
    )

# =========================
# Key extractor
# =========================
def extract_embedded_json(html: Optional[str]) -> Optional[str]:
    """Returns the displayList JSON embedded in a track page, or None."""
    if not html:
        return None
    start = html.find(DISPLAY_LIST_START)
    if start < 0:
        return None
    start += len(DISPLAY_LIST_START)
    end = html.find(DISPLAY_LIST_END, start)
    if end < 0:
        return None
    fragment = html[start:end]
    # the block's own closing tag sits before the next script
    close = fragment.find(SCRIPT_CLOSE)
    if close >= 0:
        fragment = fragment[:close]
    return fragment.strip()

def parse_access_key(fragment: Optional[str]) -> Outcome[str]:
    if fragment is None:
        return Outcome.failure(MISSING, "displayList block not found")
    try:
        # trailing markup after the object is ignored
        data, _ = json.JSONDecoder().raw_decode(fragment.strip())
    except json.JSONDecodeError as e:
        return Outcome.failure(PARSE_ERROR, f"invalid displayList JSON: {e}")
    tracks = data.get("tracks") if isinstance(data, dict) else None
    if not isinstance(tracks, list) or not tracks or not isinstance(tracks[0], dict):
        return Outcome.failure(PARSE_ERROR, "no tracks in displayList")
    key = tracks[0].get("key")
    if isinstance(key, (int, float)) and not isinstance(key, bool):
        key = str(key)
    if not isinstance(key, str) or not key.strip():
        return Outcome.failure(PARSE_ERROR, "first track has no key")
    return Outcome.success(key.strip())

def get_access_key(hypem_id: str, config: HypemConfig, session: Any = None) -> Outcome[str]:
    """
    The serve endpoint needs a one-off key. Hypem derives it from our cookie and
    puts it into the track page, inside the displayList script block.
    """
    http = session or requests
    try:
        r = http.get(_endpoint(config.track_url, hypem_id), headers=_headers(config, auth=True),
                     timeout=config.timeout)
    except requests.RequestException as e:
        logger.warning("track page request for %s failed: %r", hypem_id, e)
        return Outcome.failure(TRANSPORT_ERROR, repr(e))
    if r.status_code != 200:
        logger.info("track page for %s answered HTTP %s", hypem_id, r.status_code)
        return _status_failure(r)

    res = parse_access_key(extract_embedded_json(r.text))
    if not res.ok:
        logger.warning("could not scrape access key for %s: %s (%s)", hypem_id, res.reason, res.detail)
    return res

# =========================
# Serve resolver
# =========================
def get_served_url(hypem_id: str, key: str, config: HypemConfig, session: Any = None) -> Outcome[str]:
    http = session or requests
    try:
        r = http.get(_endpoint(config.serve_url, hypem_id, key), headers=_headers(config, auth=True),
                     timeout=config.timeout)
    except requests.RequestException as e:
        logger.warning("serve request for %s failed: %r", hypem_id, e)
        return Outcome.failure(TRANSPORT_ERROR, repr(e))
    if r.status_code != 200:
        logger.info("serve endpoint for %s answered HTTP %s", hypem_id, r.status_code)
        return _status_failure(r)

    try:
        data = r.json()
    except ValueError as e:
        logger.warning("serve response for %s is not JSON: %s", hypem_id, e)
        return Outcome.failure(PARSE_ERROR, str(e))
    url = data.get("url") if isinstance(data, dict) else None
    if not isinstance(url, str) or not _is_absolute_url(url.strip()):
        logger.warning("serve response for %s has no usable url: %r", hypem_id, url)
        return Outcome.failure(PARSE_ERROR, "no url field")
    return Outcome.success(url.strip())

# =========================
# High-level resolve
# =========================
def resolve(hypem_id: Optional[str], config: Optional[HypemConfig] = None, session: Any = None) -> Optional[str]:
    """
    Hosting URL for a hypem id (mostly soundcloud or an mp3), or None.

    The go redirect is cheap and needs no cookie, so it is always tried first.
    Only when it doesn't land on the preferred host do we scrape a key and ask
    the serve endpoint.
    """
    hypem_id = (hypem_id or "").strip()
    if not hypem_id:
        return None
    config = config or load_config()

    go = get_go_location(hypem_id, config, session)
    if is_preferred_location(go.value, config):
        return go.value.url
    logger.debug("go location for %s not usable (%s %s), falling back to serve",
                 hypem_id, go.reason, go.value.url if go.value else go.detail)

    if not config.auth_cookie:
        logger.warning("HYPEM_AUTH_COOKIE is not set, the track page may not carry a usable key for %s", hypem_id)

    key = get_access_key(hypem_id, config, session)
    if not key.ok:
        return None

    served = get_served_url(hypem_id, key.value, config, session)
    return served.value if served.ok else None

def resolve_track(url_or_id: Optional[str], config: Optional[HypemConfig] = None, session: Any = None) -> Optional[str]:
    """Accepts a hypem track URL or a bare id."""
    config = config or load_config()
    text = (url_or_id or "").strip()
    hypem_id = extract_hypem_id(text, config) if "://" in text else text
    return resolve(hypem_id, config, session)

# =========================
# CLI
# =========================
def main(argv: Optional[list] = None) -> int:
    load_dotenv(Path(__file__).with_name(".env"))
    logging.basicConfig(
        level=os.getenv("LOGLEVEL", "INFO"),
        format="%(asctime)s | %(levelname)s | hypem-resolver | %(message)s",
    )
    args = sys.argv[1:] if argv is None else argv
    if not args:
        args = [input("Enter hypem track URL or id: ").strip()]

    config = load_config()
    failed = 0
    for arg in args:
        url = resolve_track(arg, config)
        if url:
            print(url)
        else:
            print(f"ERROR: could not resolve {arg!r}", file=sys.stderr)
            failed += 1
    return 1 if failed else 0

if __name__ == "__main__":
    sys.exit(main())
