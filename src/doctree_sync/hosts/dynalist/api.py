"""Blocking Dynalist API client with an optional on-disk response cache."""

import hashlib
import json
from pathlib import Path
from typing import Any

import requests
from loguru import logger

from doctree_sync.config import (
    API_CACHE_PREFIX,
    API_TIMEOUT_SECONDS,
    API_TOKEN_FILES,
    DYNALIST_API_URL,
)

# Only read-only endpoints may be answered from the cache.
_CACHEABLE_PATHS = {"file/list", "doc/read", "doc/check_for_updates"}


def _read_token() -> tuple[str, Path]:
    for token_path in API_TOKEN_FILES:
        try:
            return token_path.read_text(encoding="utf-8").strip(), token_path
        except FileNotFoundError:
            continue
    msg = f"Cannot find dynalist token file, was looking at {API_TOKEN_FILES!r}"
    raise RuntimeError(msg)


class DynalistApi:
    """Token-authenticated POST calls to the Dynalist v1 API.

    With ``from_cache`` set, responses of read-only endpoints are stored under
    API_CACHE_PREFIX and replayed on the next identical call. Writes always
    reach the server.
    """

    def __init__(self, *, from_cache: bool = False) -> None:
        self.from_cache = from_cache
        self.sess = requests.Session()
        self.api_token, token_path = _read_token()
        self.api_cache_prefix: str | None = API_CACHE_PREFIX if from_cache else None
        if self.api_cache_prefix:
            Path(self.api_cache_prefix).parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Dynalist API token from {}, cache {!r}", token_path, self.api_cache_prefix)

    def _cache_name(self, path: str, args: dict[str, Any]) -> str | None:
        if not self.api_cache_prefix or path not in _CACHEABLE_PATHS:
            return None
        name = path
        if args:
            params = json.dumps(args, sort_keys=True, separators=(",", ":"))
            if len(params) > 64:
                params = hashlib.sha1(params.encode("utf-8")).hexdigest()
            name += "--" + params
        return self.api_cache_prefix + name.replace("/", "--")

    def call(self, path: str, args: dict[str, Any]) -> dict[str, Any]:
        """POST to ``path`` and return the decoded response.

        Raises:
            RuntimeError: Dynalist answered with an error code or message.
            requests.HTTPError: The HTTP request failed.
        """
        cache_name = self._cache_name(path, args)
        if cache_name and Path(cache_name).exists():
            logger.debug("{} answered from cache {}", path, cache_name)
            cached: dict[str, Any] = json.loads(Path(cache_name).read_text(encoding="utf-8"))
            return cached

        logger.debug("POST {} {}", path, repr(args)[:32])
        r = self.sess.post(
            f"{DYNALIST_API_URL}/{path}",
            json.dumps({"token": self.api_token, **args}),
            timeout=API_TIMEOUT_SECONDS,
        )
        r.raise_for_status()
        response: dict[str, Any] = r.json()
        if response["_code"] != "Ok" or response.get("_msg"):
            msg = f"API call failed: {path!r} -> ({response['_code']!r}, {response.get('_msg')!r})"
            raise RuntimeError(msg)
        if cache_name:
            Path(cache_name).write_text(r.text, encoding="utf-8")
        return response
