"""HTTP client for the work-item backend (items + sync status)."""

from __future__ import annotations

import hashlib
import json
import time
from typing import Any

import requests

from .config import API_CACHE_TTL_SECONDS, API_DEFAULT_SERVER


class ItemsAPI:
    def __init__(self, server: str = API_DEFAULT_SERVER, timeout: float = 30.0, session: requests.Session | None = None):
        self.server = server.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        # Simple in-memory cache: {(hash): (timestamp, data)}
        self._cache: dict[str, tuple[float, Any]] = {}
        self._cache_ttl = API_CACHE_TTL_SECONDS

    def clear_cache(self) -> None:
        """Reset the in-memory response cache."""
        cache = getattr(self, "_cache", None)
        if isinstance(cache, dict):
            cache.clear()

    def _cache_key(self, path: str, params: dict[str, Any] | None) -> str:
        payload = {"path": path, "params": params or {}}
        return hashlib.sha256(json.dumps(payload, sort_keys=True).encode()).hexdigest()

    def _get(self, path: str, params: dict[str, Any] | None = None, use_cache: bool = True) -> Any:
        key = self._cache_key(path, params)
        now = time.time()
        cached = self._cache.get(key)
        if use_cache and cached and (now - cached[0]) < self._cache_ttl:
            return cached[1]
        try:
            resp = self.session.get(f"{self.server}{path}", params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise RuntimeError(f"Request to {path} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise RuntimeError(f"Backend request {path} failed {resp.status_code}: {resp.text[:200]}")
        try:
            data = resp.json()
        except ValueError as exc:
            # Proxies and login pages answer 200 with HTML
            raise RuntimeError(f"Backend request {path} returned non-JSON: {resp.text[:200]}") from exc
        self._cache[key] = (now, data)
        return data

    def fetch_items(self, days: int | None = None) -> list[dict[str, Any]]:
        """All work items, or those changed in the last ``days`` days."""
        path = "/api/items" if not days else f"/api/items/period/{int(days)}"
        data = self._get(path)
        if isinstance(data, dict):
            # Some deployments wrap the list
            data = data.get("items", [])
        if not isinstance(data, list):
            raise RuntimeError(f"Unexpected items payload type: {type(data)!r}")
        return data

    def sync_status(self) -> dict[str, Any]:
        data = self._get("/api/sync/status", use_cache=False)
        return data if isinstance(data, dict) else {"status": str(data)}

    def health(self) -> bool:
        try:
            self._get("/health", use_cache=False)
        except RuntimeError:
            return False
        return True
