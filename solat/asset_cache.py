"""Cache-first serving of the static assets the app needs offline."""

import logging
import os
import shutil
import tempfile
from urllib.parse import quote, urlsplit

import requests

logger = logging.getLogger(__name__)

# Bump the name to invalidate; activate() removes caches with other names.
CACHE_NAME = "solat-cache-v2"
ASSETS = (
    "/",
    "/index.html",
    "/manifest.json",
    "/adhan.mp3",
    "/icon-192.png",
    "/icon-512.png",
)


class AssetInstallError(Exception):
    """An asset could not be fetched at install time; the cache was not created."""


class AssetCache:
    def __init__(self, root_dir: str, origin: str, cache_name: str = CACHE_NAME, assets=ASSETS, session=None, timeout: int = 10):
        self.root_dir = root_dir
        self.origin = origin.rstrip("/")
        self.cache_name = cache_name
        self.assets = tuple(assets)
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def cache_dir(self) -> str:
        return os.path.join(self.root_dir, self.cache_name)

    def request_key(self, request: str) -> str:
        """Identity of a request: its path plus query, with our own origin stripped."""
        if self.origin and request.startswith(self.origin):
            request = request[len(self.origin):]
        parts = urlsplit(request)
        if parts.scheme or parts.netloc:
            # foreign origin; keep the full URL as identity
            return request
        key = parts.path or "/"
        if parts.query:
            key += "?" + parts.query
        return key

    def _entry_path(self, cache_dir: str, key: str) -> str:
        return os.path.join(cache_dir, quote(key, safe=""))

    def _get(self, key: str) -> bytes:
        url = key if urlsplit(key).scheme else self.origin + key
        resp = self.session.get(url, timeout=self.timeout)
        resp.raise_for_status()
        return resp.content

    def install(self) -> None:
        """
        Fetch every asset into a fresh cache.

        The cache is assembled in a staging directory and only moved into
        place once every asset has arrived.
        """
        os.makedirs(self.root_dir, exist_ok=True)
        staging = tempfile.mkdtemp(prefix=f".{self.cache_name}-", dir=self.root_dir)
        try:
            for asset in self.assets:
                key = self.request_key(asset)
                try:
                    body = self._get(key)
                except requests.RequestException as exc:
                    raise AssetInstallError(f"Could not fetch {key}: {exc}") from exc
                with open(self._entry_path(staging, key), "wb") as f:
                    f.write(body)
            if os.path.isdir(self.cache_dir):
                shutil.rmtree(self.cache_dir)
            os.replace(staging, self.cache_dir)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            raise AssetInstallError(f"Could not write cache {self.cache_name}: {exc}") from exc
        except AssetInstallError:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        logger.info("Installed %d assets into %s", len(self.assets), self.cache_name)

    def is_installed(self) -> bool:
        return os.path.isdir(self.cache_dir)

    def activate(self) -> list:
        """Delete caches left behind by other cache names. Returns their names."""
        if not os.path.isdir(self.root_dir):
            return []
        removed = []
        for name in sorted(os.listdir(self.root_dir)):
            path = os.path.join(self.root_dir, name)
            if name == self.cache_name or not os.path.isdir(path):
                continue
            shutil.rmtree(path, ignore_errors=True)
            removed.append(name)
        if removed:
            logger.info("Removed old caches: %s", ", ".join(removed))
        return removed

    def match(self, request: str) -> bytes | None:
        path = self._entry_path(self.cache_dir, self.request_key(request))
        if not os.path.isfile(path):
            return None
        with open(path, "rb") as f:
            return f.read()

    def fetch(self, request: str) -> bytes:
        """Serve from the cache; on a miss go to the network without storing the result."""
        cached = self.match(request)
        if cached is not None:
            return cached
        return self._get(self.request_key(request))
