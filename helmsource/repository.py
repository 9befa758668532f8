"""Helm chart repositories: index loading, caching, version lookup and downloads."""

from __future__ import annotations

import hashlib
import os
import posixpath
import tempfile
import threading
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from .limits import MAX_INDEX_SIZE
from .repoindex import (
    NoChartNameError,
    NoChartVersionError,
    created_timestamp,
    load_index,
)
from .versions import Constraint, InvalidVersionError, parse_version


class RepositoryError(Exception):
    """An operation on a chart repository failed."""


class NoChartIndexError(RepositoryError):
    """The repository has no loaded index."""

    def __init__(self):
        super().__init__("no chart index")


class InvalidURLError(ValueError):
    """A URL could not be parsed."""


def _parse_url(text):
    if text.startswith(":"):
        raise InvalidURLError(f'parse "{text}": missing protocol scheme')
    try:
        parts = urlsplit(text)
    except ValueError as exc:
        raise InvalidURLError(f'parse "{text}": {exc}') from exc
    if any(char in parts.netloc for char in ' <>"{}|\\^`'):
        bad = next(char for char in parts.netloc if char in ' <>"{}|\\^`')
        raise InvalidURLError(f'parse "{text}": invalid character "{bad}" in host name')
    return parts


class ChartRepository:
    """A Helm chart repository and how to fetch its index and charts. Thread safe."""

    def __init__(self, url="", client=None, options=None, cache_path="", cached=False, index=None):
        self.url = url
        self.client = client
        self.options = list(options or [])
        self.cache_path = cache_path
        self.cached = cached
        self.index = index
        self.checksum = ""
        self._lock = threading.RLock()

    def get(self, name, version):
        """Return the chart version of name matching the version constraint.

        An empty version or "*" selects the latest stable version.
        """
        with self._lock:
            if self.index is None:
                raise NoChartIndexError()
            if name not in self.index.entries:
                raise NoChartNameError()
            versions = self.index.entries[name]
            if not versions:
                raise NoChartVersionError()

            if version:
                for cv in versions:
                    if cv.version == version:
                        return cv

            constraint = Constraint("*" if not version or version == "*" else version)
            matched = []
            for cv in versions:
                try:
                    parsed = parse_version(cv.version)
                except InvalidVersionError:
                    continue
                if constraint.check(parsed):
                    matched.append((parsed, cv))
            if not matched:
                raise RepositoryError(f"no '{name}' chart with version matching '{version}' found")
            # Versions equal apart from build metadata are ordered by creation time.
            matched.sort(key=lambda item: (item[0], created_timestamp(item[1])), reverse=True)
            return matched[0][1]

    def download_chart(self, chart):
        """Download the chart version from its first URL and return the bytes."""
        if not chart.urls:
            raise RepositoryError(f"chart '{chart.name}' has no downloadable URLs")
        ref = chart.urls[0]
        try:
            parts = _parse_url(ref)
        except InvalidURLError as exc:
            raise RepositoryError(f"invalid chart URL format '{ref}': {exc}") from exc
        target = ref
        if not parts.scheme:
            try:
                repo = _parse_url(self.url)
            except InvalidURLError as exc:
                raise RepositoryError(f"invalid chart repository URL format '{self.url}': {exc}") from exc
            query = urlencode(sorted(parse_qsl(repo.query, keep_blank_values=True)))
            base = urlunsplit((repo.scheme, repo.netloc, repo.path.rstrip("/") + "/", "", ""))
            joined = urlsplit(urljoin(base, ref))
            target = urlunsplit((joined.scheme, joined.netloc, joined.path, query, ""))
        return self.client.get(target, self.options)

    def load_index_from_bytes(self, data):
        """Parse, sort and load the index from data and record its checksum."""
        index = load_index(data)
        index.sort_entries()
        with self._lock:
            self.index = index
            self.checksum = hashlib.sha256(data).hexdigest()

    def load_from_file(self, path):
        """Load the index from the file at path."""
        info = os.stat(path)
        if os.path.isdir(path):
            raise IsADirectoryError(f"'{path}' is a directory")
        if info.st_size > MAX_INDEX_SIZE:
            raise RepositoryError(
                f"size of index '{os.path.basename(path)}' exceeds '{MAX_INDEX_SIZE}' bytes limit"
            )
        with open(path, "rb") as handle:
            data = handle.read()
        self.load_index_from_bytes(data)

    def cache_index(self):
        """Download the index to a new temporary file, set cache_path and return its SHA256."""
        handle = tempfile.NamedTemporaryFile(prefix="chart-index-", suffix=".yaml", delete=False)
        digest = hashlib.sha256()

        class _Tee:
            @staticmethod
            def write(data):
                handle.write(data)
                digest.update(data)

        try:
            with handle:
                self.download_index(_Tee())
        except Exception as exc:
            os.remove(handle.name)
            raise RepositoryError(f"failed to cache index to '{handle.name}': {exc}") from exc
        with self._lock:
            self.cache_path = handle.name
            self.cached = True
        return digest.hexdigest()

    def strategically_load_index(self):
        """Load the index from the cache if it is not loaded, caching it first if needed."""
        if self.has_index():
            return
        try:
            if not self.has_cache_file():
                self.cache_index()
            self.load_from_cache()
        except Exception as exc:
            raise RepositoryError(f"failed to strategically load index: {exc}") from exc

    def load_from_cache(self):
        """Load the index from cache_path."""
        if not self.cache_path:
            raise RepositoryError("no cache path set")
        self.load_from_file(self.cache_path)

    def download_index(self, writer):
        """Download index.yaml from the repository URL and write it to writer."""
        parts = _parse_url(self.url)
        path = posixpath.join(parts.path or "/", "index.yaml")
        if not path.startswith("/"):
            path = "/" + path
        url = urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))
        writer.write(self.client.get(url, self.options))

    def has_index(self):
        """Return whether an index is loaded."""
        with self._lock:
            return self.index is not None

    def has_cache_file(self):
        """Return whether a cache path is set."""
        with self._lock:
            return bool(self.cache_path)

    def unload(self):
        """Drop the loaded index."""
        with self._lock:
            self.index = None

    def remove_cache(self):
        """Remove the cached index file if this repository cached it."""
        with self._lock:
            if self.cached:
                try:
                    os.remove(self.cache_path)
                except FileNotFoundError:
                    pass
                self.cache_path = ""
                self.cached = False


def new_chart_repository(repository_url, cache_path, providers, options):
    """Return a ChartRepository whose client serves the scheme of repository_url."""
    parts = _parse_url(repository_url)
    client = providers.by_scheme(parts.scheme)
    return ChartRepository(url=repository_url, client=client, options=options, cache_path=cache_path)


def normalize_url(url):
    """Return url ending with a single "/"; an empty url stays empty."""
    if url:
        return url.rstrip("/") + "/"
    return url