"""Chart repository index files."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field

import yaml

from .chartmodel import API_VERSION_V1, Metadata
from .versions import Constraint, InvalidConstraintError, InvalidVersionError, Version


class NoChartNameError(LookupError):
    """The index has no chart of the requested name."""

    def __init__(self):
        super().__init__("no chart name found")


class NoChartVersionError(LookupError):
    """The index has no matching version of the requested chart."""

    def __init__(self):
        super().__init__("no chart version found")


class NoAPIVersionError(ValueError):
    """The index does not specify an API version."""

    def __init__(self):
        super().__init__("no API version specified")


_ENTRY_KEYS = {"urls", "created", "removed", "digest"}


@dataclass
class ChartVersion:
    """One version of a chart listed in an index."""

    metadata: Metadata = field(default_factory=Metadata)
    urls: list = field(default_factory=list)
    created: datetime.datetime | None = None
    removed: bool = False
    digest: str = ""

    @property
    def name(self):
        return self.metadata.name

    @property
    def version(self):
        return self.metadata.version

    @property
    def description(self):
        return self.metadata.description

    @property
    def home(self):
        return self.metadata.home

    @property
    def keywords(self):
        return self.metadata.keywords


def created_timestamp(cv):
    """Return the creation time of cv as a POSIX timestamp, or -inf if unknown."""
    created = cv.created
    if created is None:
        return float("-inf")
    if created.tzinfo is None:
        created = created.replace(tzinfo=datetime.timezone.utc)
    return created.timestamp()


def _url_join(base, filename):
    return base.rstrip("/") + "/" + filename.lstrip("/")


@dataclass
class IndexFile:
    """A chart repository index: chart versions grouped by chart name."""

    api_version: str = API_VERSION_V1
    generated: datetime.datetime | None = None
    entries: dict = field(default_factory=dict)

    def add(self, metadata, filename, base_url, digest):
        """Add a chart version for metadata, served at filename under base_url."""
        if not metadata.api_version:
            metadata.api_version = API_VERSION_V1
        metadata.validate()
        url = _url_join(base_url, filename) if base_url else filename
        entry = ChartVersion(
            metadata=metadata,
            urls=[url],
            digest=digest,
            created=datetime.datetime.now(datetime.timezone.utc),
        )
        self.entries.setdefault(metadata.name, []).append(entry)

    def sort_entries(self):
        """Sort the versions of every chart, newest first; unparsable versions last."""

        def key(cv):
            try:
                return (1, Version.parse(cv.version))
            except InvalidVersionError:
                return (0, Version(0))

        for name, versions in self.entries.items():
            self.entries[name] = sorted(versions, key=key, reverse=True)

    def get(self, name, version):
        """Return the chart version of name matching version; empty means the first."""
        versions = self.entries.get(name)
        if not versions:
            raise NoChartNameError()
        if not version:
            return versions[0]
        try:
            constraint = Constraint(version)
        except InvalidConstraintError:
            constraint = None
        for cv in versions:
            if cv.version == version:
                return cv
            if constraint is None:
                continue
            try:
                if constraint.check(Version.parse(cv.version)):
                    return cv
            except InvalidVersionError:
                continue
        raise NoChartVersionError()


class _StrictLoader(yaml.SafeLoader):
    pass


def _construct_mapping(loader, node, deep=False):
    loader.flatten_mapping(node)
    result = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=True)
        if key in result:
            raise yaml.constructor.ConstructorError(
                None, None, f'key "{key}" already set in map', key_node.start_mark
            )
        result[key] = loader.construct_object(value_node, deep=True)
    return result


_StrictLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_mapping)


def _to_datetime(value):
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def _chart_version(item):
    if not isinstance(item, dict):
        raise ValueError("chart version entry must be a mapping")
    meta = Metadata().merge_mapping({k: v for k, v in item.items() if k not in _ENTRY_KEYS})
    return ChartVersion(
        metadata=meta,
        urls=[str(url) for url in item.get("urls") or []],
        created=_to_datetime(item.get("created")),
        removed=bool(item.get("removed", False)),
        digest=str(item.get("digest") or ""),
    )


def load_index(data):
    """Parse index YAML bytes, rejecting duplicate keys and a missing apiVersion."""
    try:
        document = yaml.load(data, Loader=_StrictLoader)
    except yaml.YAMLError as exc:
        raise ValueError(str(exc)) from exc
    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise ValueError("index must be a mapping")
    index = IndexFile(api_version=str(document.get("apiVersion") or ""))
    index.generated = _to_datetime(document.get("generated"))
    for name, items in (document.get("entries") or {}).items():
        index.entries[str(name)] = [_chart_version(item) for item in items or [] if item is not None]
    if not index.api_version:
        raise NoAPIVersionError()
    return index