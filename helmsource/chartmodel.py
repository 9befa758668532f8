"""In-memory model of a Helm chart, with loading from disk and packaging."""

from __future__ import annotations

import gzip
import io
import os
import posixpath
import re
import tarfile
from dataclasses import dataclass, field

import yaml

from .versions import InvalidVersionError, Version

API_VERSION_V1 = "v1"
API_VERSION_V2 = "v2"
CHART_FILE_NAME = "Chart.yaml"
VALUES_FILE_NAME = "values.yaml"
SCHEMA_FILE_NAME = "values.schema.json"

_DRIVE_PATH = re.compile(r"^[a-zA-Z]:/")

_META_FIELDS = {
    "apiVersion": "api_version",
    "name": "name",
    "version": "version",
    "description": "description",
    "home": "home",
    "icon": "icon",
    "keywords": "keywords",
    "sources": "sources",
    "maintainers": "maintainers",
    "condition": "condition",
    "tags": "tags",
    "appVersion": "app_version",
    "deprecated": "deprecated",
    "annotations": "annotations",
    "kubeVersion": "kube_version",
    "type": "type",
}
_STRING_FIELDS = {
    "api_version", "name", "version", "description", "home", "icon",
    "condition", "tags", "app_version", "kube_version", "type",
}


class ChartValidationError(ValueError):
    """A chart or its metadata is not valid."""


def _scalar(value):
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass
class Dependency:
    """A chart dependency as listed in Chart.yaml or requirements.yaml."""

    name: str = ""
    version: str = ""
    repository: str = ""
    condition: str = ""
    tags: list = field(default_factory=list)
    enabled: bool = False
    import_values: list = field(default_factory=list)
    alias: str = ""

    @classmethod
    def from_mapping(cls, data):
        """Build a Dependency from a parsed YAML mapping."""
        if not isinstance(data, dict):
            raise ChartValidationError("dependency must be a mapping")
        return cls(
            name=_scalar(data.get("name")),
            version=_scalar(data.get("version")),
            repository=_scalar(data.get("repository")),
            condition=_scalar(data.get("condition")),
            tags=list(data.get("tags") or []),
            enabled=bool(data.get("enabled", False)),
            import_values=list(data.get("import-values") or []),
            alias=_scalar(data.get("alias")),
        )

    def to_mapping(self):
        """Return the YAML mapping for this dependency, omitting empty fields."""
        data = {
            "name": self.name,
            "version": self.version,
            "repository": self.repository,
            "condition": self.condition,
            "tags": self.tags,
            "enabled": self.enabled,
            "import-values": self.import_values,
            "alias": self.alias,
        }
        return {key: value for key, value in data.items() if value}


@dataclass
class Metadata:
    """The contents of a chart's Chart.yaml."""

    name: str = ""
    version: str = ""
    api_version: str = ""
    description: str = ""
    home: str = ""
    icon: str = ""
    keywords: list = field(default_factory=list)
    sources: list = field(default_factory=list)
    maintainers: list = field(default_factory=list)
    condition: str = ""
    tags: str = ""
    app_version: str = ""
    deprecated: bool = False
    annotations: dict = field(default_factory=dict)
    kube_version: str = ""
    type: str = ""
    dependencies: list = field(default_factory=list)

    def merge_mapping(self, data):
        """Set the fields present in a parsed YAML mapping; return self."""
        if data is None:
            return self
        if not isinstance(data, dict):
            raise ChartValidationError("chart metadata must be a mapping")
        for key, value in data.items():
            if key == "dependencies":
                self.dependencies = [Dependency.from_mapping(item) for item in value or []]
                continue
            attr = _META_FIELDS.get(key)
            if attr is None:
                continue
            if attr in _STRING_FIELDS:
                value = _scalar(value)
            elif attr == "deprecated":
                value = bool(value)
            elif attr == "annotations":
                value = dict(value or {})
            else:
                value = list(value or [])
            setattr(self, attr, value)
        return self

    def to_mapping(self):
        """Return the Chart.yaml mapping, omitting empty fields."""
        data = {yaml_key: getattr(self, attr) for yaml_key, attr in _META_FIELDS.items()}
        data["dependencies"] = [dep.to_mapping() for dep in self.dependencies]
        return {key: value for key, value in data.items() if value}

    def validate(self):
        """Raise ChartValidationError if required fields are missing or malformed."""
        if not self.api_version:
            raise ChartValidationError("validation: chart.metadata.apiVersion is required")
        if not self.name:
            raise ChartValidationError("validation: chart.metadata.name is required")
        if not self.version:
            raise ChartValidationError("validation: chart.metadata.version is required")
        try:
            Version.parse(self.version)
        except InvalidVersionError:
            raise ChartValidationError(
                f'validation: chart.metadata.version "{self.version}" is invalid'
            ) from None
        if self.type not in ("", "application", "library"):
            raise ChartValidationError("validation: chart.metadata.type must be application or library")
        for dep in self.dependencies:
            if not dep.name:
                raise ChartValidationError("validation: dependency name is required")


@dataclass
class ChartFile:
    """A named file belonging to a chart."""

    name: str
    data: bytes


@dataclass
class Lock:
    """The contents of a Chart.lock or requirements.lock file."""

    generated: str = ""
    digest: str = ""
    dependencies: list = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data):
        """Build a Lock from a parsed YAML mapping."""
        if not isinstance(data, dict):
            raise ChartValidationError("lock file must be a mapping")
        return cls(
            generated=_scalar(data.get("generated")),
            digest=_scalar(data.get("digest")),
            dependencies=[Dependency.from_mapping(item) for item in data.get("dependencies") or []],
        )

    def to_mapping(self):
        """Return the YAML mapping of this lock."""
        return {
            "dependencies": [dep.to_mapping() for dep in self.dependencies],
            "digest": self.digest,
            "generated": self.generated,
        }


@dataclass
class Chart:
    """A loaded Helm chart."""

    metadata: Metadata | None = None
    lock: Lock | None = None
    templates: list = field(default_factory=list)
    values: dict = field(default_factory=dict)
    schema: bytes | None = None
    files: list = field(default_factory=list)
    raw: list = field(default_factory=list)
    parent: Chart | None = field(default=None, repr=False, compare=False)
    _dependencies: list = field(default_factory=list, init=False, repr=False)

    @property
    def name(self):
        return self.metadata.name if self.metadata else ""

    def dependencies(self):
        """Return the subcharts of this chart."""
        return list(self._dependencies)

    def add_dependency(self, chart):
        """Add a subchart to this chart."""
        chart.parent = self
        self._dependencies.append(chart)


def encode_values(values):
    """Encode a values mapping to YAML bytes with sorted keys."""
    return yaml.safe_dump(values, default_flow_style=False, sort_keys=True, allow_unicode=True).encode()


def _parse_yaml(data, name):
    try:
        return yaml.safe_load(data)
    except yaml.YAMLError as exc:
        raise ChartValidationError(f"cannot load '{name}': {exc}") from exc


def _load_files(files):
    chart = Chart()
    files = sorted(files, key=lambda item: item[0] != CHART_FILE_NAME)
    subcharts = {}
    requirements = None
    for name, data in files:
        chart.raw.append(ChartFile(name, data))
        if name == CHART_FILE_NAME:
            chart.metadata = Metadata().merge_mapping(_parse_yaml(data, name))
            if not chart.metadata.api_version:
                chart.metadata.api_version = API_VERSION_V1
        elif name == "Chart.lock":
            chart.lock = Lock.from_mapping(_parse_yaml(data, name))
        elif name == VALUES_FILE_NAME:
            values = _parse_yaml(data, name)
            if values is not None and not isinstance(values, dict):
                raise ChartValidationError(f"cannot load '{name}': values must be a mapping")
            chart.values = values or {}
        elif name == SCHEMA_FILE_NAME:
            chart.schema = data
        elif name == "requirements.yaml":
            requirements = _parse_yaml(data, name)
            chart.files.append(ChartFile(name, data))
        elif name == "requirements.lock":
            chart.lock = Lock.from_mapping(_parse_yaml(data, name))
            chart.files.append(ChartFile(name, data))
        elif name.startswith("templates/"):
            chart.templates.append(ChartFile(name, data))
        elif name.startswith("charts/"):
            rest = name[len("charts/"):]
            head, _, tail = rest.partition("/")
            if not head or head.startswith((".", "_")):
                continue
            subcharts.setdefault(head, []).append((tail, data))
        else:
            chart.files.append(ChartFile(name, data))

    if chart.metadata is None:
        raise ChartValidationError("validation: chart.metadata is required")
    if requirements is not None and chart.metadata.api_version == API_VERSION_V1:
        chart.metadata.merge_mapping(requirements)

    for head, entries in sorted(subcharts.items()):
        if len(entries) == 1 and entries[0][0] == "" and head.endswith(".tgz"):
            chart.add_dependency(load_archive(entries[0][1]))
        elif all(tail for tail, _ in entries):
            chart.add_dependency(_load_files(entries))
    chart.metadata.validate()
    return chart


def load(path):
    """Load a chart from a directory or a packaged archive."""
    if os.path.isdir(path):
        return load_dir(path)
    with open(path, "rb") as handle:
        return load_archive(handle.read())


def load_dir(path):
    """Load a chart from an unpacked chart directory."""
    root = os.path.abspath(path)
    files = []
    for directory, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            full = os.path.join(directory, filename)
            rel = os.path.relpath(full, root).replace(os.sep, "/")
            with open(full, "rb") as handle:
                files.append((rel, handle.read()))
    return _load_files(files)


def _archive_member_name(name):
    """Return (parts, normalized name) of an archive entry, rejecting unsafe paths."""
    delimiter = "\\" if "\\" in name else "/"
    parts = name.split(delimiter)
    normalized = delimiter.join(parts[1:]).replace(delimiter, "/")
    if normalized.startswith("/"):
        raise ChartValidationError("chart illegally contains absolute paths")
    normalized = posixpath.normpath(normalized)
    if normalized == ".":
        raise ChartValidationError(
            f"chart illegally contains content outside the base directory: {name}"
        )
    if normalized.startswith(".."):
        raise ChartValidationError("chart illegally references parent directory")
    if _DRIVE_PATH.match(normalized):
        raise ChartValidationError("chart contains illegally named files")
    return parts, normalized


def load_archive(data):
    """Load a chart from gzipped tar bytes or a binary stream."""
    if not isinstance(data, (bytes, bytearray)):
        data = data.read()
    files = []
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as archive:
            for member in archive:
                if member.isdir():
                    continue
                _, name = _archive_member_name(member.name)
                if not member.isfile():
                    continue
                files.append((name, archive.extractfile(member).read()))
    except (tarfile.TarError, OSError, EOFError) as exc:
        raise ChartValidationError(f"failed to read chart archive: {exc}") from exc
    if not files:
        raise ChartValidationError("no files in chart archive")
    return _load_files(files)


def _chart_entries(chart, prefix):
    written = set()

    def emit(name, data):
        if name in written:
            return []
        written.add(name)
        return [(prefix + name, data)]

    entries = emit(CHART_FILE_NAME, yaml.safe_dump(chart.metadata.to_mapping(), sort_keys=False).encode())
    if chart.lock is not None:
        lock_name = "requirements.lock" if chart.metadata.api_version == API_VERSION_V1 else "Chart.lock"
        entries += emit(lock_name, yaml.safe_dump(chart.lock.to_mapping(), sort_keys=False).encode())
    for item in chart.raw:
        if item.name == VALUES_FILE_NAME:
            entries += emit(VALUES_FILE_NAME, item.data)
            break
    if chart.schema is not None:
        entries += emit(SCHEMA_FILE_NAME, chart.schema)
    for item in chart.templates + chart.files:
        entries += emit(item.name, item.data)
    for dep in chart.dependencies():
        entries += _chart_entries(dep, f"{prefix}charts/{dep.name}/")
    return entries


def save(chart, out_dir):
    """Package the chart as <name>-<version>.tgz in out_dir and return its path."""
    if chart.metadata is None:
        raise ChartValidationError("validation: chart.metadata is required")
    chart.metadata.validate()
    if not os.path.isdir(out_dir):
        raise NotADirectoryError(f"location {out_dir} is not a directory")
    target = os.path.join(out_dir, f"{chart.metadata.name}-{chart.metadata.version}.tgz")
    with open(target, "wb") as raw_out, gzip.GzipFile(fileobj=raw_out, mode="wb") as zipped:
        with tarfile.open(fileobj=zipped, mode="w") as archive:
            for name, data in _chart_entries(chart, f"{chart.metadata.name}/"):
                info = tarfile.TarInfo(name)
                info.size = len(data)
                info.mode = 0o644
                archive.addfile(info, io.BytesIO(data))
    return target