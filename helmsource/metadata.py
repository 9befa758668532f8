"""Loading chart metadata and overwriting chart default values."""

from __future__ import annotations

import os
import tarfile

import yaml

from .chartmodel import (
    API_VERSION_V1,
    CHART_FILE_NAME,
    VALUES_FILE_NAME,
    ChartValidationError,
    Metadata,
    _archive_member_name,
    encode_values,
)
from .limits import MAX_CHART_FILE_SIZE, MAX_CHART_SIZE

_REQUIREMENTS_FILE_NAME = "requirements.yaml"


def overwrite_chart_default_values(chart, values):
    """Replace the chart's values.yaml with values; return whether anything changed."""
    if values is None:
        return False
    encoded = encode_values(values) if len(values) > 0 else b""

    for raw in chart.raw:
        if raw.name != VALUES_FILE_NAME:
            continue
        if raw.data == encoded:
            return False
        for item in chart.files:
            if item.name == VALUES_FILE_NAME:
                item.data = encoded
        raw.data = encoded
        chart.values = dict(values)
        return True

    raise ValueError(f"failed to locate values file: {VALUES_FILE_NAME}")


def _merge_yaml(meta, data, name):
    try:
        meta.merge_mapping(yaml.safe_load(data))
    except (yaml.YAMLError, ChartValidationError) as exc:
        raise ValueError(f"cannot load '{name}': {exc}") from exc


def load_chart_metadata(chart_path):
    """Load chart metadata from a chart directory or packaged archive."""
    if os.path.isdir(chart_path):
        return load_chart_metadata_from_dir(chart_path)
    os.stat(chart_path)
    return load_chart_metadata_from_archive(chart_path)


def load_chart_metadata_from_dir(directory):
    """Load metadata from Chart.yaml in directory, merging any requirements.yaml."""
    with open(os.path.join(directory, CHART_FILE_NAME), "rb") as handle:
        data = handle.read()
    meta = Metadata()
    _merge_yaml(meta, data, CHART_FILE_NAME)
    if not meta.api_version:
        meta.api_version = API_VERSION_V1

    requirements = os.path.join(directory, _REQUIREMENTS_FILE_NAME)
    try:
        info = os.stat(requirements)
    except FileNotFoundError:
        return meta
    if os.path.isdir(requirements):
        raise ValueError(f"'{_REQUIREMENTS_FILE_NAME}' is a directory")
    if info.st_size > MAX_CHART_FILE_SIZE:
        raise ValueError(
            f"size of '{_REQUIREMENTS_FILE_NAME}' exceeds '{MAX_CHART_FILE_SIZE}' bytes limit"
        )
    with open(requirements, "rb") as handle:
        data = handle.read()
    if data:
        _merge_yaml(meta, data, _REQUIREMENTS_FILE_NAME)
    return meta


def load_chart_metadata_from_archive(archive):
    """Load metadata from Chart.yaml in a packaged chart, merging any requirements.yaml."""
    info = os.stat(archive)
    base = os.path.basename(archive)
    if os.path.isdir(archive):
        raise IsADirectoryError(f"'{base}' is a directory")
    if info.st_size > MAX_CHART_SIZE:
        raise ValueError(f"size of chart '{base}' exceeds '{MAX_CHART_SIZE}' bytes limit")

    meta = None
    with tarfile.open(archive, mode="r:gz") as tar:
        for member in tar:
            if member.isdir():
                continue
            parts, _ = _archive_member_name(member.name)
            if len(parts) != 2 or not member.isfile():
                continue
            if parts[1] not in (CHART_FILE_NAME, _REQUIREMENTS_FILE_NAME):
                continue
            if member.size > MAX_CHART_FILE_SIZE:
                raise ValueError(
                    f"size of '{member.name}' exceeds '{MAX_CHART_FILE_SIZE}' bytes limit"
                )
            data = tar.extractfile(member).read()
            if meta is None:
                meta = Metadata()
            _merge_yaml(meta, data, parts[1])
            if not meta.api_version:
                meta.api_version = API_VERSION_V1

    if meta is None:
        raise ValueError(f"no '{CHART_FILE_NAME}' found")
    return meta