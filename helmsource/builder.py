"""Chart references, build options and build results shared by chart builders."""

from __future__ import annotations

import os
import re
import tempfile
from dataclasses import dataclass, field

from .chartmodel import VALUES_FILE_NAME, save
from .fsutil import rename_with_fallback

_CHART_NAME = re.compile(r"[-a-z0-9]*")


@dataclass
class LocalReference:
    """Locates a chart on the local file system.

    File references made while building may not traverse outside work_dir.
    """

    work_dir: str = ""
    path: str = ""

    def validate(self):
        """Raise ValueError if no path is set."""
        if not self.path:
            raise ValueError("no path set for local chart reference")


@dataclass
class RemoteReference:
    """Locates a chart in a chart repository by name and version (constraint)."""

    name: str = ""
    version: str = ""

    def validate(self):
        """Raise ValueError if the name is missing or not a valid chart name."""
        if not self.name:
            raise ValueError("no name set for remote chart reference")
        if not _CHART_NAME.fullmatch(self.name):
            raise ValueError(
                f"invalid chart name '{self.name}': a valid name must be lower case letters "
                "and numbers and MAY be separated with dashes (-)"
            )


@dataclass
class BuildOptions:
    """Options for a chart build."""

    version_metadata: str = ""
    values_files: list = field(default_factory=list)
    cached_chart: str = ""
    force: bool = False

    def get_values_files(self):
        """Return values_files, or None if it holds only the default values.yaml."""
        if len(self.values_files) == 1 and os.path.normpath(self.values_files[0]) == VALUES_FILE_NAME:
            return None
        return self.values_files


@dataclass
class Build:
    """The result of a chart build."""

    path: str = ""
    name: str = ""
    version: str = ""
    values_files: list = field(default_factory=list)
    resolved_dependencies: int = 0
    packaged: bool = False

    def summary(self):
        """Return a human-readable summary of the build."""
        if not self.name or not self.version:
            return "No chart build."
        action = "Packaged" if self.packaged else "Pulled"
        text = f"{action} '{self.name}' chart with version '{self.version}'"
        if self.packaged and self.values_files:
            text += f", with merged values files [{' '.join(self.values_files)}]"
        if self.packaged and self.resolved_dependencies > 0:
            text += f", resolving {self.resolved_dependencies} dependencies before packaging"
        return text + "."

    def __str__(self):
        return self.path


def describe_build(build):
    """Return the summary of build, which may be None."""
    if build is None:
        return "No chart build."
    return build.summary()


def package_to_path(chart, out):
    """Package chart and move the resulting archive to out."""
    with tempfile.TemporaryDirectory(prefix="chart-build-") as workspace:
        try:
            packaged = save(chart, workspace)
        except (ValueError, OSError) as exc:
            raise ValueError(f"failed to package chart: {exc}") from exc
        try:
            rename_with_fallback(packaged, out)
        except OSError as exc:
            raise OSError(f"failed to write chart to file: {exc}") from exc