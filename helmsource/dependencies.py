"""Resolving and adding missing dependencies of a chart."""

from __future__ import annotations

import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed

from .builder import LocalReference
from .chartmodel import load, load_archive
from .fsutil import secure_join
from .repository import InvalidURLError, RepositoryError, _parse_url, normalize_url
from .versions import Constraint, InvalidConstraintError, Version


class DependencyManager:
    """Adds missing local and remote dependencies to charts.

    repositories maps normalized repository URLs to ChartRepository objects;
    get_repository_callback, if set, is asked for repositories not in that
    map and its results are kept there. concurrent is the number of
    dependencies added at the same time.
    """

    def __init__(self, repositories=None, get_repository_callback=None, concurrent=1):
        self.repositories = {} if repositories is None else repositories
        self.get_repository_callback = get_repository_callback
        self.concurrent = concurrent
        self._lock = threading.Lock()

    def clear(self):
        """Unload every repository and remove its cache; return the removal errors."""
        errors = []
        for repo in self.repositories.values():
            repo.unload()
            try:
                repo.remove_cache()
            except OSError as exc:
                errors.append(exc)
        return errors

    def build(self, ref, chart):
        """Add the dependencies chart is missing and return how many were added."""
        requirements = chart.metadata.dependencies if chart.metadata else []
        if chart.lock is not None:
            requirements = chart.lock.dependencies
        missing = collect_missing(chart.dependencies(), requirements)
        if not missing:
            return 0
        self._build(ref, chart, missing)
        return len(missing)

    def _build(self, ref, chart, deps):
        workers = self.concurrent if self.concurrent > 0 else 1
        chart_lock = threading.Lock()
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(self._add_dependency, ref, chart, chart_lock, name, dep)
                for name, dep in deps.items()
            ]
            try:
                for future in as_completed(futures):
                    future.result()
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

    def _add_dependency(self, ref, chart, chart_lock, name, dep):
        if is_local_dep(dep):
            if not isinstance(ref, LocalReference):
                raise RuntimeError(f"failed to add local dependency '{name}': no local chart reference")
            try:
                self._add_local_dependency(ref, chart, dep, chart_lock)
            except Exception as exc:
                raise RuntimeError(f"failed to add local dependency '{name}': {exc}") from exc
            return
        try:
            self._add_remote_dependency(chart, dep, chart_lock)
        except Exception as exc:
            raise RuntimeError(f"failed to add remote dependency '{name}': {exc}") from exc

    def _add_local_dependency(self, ref, chart, dep, chart_lock=None):
        chart_path = self._secure_local_chart_path(ref, dep)
        if not os.path.exists(chart_path):
            os.stat(chart_path) if os.path.lexists(chart_path) else None
            raise FileNotFoundError(f"no chart found at '{chart_path}' (reference '{dep.repository}')")

        try:
            constraint = Constraint(dep.version)
        except InvalidConstraintError as exc:
            raise ValueError(f"invalid version/constraint format '{dep.version}': {exc}") from exc

        try:
            subchart = load(chart_path)
        except (ValueError, OSError) as exc:
            shown = chart_path.removeprefix(ref.work_dir)
            raise ValueError(
                f"failed to load chart from '{shown}' (reference '{dep.repository}'): {exc}"
            ) from exc

        version = Version.parse(subchart.metadata.version)
        if not constraint.check(version):
            raise ValueError(f"can't get a valid version for constraint '{dep.version}'")

        with chart_lock or threading.Lock():
            chart.add_dependency(subchart)

    def _add_remote_dependency(self, chart, dep, chart_lock=None):
        repo = self._resolve_repository(dep.repository)
        try:
            repo.strategically_load_index()
        except Exception as exc:
            raise RepositoryError(f"failed to load index for '{dep.name}': {exc}") from exc

        chart_version = repo.get(dep.name, dep.version)
        try:
            data = repo.download_chart(chart_version)
        except Exception as exc:
            raise RepositoryError(
                f"chart download of version '{chart_version.version}' failed: {exc}"
            ) from exc
        try:
            subchart = load_archive(data)
        except (ValueError, OSError) as exc:
            raise RepositoryError(
                f"failed to load downloaded archive of version '{chart_version.version}': {exc}"
            ) from exc

        with chart_lock or threading.Lock():
            chart.add_dependency(subchart)

    def _resolve_repository(self, url):
        with self._lock:
            normalized = normalize_url(url)
            if normalized not in self.repositories:
                if self.get_repository_callback is None:
                    raise RepositoryError(f"no chart repository for URL '{normalized}'")
                try:
                    repo = self.get_repository_callback(normalized)
                except Exception as exc:
                    raise RepositoryError(
                        f"failed to get chart repository for URL '{normalized}': {exc}"
                    ) from exc
                self.repositories[normalized] = repo
            return self.repositories[normalized]

    def _secure_local_chart_path(self, ref, dep):
        try:
            parts = _parse_url(dep.repository)
        except InvalidURLError as exc:
            raise ValueError(f"failed to parse alleged local chart reference: {exc}") from exc
        if parts.scheme not in ("", "file"):
            raise ValueError(f"'{dep.repository}' is not a local chart reference")
        relative = _relative(ref.work_dir, ref.path)
        return secure_join(ref.work_dir, _join(relative, parts.netloc, parts.path))


def _relative(base, target):
    if os.path.isabs(base) != os.path.isabs(target) or not target:
        return target
    try:
        return os.path.relpath(target, base or os.curdir)
    except ValueError:
        return target


def _join(*elements):
    kept = [element for element in elements if element]
    if not kept:
        return ""
    return os.path.normpath(os.sep.join(kept))


def collect_missing(current, reqs):
    """Return the requirements absent from the current subcharts, keyed by alias or name."""
    if len(current) == len(reqs):
        return {}
    present = {chart.name for chart in current}
    missing = {}
    for dep in reqs:
        name = dep.alias or dep.name
        if name in present:
            continue
        missing[name] = dep
    return missing


def is_local_dep(dep):
    """Return whether dep refers to a chart on the local file system."""
    return dep.repository == "" or dep.repository.startswith("file://")