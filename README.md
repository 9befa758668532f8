# helmsource

`helmsource` is a library for working with Helm charts: it loads charts from
a directory or a packaged `.tgz` archive, reads chart metadata, overwrites a
chart's default `values.yaml`, resolves a chart's missing dependencies from
the local file system or from chart repositories, and packages a chart to a
`.tgz` file. It also loads, caches and queries chart repository indexes and
downloads charts from them.

## Installation

```
pip install helmsource
```

For running the test suite:

```
pip install "helmsource[test]"
pytest
```

## Modules

- `helmsource.chartmodel` – the chart model (`Chart`, `Metadata`,
  `Dependency`, `Lock`, `ChartFile`) with `load`, `load_dir`, `load_archive`
  and `save`, which writes `<name>-<version>.tgz` into a directory.
- `helmsource.metadata` – `load_chart_metadata`,
  `load_chart_metadata_from_dir` and `load_chart_metadata_from_archive`, which
  read `Chart.yaml` (merging `requirements.yaml` for v1 charts) without loading
  the whole chart, and `overwrite_chart_default_values`.
- `helmsource.versions` – `Version`, `parse_version` and `Constraint` for
  SemVer versions and ranges such as `>=1.0.0, <2.0.0 || ^3`.
- `helmsource.repoindex` – `IndexFile`, `ChartVersion` and `load_index` for
  repository `index.yaml` files.
- `helmsource.repository` – `ChartRepository`, `new_chart_repository` and
  `normalize_url`.
- `helmsource.getter` – `HTTPGetter`, `Provider`, `Providers` and client
  options built from secret data.
- `helmsource.builder` – `LocalReference`, `RemoteReference`,
  `BuildOptions`, `Build`, `describe_build` and `package_to_path`.
- `helmsource.dependencies` – `DependencyManager`, `collect_missing` and
  `is_local_dep`.
- `helmsource.fsutil` – `rename_with_fallback`, `copy_dir`, `copy_file`,
  `is_dir`, `is_symlink` and `secure_join`.
- `helmsource.limits` – the size limits below.

## Packaging a local chart with its dependencies

```python
from helmsource.builder import LocalReference, package_to_path
from helmsource.chartmodel import load
from helmsource.dependencies import DependencyManager

ref = LocalReference(work_dir="/srv/source", path="/srv/source/charts/app")
chart = load(ref.path)

manager = DependencyManager()
added = manager.build(ref, chart)   # number of missing dependencies added
package_to_path(chart, "/tmp/app.tgz")
```

Local dependencies (an empty repository or a `file://` reference) are looked
up relative to the chart, and may not lead outside `work_dir`. Remote
dependencies are taken from `DependencyManager(repositories=...)`, a mapping
of normalized repository URLs (ending in a single `/`) to `ChartRepository`
objects; a `get_repository_callback` is asked for any URL not in the mapping,
and `concurrent` sets how many dependencies are added at once. A dependency
that cannot be added raises an error naming it. `manager.clear()` unloads
every repository and removes the index files they cached.

## Using a chart repository

```python
from helmsource.getter import HTTPGetter, Provider, Providers
from helmsource.repository import new_chart_repository

providers = Providers([Provider(schemes=["http", "https"], new=HTTPGetter)])
repo = new_chart_repository("https://charts.example.com", "", providers, [])

repo.strategically_load_index()      # downloads and caches index.yaml if needed
version = repo.get("app", "^1.2")
archive = repo.download_chart(version)   # the chart archive as bytes
repo.remove_cache()
```

`get` first looks for an exact version match, then treats the version as a
SemVer constraint; an empty version or `*` selects the latest stable release.
Versions that differ only in build metadata are ordered by creation time.
Relative chart URLs are resolved against the repository URL.

## Credentials

`client_options_from_secret(directory, secret)` turns a `Secret` whose `data`
holds `username`, `password`, `certFile`, `keyFile` and `caFile` bytes into a
list of `BasicAuth` and `TLSClientConfig` options for `HTTPGetter.get`. TLS
material is written to new files in `directory`. A username without a
password, or a certificate without a key, raises `ValueError`.

```python
from helmsource.getter import Secret, client_options_from_secret

secret = Secret(name="repo-auth", data={"username": b"user", "password": b"password"})
options = client_options_from_secret("/tmp/tls", secret)
```

## Build options and results

`BuildOptions` carries `version_metadata`, `values_files`, `cached_chart` and
`force`; `get_values_files()` returns `None` when the only values file is the
default `values.yaml`. `Build` records a build's `path`, `name`, `version`,
`values_files`, `resolved_dependencies` and whether it was `packaged`;
`summary()` (or `describe_build`, which also accepts `None`) describes it in
one sentence. `Version.parse(...).with_metadata("build.7")` stamps build
metadata onto a version.

## Size limits

Repository indexes larger than 50 MiB, chart archives larger than 10 MiB and
individual chart metadata files larger than 5 MiB are rejected.

## What this package does not do

There is no single call that takes a `LocalReference` or `RemoteReference`
and produces a finished chart: checking a cached chart, merging values files,
stamping version metadata, resolving dependencies and packaging are separate
steps that the caller combines as above. Failures are raised as ordinary
exceptions rather than sorted into build error categories. There is no
command-line program.