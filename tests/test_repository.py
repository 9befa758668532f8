import datetime
import hashlib
import io
import os

import pytest

from helmsource.chartmodel import Metadata
from helmsource.getter import BasicAuth, HTTPGetter, Provider, Providers
from helmsource.repoindex import ChartVersion, IndexFile, NoChartNameError
from helmsource.repository import (
    ChartRepository,
    InvalidURLError,
    RepositoryError,
    new_chart_repository,
    normalize_url,
)

LOCAL_INDEX = b"""apiVersion: v1
entries:
  nginx:
    - urls:
        - https://kubernetes-charts.storage.googleapis.com/nginx-0.1.0.tgz
      name: nginx
      description: string
      version: 0.1.0
      home: https://github.com/something
      digest: "sha256:1234567890abcdef"
      keywords: [popular, web server, proxy]
    - urls:
        - https://kubernetes-charts.storage.googleapis.com/nginx-0.2.0.tgz
      name: nginx
      description: string
      version: 0.2.0
      home: https://github.com/something/else
      digest: "sha256:1234567890abcdef"
      keywords: [popular, web server, proxy]
  alpine:
    - urls:
        - https://kubernetes-charts.storage.googleapis.com/alpine-1.0.0.tgz
        - http://storage2.googleapis.com/kubernetes-charts/alpine-1.0.0.tgz
      name: alpine
      description: string
      version: 1.0.0
      home: https://github.com/something
      digest: "sha256:1234567890abcdef"
      keywords: [linux, alpine, small, sumtin]
  chartWithNoURL:
    - name: chartWithNoURL
      description: string
      version: 1.0.0
"""


class MockGetter:
    def __init__(self, response=b""):
        self.response = response
        self.last_url = None

    def get(self, url, options=None):
        self.last_url = url
        return self.response


def verify_local_index(index):
    assert len(index.entries) == 3
    alpine = index.entries["alpine"]
    nginx = index.entries["nginx"]
    assert len(alpine) == 1 and len(nginx) == 2
    assert alpine[0].version == "1.0.0"
    assert set(alpine[0].keywords) >= {"linux", "alpine", "small", "sumtin"}
    assert len(alpine[0].urls) == 2
    assert [cv.version for cv in nginx] == ["0.2.0", "0.1.0"]
    assert nginx[0].home == "https://github.com/something/else"
    assert nginx[1].home == "https://github.com/something"
    assert nginx[0].digest == "sha256:1234567890abcdef"
    assert nginx[0].description == "string"


def test_new_chart_repository():
    providers = Providers([Provider(schemes=["https"], new=HTTPGetter)])
    options = [BasicAuth("username", "password")]
    repo = new_chart_repository("https://example.com", "", providers, options)
    assert repo.url == "https://example.com"
    assert isinstance(repo.client, HTTPGetter)
    assert repo.options == options
    with pytest.raises(InvalidURLError):
        new_chart_repository("https://ex ample.com", "", None, None)
    with pytest.raises(ValueError, match='^scheme "http" not supported$'):
        new_chart_repository("http://example.com", "", providers, None)


@pytest.fixture
def chart_repo():
    now = datetime.datetime.now(datetime.timezone.utc)
    repo = ChartRepository(index=IndexFile())
    charts = [
        ("0.0.1", None), ("0.1.0", None), ("0.1.1", None),
        ("0.1.5+b.min.minute", now - datetime.timedelta(minutes=1)),
        ("0.1.5+a.min.hour", now - datetime.timedelta(hours=1)),
        ("0.1.5+c.now", now),
        ("0.2.0", None), ("1.0.0", None), ("1.1.0-rc.1", None),
    ]
    for version, created in charts:
        repo.index.add(Metadata(name="chart", version=version), f"chart-{version}.tgz",
                       "http://example.com/charts", "sha256:1234567890abc")
        if created is not None:
            repo.index.entries["chart"][-1].created = created
    repo.index.sort_entries()
    return repo


@pytest.mark.parametrize(
    "version, want",
    [("0.0.1", "0.0.1"), ("", "1.0.0"), ("*", "1.0.0"), ("<1.0.0", "0.2.0"), ("0.1.5", "0.1.5+c.now")],
)
def test_get(chart_repo, version, want):
    cv = chart_repo.get("chart", version)
    assert cv.name == "chart"
    assert cv.version == want


def test_get_errors(chart_repo):
    with pytest.raises(RepositoryError, match="no 'chart' chart with version matching '>2.0.0' found"):
        chart_repo.get("chart", ">2.0.0")
    with pytest.raises(NoChartNameError, match="no chart name found"):
        chart_repo.get("non-existing", "")


def test_download_chart_relative_url():
    getter = MockGetter(b"data")
    repo = ChartRepository(url="https://example.com", client=getter)
    cv = ChartVersion(metadata=Metadata(name="chart"), urls=["charts/foo-1.0.0.tgz"])
    assert repo.download_chart(cv) == b"data"
    assert getter.last_url == "https://example.com/charts/foo-1.0.0.tgz"


@pytest.mark.parametrize("urls", [[], ["https://ex ample.com/charts/foo-1.0.0.tgz"]])
def test_download_chart_errors(urls):
    repo = ChartRepository(client=MockGetter())
    with pytest.raises(RepositoryError):
        repo.download_chart(ChartVersion(metadata=Metadata(name="chart"), urls=urls))


def test_download_index():
    getter = MockGetter(LOCAL_INDEX)
    repo = ChartRepository(url="https://example.com", client=getter)
    buf = io.BytesIO()
    repo.download_index(buf)
    assert buf.getvalue() == LOCAL_INDEX
    assert getter.last_url == "https://example.com/index.yaml"


def test_load_index_from_bytes_sets_checksum():
    repo = ChartRepository()
    repo.load_index_from_bytes(LOCAL_INDEX)
    verify_local_index(repo.index)
    assert repo.checksum == hashlib.sha256(LOCAL_INDEX).hexdigest()


def test_load_index_from_bytes_error_leaves_no_index():
    repo = ChartRepository()
    with pytest.raises(ValueError, match="no API version specified"):
        repo.load_index_from_bytes(b"entries:\n  nginx:\n    - name: nginx")
    assert repo.index is None


def test_load_from_file(tmp_path):
    path = tmp_path / "local-index.yaml"
    path.write_bytes(LOCAL_INDEX)
    repo = ChartRepository()
    repo.load_from_file(str(path))
    verify_local_index(repo.index)

    big = tmp_path / "index.yaml"
    with open(big, "wb") as handle:
        handle.truncate(50 * 1024 * 1024 + 10)
    with pytest.raises(RepositoryError, match="size of index 'index.yaml' exceeds"):
        ChartRepository().load_from_file(str(big))


def test_cache_index():
    getter = MockGetter(b"foo")
    repo = ChartRepository(url="https://example.com", client=getter)
    digest = repo.cache_index()
    try:
        assert repo.cached is True
        with open(repo.cache_path, "rb") as handle:
            assert handle.read() == b"foo"
        assert digest == hashlib.sha256(b"foo").hexdigest()
    finally:
        os.remove(repo.cache_path)


def test_strategically_load_index():
    repo = ChartRepository(index=IndexFile())
    repo.strategically_load_index()
    assert repo.cache_path == "" and repo.cached is False

    repo.index = None
    repo.cache_path = "/invalid/cache/index/path.yaml"
    with pytest.raises(RepositoryError, match="No such file or directory"):
        repo.strategically_load_index()
    assert repo.cached is False

    repo.cache_path = ""
    repo.client = MockGetter()
    with pytest.raises(RepositoryError, match="no API version specified"):
        repo.strategically_load_index()
    assert repo.cached is True
    repo.remove_cache()
    assert repo.cache_path == ""


def test_load_from_cache(tmp_path):
    path = tmp_path / "index.yaml"
    path.write_bytes(LOCAL_INDEX)
    repo = ChartRepository(cache_path=str(path))
    repo.load_from_cache()
    verify_local_index(repo.index)

    with pytest.raises(FileNotFoundError, match="No such file"):
        ChartRepository(cache_path="invalid").load_from_cache()
    with pytest.raises(RepositoryError, match="no cache path set"):
        ChartRepository().load_from_cache()


def test_has_index_and_unload():
    repo = ChartRepository()
    assert repo.has_index() is False
    repo.index = IndexFile()
    assert repo.has_index() is True
    repo.unload()
    assert repo.index is None


def test_has_cache_file():
    repo = ChartRepository()
    assert repo.has_cache_file() is False
    repo.cache_path = "foo"
    assert repo.has_cache_file() is True


def test_remove_cache(tmp_path):
    path = tmp_path / "remove-cache"
    path.write_bytes(b"")
    repo = ChartRepository(cache_path=str(path), cached=True)
    repo.remove_cache()
    assert repo.cache_path == "" and repo.cached is False
    assert not path.exists()

    repo.cache_path, repo.cached = str(path), True
    repo.remove_cache()
    assert repo.cache_path == "" and repo.cached is False


@pytest.mark.parametrize(
    "url, want",
    [
        ("http://example.com/", "http://example.com/"),
        ("http://example.com", "http://example.com/"),
        ("http://example.com//", "http://example.com/"),
        ("", ""),
    ],
)
def test_normalize_url(url, want):
    assert normalize_url(url) == want