import pytest

from helmsource.builder import (
    Build,
    BuildOptions,
    LocalReference,
    RemoteReference,
    describe_build,
    package_to_path,
)
from helmsource.chartmodel import load, load_dir


@pytest.mark.parametrize(
    "ref",
    [
        LocalReference(path="/a/path"),
        LocalReference(path="/a/path", work_dir="/with/a/workdir"),
    ],
)
def test_local_reference_valid(ref):
    assert ref.validate() is None
    assert ref.path == "/a/path"


def test_local_reference_without_path():
    with pytest.raises(ValueError, match="no path set for local chart reference"):
        LocalReference(work_dir="/just/a/workdir").validate()


def test_remote_reference_valid():
    ref = RemoteReference(name="valid-chart-name")
    assert ref.validate() is None
    assert ref.name == "valid-chart-name"


@pytest.mark.parametrize(
    "name, message",
    [
        ("iNvAlID-ChArT-NAmE!", "invalid chart name 'iNvAlID-ChArT-NAmE!'"),
        ("i-shall/not", "invalid chart name 'i-shall/not'"),
        ("", "no name set for remote chart reference"),
    ],
)
def test_remote_reference_invalid(name, message):
    with pytest.raises(ValueError) as info:
        RemoteReference(name=name).validate()
    assert message in str(info.value)


def test_get_values_files_default_only():
    assert BuildOptions(values_files=["values.yaml"]).get_values_files() is None
    assert BuildOptions(values_files=["./values.yaml"]).get_values_files() is None


def test_get_values_files_multiple():
    opts = BuildOptions(values_files=["values.yaml", "foo.yaml"])
    assert opts.get_values_files() == ["values.yaml", "foo.yaml"]


@pytest.mark.parametrize(
    "build, want",
    [
        (
            Build(name="chart", version="1.2.3-rc.1+bd6bf40"),
            "Pulled 'chart' chart with version '1.2.3-rc.1+bd6bf40'.",
        ),
        (
            Build(name="chart", version="arbitrary-version", packaged=True, values_files=["a.yaml", "b.yaml"]),
            "Packaged 'chart' chart with version 'arbitrary-version', with merged values files [a.yaml b.yaml].",
        ),
        (
            Build(name="chart", version="arbitrary-version", packaged=True, resolved_dependencies=5),
            "Packaged 'chart' chart with version 'arbitrary-version', resolving 5 dependencies before packaging.",
        ),
        (Build(), "No chart build."),
    ],
)
def test_build_summary(build, want):
    assert build.summary() == want
    assert describe_build(build) == want


def test_describe_no_build():
    assert describe_build(None) == "No chart build."


def test_build_str():
    assert str(Build()) == ""
    assert str(Build(path="/foo/")) == "/foo/"


def _make_chart_dir(root):
    chart_dir = root / "helmchart"
    (chart_dir / "templates").mkdir(parents=True)
    (chart_dir / "Chart.yaml").write_text("apiVersion: v2\nname: helmchart\nversion: 0.1.0\n")
    (chart_dir / "values.yaml").write_text("replicaCount: 1\n")
    (chart_dir / "templates" / "configmap.yaml").write_text("kind: ConfigMap\n")
    return chart_dir


def test_package_to_path(tmp_path):
    chart = load_dir(str(_make_chart_dir(tmp_path)))
    out = tmp_path / "out" / "chart-0.1.0.tgz"
    out.parent.mkdir()
    package_to_path(chart, str(out))
    assert out.is_file()
    loaded = load(str(out))
    assert loaded.metadata.name == "helmchart"
    assert loaded.metadata.version == "0.1.0"
    assert loaded.values == {"replicaCount": 1}