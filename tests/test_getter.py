import os
from unittest import mock

import pytest

from helmsource.getter import (
    BasicAuth,
    HTTPGetter,
    Provider,
    Providers,
    Secret,
    TLSClientConfig,
    basic_auth_from_secret,
    client_options_from_secret,
    tls_client_config_from_secret,
)

BASIC = {"username": b"user", "password": b"password"}
TLS = {"certFile": b"fixture", "keyFile": b"fixture", "caFile": b"fixture"}


@pytest.mark.parametrize(
    "parts, expected",
    [([BASIC], 1), ([TLS], 1), ([BASIC, TLS], 2), ([], 0)],
)
def test_client_options_from_secret(tmp_path, parts, expected):
    data = {}
    for part in parts:
        data.update(part)
    assert len(client_options_from_secret(str(tmp_path), Secret(data=data))) == expected


def test_basic_auth_from_secret():
    assert basic_auth_from_secret(Secret(data=dict(BASIC))) == BasicAuth("user", "password")
    assert basic_auth_from_secret(Secret()) is None


@pytest.mark.parametrize("missing", ["username", "password"])
def test_basic_auth_missing_field(missing):
    data = dict(BASIC)
    del data[missing]
    with pytest.raises(ValueError, match="required fields"):
        basic_auth_from_secret(Secret(name="s", data=data))


def test_tls_client_config_writes_files(tmp_path):
    cfg = tls_client_config_from_secret(str(tmp_path), Secret(data=dict(TLS)))
    for path in (cfg.cert_file, cfg.key_file, cfg.ca_file):
        assert os.path.dirname(path) == str(tmp_path)
        with open(path, "rb") as handle:
            assert handle.read() == b"fixture"


@pytest.mark.parametrize("missing", ["certFile", "keyFile"])
def test_tls_missing_pair(tmp_path, missing):
    data = dict(TLS)
    del data[missing]
    with pytest.raises(ValueError, match="require each other"):
        tls_client_config_from_secret(str(tmp_path), Secret(data=data))


def test_tls_without_ca(tmp_path):
    data = dict(TLS)
    del data["caFile"]
    cfg = tls_client_config_from_secret(str(tmp_path), Secret(data=data))
    assert cfg.ca_file == ""
    assert cfg.cert_file.endswith(".crt")


def test_tls_empty(tmp_path):
    assert tls_client_config_from_secret(str(tmp_path), Secret()) is None


def test_providers_by_scheme():
    providers = Providers([Provider(schemes=["https"], new=HTTPGetter)])
    assert isinstance(providers.by_scheme("https"), HTTPGetter)
    with pytest.raises(ValueError, match='scheme "http" not supported'):
        providers.by_scheme("http")


def test_http_getter_applies_options():
    response = mock.Mock(status_code=200, content=b"body", reason="OK")
    with mock.patch("requests.get", return_value=response) as fake:
        body = HTTPGetter().get(
            "https://example.com/x",
            [BasicAuth("user", "password"), TLSClientConfig("c", "k", "ca")],
        )
    assert body == b"body"
    kwargs = fake.call_args.kwargs
    assert kwargs["auth"] == ("user", "password")
    assert kwargs["cert"] == ("c", "k")
    assert kwargs["verify"] == "ca"


def test_http_getter_error_status():
    response = mock.Mock(status_code=404, content=b"", reason="Not Found")
    with mock.patch("requests.get", return_value=response):
        with pytest.raises(OSError, match="404"):
            HTTPGetter().get("https://example.com/x")