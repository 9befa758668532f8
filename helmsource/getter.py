"""HTTP getters for chart repositories and client options built from secrets."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field

import requests


@dataclass
class Secret:
    """A named set of secret data fields holding bytes."""

    name: str = ""
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class BasicAuth:
    """Client option: HTTP basic authentication."""

    username: str
    password: str


@dataclass(frozen=True)
class TLSClientConfig:
    """Client option: paths of TLS certificate, key and CA files."""

    cert_file: str = ""
    key_file: str = ""
    ca_file: str = ""


class HTTPGetter:
    """Fetches URLs over HTTP(S), applying BasicAuth and TLSClientConfig options."""

    def __init__(self, timeout=60):
        self.timeout = timeout

    def get(self, url, options=None):
        """Return the body of url as bytes; raise on transport or HTTP errors."""
        kwargs = {"timeout": self.timeout}
        for option in options or ():
            if isinstance(option, BasicAuth):
                kwargs["auth"] = (option.username, option.password)
            elif isinstance(option, TLSClientConfig):
                if option.cert_file and option.key_file:
                    kwargs["cert"] = (option.cert_file, option.key_file)
                if option.ca_file:
                    kwargs["verify"] = option.ca_file
        response = requests.get(url, **kwargs)
        if response.status_code != 200:
            raise OSError(f"failed to fetch {url} : {response.status_code} {response.reason}")
        return response.content


@dataclass
class Provider:
    """Constructs a getter for the URL schemes it serves."""

    schemes: list
    new: object


class Providers(list):
    """A list of Provider objects."""

    def by_scheme(self, scheme):
        """Return a new getter for scheme, or raise ValueError if none serves it."""
        for provider in self:
            if scheme in provider.schemes:
                return provider.new()
        raise ValueError(f'scheme "{scheme}" not supported')


def client_options_from_secret(directory, secret):
    """Return the list of client options described by secret."""
    options = []
    basic_auth = basic_auth_from_secret(secret)
    if basic_auth is not None:
        options.append(basic_auth)
    tls_config = tls_client_config_from_secret(directory, secret)
    if tls_config is not None:
        options.append(tls_config)
    return options


def _field(secret, key):
    value = secret.data.get(key) or b""
    return value.decode() if isinstance(value, (bytes, bytearray)) else str(value)


def basic_auth_from_secret(secret):
    """Return BasicAuth for secret, None if it has neither field, or raise if only one."""
    username = _field(secret, "username")
    password = _field(secret, "password")
    if not username and not password:
        return None
    if not username or not password:
        raise ValueError(
            f"invalid '{secret.name}' secret data: required fields 'username' and 'password'"
        )
    return BasicAuth(username, password)


def _write_temp(directory, prefix, suffix, data):
    fd, path = tempfile.mkstemp(prefix=prefix, suffix=suffix, dir=directory)
    with os.fdopen(fd, "wb") as handle:
        handle.write(data)
    return path


def tls_client_config_from_secret(directory, secret):
    """Write the TLS files of secret into directory and return a TLSClientConfig.

    Returns None if the secret holds no TLS fields; raises if only one of
    certFile and keyFile is present.
    """
    cert = secret.data.get("certFile") or b""
    key = secret.data.get("keyFile") or b""
    ca = secret.data.get("caFile") or b""
    if not cert and not key and not ca:
        return None
    if bool(cert) != bool(key):
        raise ValueError(
            f"invalid '{secret.name}' secret data: fields 'certFile' and 'keyFile' "
            "require each other's presence"
        )
    cert_path = key_path = ca_path = ""
    if cert and key:
        cert_path = _write_temp(directory, "cert-", ".crt", cert)
        key_path = _write_temp(directory, "key-", ".crt", key)
    if ca:
        ca_path = _write_temp(directory, "ca-", ".pem", ca)
    return TLSClientConfig(cert_path, key_path, ca_path)