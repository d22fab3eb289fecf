"""HTTP client for load test resources served by a Kubernetes API server."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import requests

from loadtestinfra.api import GROUP_VERSION, LoadTest, LoadTestList

API_PATH = "/apis"
RESOURCE = "loadtests"
DEFAULT_USER_AGENT = "loadtestinfra (python)"


class ApiError(Exception):
    """Raised when the API server rejects a request or answers unreadably."""

    def __init__(self, status_code: int, reason: str = "", message: str = "") -> None:
        self.status_code = status_code
        self.reason = reason
        self.message = message
        text = message or reason or "request failed"
        super().__init__(f"{text} (status {status_code})")


@dataclass
class RestConfig:
    """Connection settings for an API server."""

    host: str
    bearer_token: str | None = None
    user_agent: str = ""
    verify: bool | str = True
    cert: str | tuple[str, str] | None = None
    timeout: float | None = None
    headers: dict[str, str] = field(default_factory=dict)


def _query(opts: Mapping[str, Any] | None) -> list[tuple[str, str]]:
    params: list[tuple[str, str]] = []
    for key, value in (opts or {}).items():
        if value is None:
            continue
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            if isinstance(item, bool):
                params.append((key, "true" if item else "false"))
            else:
                params.append((key, str(item)))
    return params


def _raise_for_status(response: requests.Response) -> None:
    if 200 <= response.status_code < 300:
        return
    reason = ""
    message = ""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, Mapping):
        reason = str(body.get("reason") or "")
        message = str(body.get("message") or "")
    if not message:
        message = response.text.strip() or response.reason or ""
    raise ApiError(response.status_code, reason, message)


def _json_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise ApiError(response.status_code, "", f"invalid response body: {exc}") from exc


class LoadTestClientset:
    """Access to version 1 load tests on an API server."""

    def __init__(self, config: RestConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self._session = session or requests.Session()
        self._session.headers.update(config.headers)
        self._session.headers["User-Agent"] = config.user_agent or DEFAULT_USER_AGENT
        self._session.headers["Accept"] = "application/json"
        if config.bearer_token:
            self._session.headers["Authorization"] = f"Bearer {config.bearer_token}"
        self._base_url = (
            f"{config.host.rstrip('/')}{API_PATH}/{GROUP_VERSION.group}/{GROUP_VERSION.version}"
        )

    def load_tests(self, namespace: str) -> LoadTestGetter:
        """Return operations on load tests in a namespace."""
        return LoadTestGetter(self, namespace)

    def _url(self, namespace: str, name: str | None = None) -> str:
        url = self._base_url
        if namespace:
            url += f"/namespaces/{quote(namespace, safe='')}"
        url += f"/{RESOURCE}"
        if name is not None:
            url += f"/{quote(name, safe='')}"
        return url

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            response = self._session.request(
                method,
                url,
                verify=self.config.verify,
                cert=self.config.cert,
                timeout=self.config.timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise ApiError(0, "", f"request failed: {exc}") from exc
        _raise_for_status(response)
        return response


class LoadTestGetter:
    """Create, fetch, list and delete load tests in one namespace."""

    def __init__(self, clientset: LoadTestClientset, namespace: str) -> None:
        self._clientset = clientset
        self.namespace = namespace

    @staticmethod
    def _require_name(name: str) -> str:
        if not name:
            raise ValueError("resource name may not be empty")
        return name

    def create(self, test: LoadTest, opts: Mapping[str, Any] | None = None) -> LoadTest:
        """Save a new load test and return it as stored by the server."""
        response = self._clientset._request(
            "POST",
            self._clientset._url(self.namespace),
            params=_query(opts),
            json=test.to_dict(),
        )
        return LoadTest.from_dict(_json_body(response))

    def get(self, name: str, opts: Mapping[str, Any] | None = None) -> LoadTest:
        """Fetch a load test by name."""
        response = self._clientset._request(
            "GET",
            self._clientset._url(self.namespace, self._require_name(name)),
            params=_query(opts),
        )
        return LoadTest.from_dict(_json_body(response))

    def list(self, opts: Mapping[str, Any] | None = None) -> LoadTestList:
        """Fetch all load tests matching the options."""
        response = self._clientset._request(
            "GET",
            self._clientset._url(self.namespace),
            params=_query(opts),
        )
        return LoadTestList.from_dict(_json_body(response))

    def delete(self, name: str, opts: Mapping[str, Any] | None = None) -> None:
        """Remove a load test by name."""
        self._clientset._request(
            "DELETE",
            self._clientset._url(self.namespace, self._require_name(name)),
            json=dict(opts or {}),
        )


def new_for_config(config: RestConfig) -> LoadTestClientset:
    """Build a clientset for load tests from a connection config."""
    if not config.host:
        raise ValueError("host must be set in the config")
    host = config.host if "://" in config.host else f"https://{config.host}"
    settings = dataclasses.replace(
        config,
        host=host,
        user_agent=config.user_agent or DEFAULT_USER_AGENT,
        headers=dict(config.headers),
    )
    return LoadTestClientset(settings)