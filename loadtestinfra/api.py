"""Resource model for load tests in the e2etest.grpc.io/v1 API group."""

from __future__ import annotations

import copy
import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class GroupVersion:
    """An API group paired with a version."""

    group: str
    version: str

    def api_version(self) -> str:
        """Return the value used in the apiVersion field of resources."""
        if not self.group:
            return self.version
        return f"{self.group}/{self.version}"

    def __str__(self) -> str:
        return self.api_version()


GROUP_VERSION = GroupVersion(group="e2etest.grpc.io", version="v1")

LOAD_TEST_KIND = "LoadTest"
LOAD_TEST_LIST_KIND = "LoadTestList"

# Reason strings recorded in a load test's status.
INIT_CONTAINER_ERROR = "InitContainerError"
CONTAINER_ERROR = "ContainerError"
FAILED_SETTING_DEFAULTS_ERROR = "FailedSettingDefaults"
CONFIGURATION_ERROR = "ConfigurationError"
PODS_MISSING = "PodsMissing"
POOL_ERROR = "PoolError"
TIMEOUT_ERRORED = "TimeoutErrored"
KUBERNETES_ERROR = "KubernetesError"


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise TypeError(f"{what} must be a mapping, not {type(data).__name__}")
    return data


def _opt_str(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    return None if value is None else str(value)


def _str_list(data: Mapping[str, Any], key: str) -> list[str]:
    value = data.get(key) or []
    if isinstance(value, (str, bytes)) or not isinstance(value, list):
        raise TypeError(f"{key} must be a list of strings")
    return [str(item) for item in value]


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_time(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    text = str(value)
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"invalid timestamp {value!r}") from exc
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass
class EnvVar:
    """An environment variable for a container."""

    name: str
    value: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    def _to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.value:
            out["value"] = self.value
        out.update(copy.deepcopy(self.extra))
        return out

    @classmethod
    def _from_dict(cls, data: Any) -> EnvVar:
        data = _mapping(data, "env var")
        extra = {k: copy.deepcopy(v) for k, v in data.items() if k not in ("name", "value")}
        return cls(name=str(data.get("name", "")), value=str(data.get("value") or ""), extra=extra)


def _env_list(data: Mapping[str, Any]) -> list[EnvVar]:
    return [EnvVar._from_dict(item) for item in data.get("env") or []]


@dataclass
class Container:
    """A container description; fields not modelled here are kept in extra."""

    name: str = ""
    image: str = ""
    command: list[str] = field(default_factory=list)
    args: list[str] = field(default_factory=list)
    env: list[EnvVar] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("name", "image", "command", "args", "env")

    def _to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.image:
            out["image"] = self.image
        if self.command:
            out["command"] = list(self.command)
        if self.args:
            out["args"] = list(self.args)
        if self.env:
            out["env"] = [var._to_dict() for var in self.env]
        out.update(copy.deepcopy(self.extra))
        return out

    @classmethod
    def _from_dict(cls, data: Any) -> Container:
        data = _mapping(data, "container")
        return cls(
            name=str(data.get("name") or ""),
            image=str(data.get("image") or ""),
            command=_str_list(data, "command"),
            args=_str_list(data, "args"),
            env=_env_list(data),
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in cls._KEYS},
        )


@dataclass
class Clone:
    """Which repository and snapshot a component's code comes from."""

    image: str | None = None
    repo: str | None = None
    git_ref: str | None = None

    def _to_dict(self) -> dict[str, Any]:
        pairs = (("image", self.image), ("repo", self.repo), ("gitRef", self.git_ref))
        return {key: value for key, value in pairs if value is not None}

    @classmethod
    def _from_dict(cls, data: Any) -> Clone:
        data = _mapping(data, "clone")
        return cls(
            image=_opt_str(data, "image"),
            repo=_opt_str(data, "repo"),
            git_ref=_opt_str(data, "gitRef"),
        )


@dataclass
class Build:
    """How cloned code is built before the run containers start."""

    image: str | None = None
    command: list[str] = field(default_factory=list)
    args: list[str] = field(default_factory=list)
    env: list[EnvVar] = field(default_factory=list)

    def _to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.image is not None:
            out["image"] = self.image
        if self.command:
            out["command"] = list(self.command)
        if self.args:
            out["args"] = list(self.args)
        if self.env:
            out["env"] = [var._to_dict() for var in self.env]
        return out

    @classmethod
    def _from_dict(cls, data: Any) -> Build:
        data = _mapping(data, "build")
        return cls(
            image=_opt_str(data, "image"),
            command=_str_list(data, "command"),
            args=_str_list(data, "args"),
            env=_env_list(data),
        )


@dataclass
class _Component:
    name: str | None = None
    language: str = ""
    pool: str | None = None
    clone: Clone | None = None
    build: Build | None = None
    run: list[Container] = field(default_factory=list)

    def _to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.name is not None:
            out["name"] = self.name
        out["language"] = self.language
        if self.pool is not None:
            out["pool"] = self.pool
        if self.clone is not None:
            out["clone"] = self.clone._to_dict()
        if self.build is not None:
            out["build"] = self.build._to_dict()
        out["run"] = [container._to_dict() for container in self.run]
        return out

    @classmethod
    def _from_dict(cls, data: Any):
        data = _mapping(data, cls.__name__.lower())
        clone = data.get("clone")
        build = data.get("build")
        return cls(
            name=_opt_str(data, "name"),
            language=str(data.get("language") or ""),
            pool=_opt_str(data, "pool"),
            clone=None if clone is None else Clone._from_dict(clone),
            build=None if build is None else Build._from_dict(build),
            run=[Container._from_dict(item) for item in data.get("run") or []],
        )


@dataclass
class Driver(_Component):
    """The component that orchestrates the servers and clients of a test."""


@dataclass
class Server(_Component):
    """A component that receives traffic from clients."""


@dataclass
class Client(_Component):
    """A component that sends traffic to a server."""


@dataclass
class Results:
    """Where the results of a test are stored."""

    big_query_table: str | None = None

    def _to_dict(self) -> dict[str, Any]:
        if self.big_query_table is None:
            return {}
        return {"bigQueryTable": self.big_query_table}

    @classmethod
    def _from_dict(cls, data: Any) -> Results:
        data = _mapping(data, "results")
        return cls(big_query_table=_opt_str(data, "bigQueryTable"))


@dataclass
class LoadTestSpec:
    """The desired state of a load test."""

    driver: Driver | None = None
    servers: list[Server] = field(default_factory=list)
    clients: list[Client] = field(default_factory=list)
    results: Results | None = None
    scenarios_json: str = ""
    timeout_seconds: int = 0
    ttl_seconds: int = 0

    def _to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.driver is not None:
            out["driver"] = self.driver._to_dict()
        if self.servers:
            out["servers"] = [server._to_dict() for server in self.servers]
        if self.clients:
            out["clients"] = [client._to_dict() for client in self.clients]
        if self.results is not None:
            out["results"] = self.results._to_dict()
        if self.scenarios_json:
            out["scenariosJSON"] = self.scenarios_json
        out["timeoutSeconds"] = self.timeout_seconds
        out["ttlSeconds"] = self.ttl_seconds
        return out

    @classmethod
    def _from_dict(cls, data: Any) -> LoadTestSpec:
        data = _mapping(data, "spec")
        driver = data.get("driver")
        results = data.get("results")
        return cls(
            driver=None if driver is None else Driver._from_dict(driver),
            servers=[Server._from_dict(item) for item in data.get("servers") or []],
            clients=[Client._from_dict(item) for item in data.get("clients") or []],
            results=None if results is None else Results._from_dict(results),
            scenarios_json=str(data.get("scenariosJSON") or ""),
            timeout_seconds=int(data.get("timeoutSeconds") or 0),
            ttl_seconds=int(data.get("ttlSeconds") or 0),
        )


class LoadTestState(str, enum.Enum):
    """The state of a load test, derived from its components."""

    UNKNOWN = "Unknown"
    INITIALIZING = "Initializing"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    ERRORED = "Errored"

    def is_terminated(self) -> bool:
        """Return True once the test has succeeded or errored."""
        return self in (LoadTestState.SUCCEEDED, LoadTestState.ERRORED)


@dataclass
class LoadTestStatus:
    """The observed state of a load test."""

    state: LoadTestState = LoadTestState.UNKNOWN
    reason: str = ""
    message: str = ""
    start_time: datetime | None = None
    stop_time: datetime | None = None

    def _to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"state": self.state.value}
        if self.reason:
            out["reason"] = self.reason
        if self.message:
            out["message"] = self.message
        if self.start_time is not None:
            out["startTime"] = _format_time(self.start_time)
        if self.stop_time is not None:
            out["stopTime"] = _format_time(self.stop_time)
        return out

    @classmethod
    def _from_dict(cls, data: Any) -> LoadTestStatus:
        data = _mapping(data, "status")
        state = data.get("state") or LoadTestState.UNKNOWN.value
        return cls(
            state=LoadTestState(state),
            reason=str(data.get("reason") or ""),
            message=str(data.get("message") or ""),
            start_time=_parse_time(data.get("startTime")),
            stop_time=_parse_time(data.get("stopTime")),
        )


@dataclass
class ObjectMeta:
    """Resource metadata; fields not modelled here are kept in extra."""

    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    _KEYS = ("name", "namespace", "labels", "annotations")

    def _to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.name:
            out["name"] = self.name
        if self.namespace:
            out["namespace"] = self.namespace
        if self.labels:
            out["labels"] = dict(self.labels)
        if self.annotations:
            out["annotations"] = dict(self.annotations)
        out.update(copy.deepcopy(self.extra))
        return out

    @classmethod
    def _from_dict(cls, data: Any) -> ObjectMeta:
        data = _mapping(data, "metadata")
        return cls(
            name=str(data.get("name") or ""),
            namespace=str(data.get("namespace") or ""),
            labels={str(k): str(v) for k, v in (data.get("labels") or {}).items()},
            annotations={str(k): str(v) for k, v in (data.get("annotations") or {}).items()},
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in cls._KEYS},
        )


@dataclass
class LoadTest:
    """A load test resource."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: LoadTestSpec = field(default_factory=LoadTestSpec)
    status: LoadTestStatus = field(default_factory=LoadTestStatus)
    api_version: str = GROUP_VERSION.api_version()
    kind: str = LOAD_TEST_KIND

    def to_dict(self) -> dict[str, Any]:
        """Return the resource in its JSON form."""
        out: dict[str, Any] = {}
        if self.api_version:
            out["apiVersion"] = self.api_version
        if self.kind:
            out["kind"] = self.kind
        out["metadata"] = self.metadata._to_dict()
        out["spec"] = self.spec._to_dict()
        out["status"] = self.status._to_dict()
        return out

    @classmethod
    def from_dict(cls, data: Any) -> LoadTest:
        """Build a load test from its JSON form."""
        data = _mapping(data, "load test")
        return cls(
            metadata=ObjectMeta._from_dict(data.get("metadata") or {}),
            spec=LoadTestSpec._from_dict(data.get("spec") or {}),
            status=LoadTestStatus._from_dict(data.get("status") or {}),
            api_version=str(data.get("apiVersion") or ""),
            kind=str(data.get("kind") or ""),
        )

    def deep_copy(self) -> LoadTest:
        """Return an independent copy of this load test."""
        return copy.deepcopy(self)


@dataclass
class LoadTestList:
    """A list of load tests, with list metadata kept as given."""

    items: list[LoadTest] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    api_version: str = GROUP_VERSION.api_version()
    kind: str = LOAD_TEST_LIST_KIND

    def to_dict(self) -> dict[str, Any]:
        """Return the list in its JSON form."""
        out: dict[str, Any] = {}
        if self.api_version:
            out["apiVersion"] = self.api_version
        if self.kind:
            out["kind"] = self.kind
        out["metadata"] = copy.deepcopy(self.metadata)
        out["items"] = [item.to_dict() for item in self.items]
        return out

    @classmethod
    def from_dict(cls, data: Any) -> LoadTestList:
        """Build a list of load tests from its JSON form."""
        data = _mapping(data, "load test list")
        return cls(
            items=[LoadTest.from_dict(item) for item in data.get("items") or []],
            metadata=copy.deepcopy(dict(_mapping(data.get("metadata") or {}, "metadata"))),
            api_version=str(data.get("apiVersion") or ""),
            kind=str(data.get("kind") or ""),
        )