"""System-wide defaults applied to load tests before they are reconciled."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import yaml

from loadtestinfra.api import Build, Clone, Container, Driver, EnvVar, LoadTest, LoadTestSpec

# Names, labels, paths and ports shared by the controller and its containers.
BAZEL_CACHE_VOLUME_NAME = "bazel-cache"
BAZEL_CACHE_MOUNT_PATH = "/root/.cache/bazel"
BIG_QUERY_TABLE_ENV = "BQ_RESULT_TABLE"
BUILD_INIT_CONTAINER_NAME = "build"
CLIENT_ROLE = "client"
CLONE_GIT_REF_ENV = "CLONE_GIT_REF"
CLONE_INIT_CONTAINER_NAME = "clone"
CLONE_REPO_ENV = "CLONE_REPO"
COMPONENT_NAME_LABEL = "loadtest-component"
DRIVER_ROLE = "driver"
DRIVER_PORT = 10000
DRIVER_PORT_ENV = "DRIVER_PORT"
ENABLE_PROMETHEUS_ENV = "ENABLE_PROMETHEUS"
POOL_LABEL = "pool"
READY_INIT_CONTAINER_NAME = "ready"
READY_MOUNT_PATH = "/var/data/qps_workers"
READY_OUTPUT_FILE = READY_MOUNT_PATH + "/addresses"
READY_METADATA_OUTPUT_FILE = READY_MOUNT_PATH + "/metadata.json"
READY_NODE_INFO_OUTPUT_FILE = READY_MOUNT_PATH + "/node_info.json"
READY_VOLUME_NAME = "worker-addresses"
ROLE_LABEL = "loadtest-role"
RUN_CONTAINER_NAME = "main"
SCENARIOS_FILE_ENV = "SCENARIOS_FILE"
SCENARIOS_MOUNT_PATH = "/src/scenarios"
SERVER_ROLE = "server"
SERVER_PORT = 10010
WORKSPACE_MOUNT_PATH = "/src/workspace"
WORKSPACE_VOLUME_NAME = "workspace"
KILL_AFTER_ENV = "KILL_AFTER"
POD_TIMEOUT_ENV = "POD_TIMEOUT"

# Used by PSM tests only.
SERVER_UPDATE_PORT = 18005
XDS_SERVER_CONTAINER_NAME = "xds-server"
SIDECAR_CONTAINER_NAME = "sidecar"

DEFAULT_DRIVER_LANGUAGE = "cxx"


class DefaultsError(ValueError):
    """Raised when defaults are invalid or cannot be applied to a load test."""


@dataclass
class LanguageDefault:
    """A programming language and its default build and run images."""

    language: str = ""
    build_image: str = ""
    run_image: str = ""


@dataclass
class PoolLabelMap:
    """Node label keys marking the default pools for each component role."""

    client: str = ""
    driver: str = ""
    server: str = ""


class _ImageMap:
    """Lookup of default images by language; later entries win."""

    def __init__(self, languages: list[LanguageDefault]) -> None:
        self._by_language = {ld.language: ld for ld in languages}

    def _lookup(self, language: str) -> LanguageDefault:
        try:
            return self._by_language[language]
        except KeyError:
            raise DefaultsError(f"cannot find image for language {language!r}") from None

    def build_image(self, language: str) -> str:
        return self._lookup(language).build_image

    def run_image(self, language: str) -> str:
        return self._lookup(language).run_image


def _name_or_uuid(name: str | None) -> str:
    return name if name is not None else str(uuid.uuid4())


def _text(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value)


@dataclass
class Defaults:
    """Default settings for the system."""

    component_namespace: str = ""
    default_pool_labels: PoolLabelMap | None = None
    clone_image: str = ""
    ready_image: str = ""
    driver_image: str = ""
    languages: list[LanguageDefault] = field(default_factory=list)
    kill_after: float = 0.0

    def validate(self) -> None:
        """Raise DefaultsError if a required field is missing or out of range."""
        if not self.clone_image:
            raise DefaultsError("missing image for clone init container")
        if not self.ready_image:
            raise DefaultsError("missing image for ready init container")
        if not self.driver_image:
            raise DefaultsError("missing image for driver container")

        for index, ld in enumerate(self.languages):
            if not ld.language:
                raise DefaultsError(f"language (index {index}) unnamed")
            if not ld.build_image:
                raise DefaultsError(
                    f"language {ld.language!r} (index {index}) missing image for build init container"
                )
            if not ld.run_image:
                raise DefaultsError(
                    f"language {ld.language!r} (index {index}) missing image for run container"
                )

        if self.kill_after < 0:
            raise DefaultsError("killAfter must not be negative")

    def set_load_test_defaults(self, test: LoadTest) -> None:
        """Fill in missing fields of a load test that are needed to reconcile it.

        Raises DefaultsError when a field has no viable default, such as a
        build image for a language without a configured default.
        """
        images = _ImageMap(self.languages)

        if not test.metadata.namespace:
            test.metadata.namespace = self.component_namespace

        try:
            self._set_driver_defaults(images, test.spec)
        except DefaultsError as exc:
            raise DefaultsError(f"could not set defaults for driver: {exc}") from exc

        for index, server in enumerate(test.spec.servers):
            try:
                self._set_worker_defaults(images, server, "server")
            except DefaultsError as exc:
                raise DefaultsError(
                    f"could not set defaults for server at index {index}: {exc}"
                ) from exc

        for index, client in enumerate(test.spec.clients):
            try:
                self._set_worker_defaults(images, client, "client")
            except DefaultsError as exc:
                raise DefaultsError(
                    f"could not set defaults for client at index {index}: {exc}"
                ) from exc

    def _set_clone_default(self, clone: Clone | None) -> None:
        if clone is not None and clone.image is None:
            clone.image = self.clone_image

    @staticmethod
    def _set_build_default(images: _ImageMap, language: str, build: Build | None) -> None:
        if build is not None and build.image is None:
            try:
                build.image = images.build_image(language)
            except DefaultsError as exc:
                raise DefaultsError(f"could not infer default build image: {exc}") from exc

    def _set_run_default(self, images: _ImageMap, language: str, run: list[Container]) -> None:
        # An empty list is filled only on a scratch copy; the component keeps its list.
        containers = run if run else [Container(name=RUN_CONTAINER_NAME)]
        first = containers[0]
        if not first.image:
            try:
                first.image = images.run_image(language)
            except DefaultsError as exc:
                raise DefaultsError(f"could not infer default run image: {exc}") from exc
            first.env.append(EnvVar(name=KILL_AFTER_ENV, value=f"{self.kill_after:f}"))

    def _set_driver_defaults(self, images: _ImageMap, spec: LoadTestSpec) -> None:
        if spec.driver is None:
            spec.driver = Driver()
        driver = spec.driver

        if not driver.language:
            driver.language = DEFAULT_DRIVER_LANGUAGE
        if not driver.run:
            driver.run = [Container(name=RUN_CONTAINER_NAME)]
        if not driver.run[0].image:
            driver.run[0].image = self.driver_image

        driver.name = _name_or_uuid(driver.name)
        self._set_clone_default(driver.clone)

        try:
            self._set_build_default(images, driver.language, driver.build)
        except DefaultsError as exc:
            raise DefaultsError(
                f"failed to set defaults on instructions to build the driver: {exc}"
            ) from exc

    def _set_worker_defaults(self, images: _ImageMap, component: Any, role: str) -> None:
        if component is None:
            raise DefaultsError(f"cannot set defaults on a nil {role}")

        component.name = _name_or_uuid(component.name)
        self._set_clone_default(component.clone)

        try:
            self._set_build_default(images, component.language, component.build)
        except DefaultsError as exc:
            raise DefaultsError(
                f"failed to set defaults on instructions to build the {role}: {exc}"
            ) from exc

        try:
            self._set_run_default(images, component.language, component.run)
        except DefaultsError as exc:
            raise DefaultsError(
                f"failed to set defaults on instructions to run the {role}: {exc}"
            ) from exc

    @classmethod
    def from_dict(cls, data: Any) -> Defaults:
        """Build defaults from their JSON or YAML form."""
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise DefaultsError("defaults must be a mapping")

        labels = data.get("defaultPoolLabels")
        pool_labels = None
        if labels is not None:
            if not isinstance(labels, Mapping):
                raise DefaultsError("defaultPoolLabels must be a mapping")
            pool_labels = PoolLabelMap(
                client=_text(labels, "client"),
                driver=_text(labels, "driver"),
                server=_text(labels, "server"),
            )

        raw_languages = data.get("languages") or []
        if not isinstance(raw_languages, list):
            raise DefaultsError("languages must be a list")
        languages = []
        for entry in raw_languages:
            if not isinstance(entry, Mapping):
                raise DefaultsError("each language default must be a mapping")
            languages.append(
                LanguageDefault(
                    language=_text(entry, "language"),
                    build_image=_text(entry, "buildImage"),
                    run_image=_text(entry, "runImage"),
                )
            )

        raw_kill_after = data.get("killAfter")
        if raw_kill_after is None:
            kill_after = 0.0
        elif isinstance(raw_kill_after, bool):
            raise DefaultsError("killAfter must be a number")
        else:
            try:
                kill_after = float(raw_kill_after)
            except (TypeError, ValueError) as exc:
                raise DefaultsError(f"killAfter must be a number: {exc}") from exc

        return cls(
            component_namespace=_text(data, "componentNamespace"),
            default_pool_labels=pool_labels,
            clone_image=_text(data, "cloneImage"),
            ready_image=_text(data, "readyImage"),
            driver_image=_text(data, "driverImage"),
            languages=languages,
            kill_after=kill_after,
        )

    @classmethod
    def from_yaml(cls, text: str | bytes) -> Defaults:
        """Parse defaults from a YAML document."""
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise DefaultsError(f"could not parse defaults: {exc}") from exc
        return cls.from_dict(data)