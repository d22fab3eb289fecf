import uuid

import pytest

from loadtestinfra.api import (
    Build,
    Client,
    Clone,
    Container,
    Driver,
    EnvVar,
    LoadTest,
    LoadTestSpec,
    Results,
    Server,
)
from loadtestinfra.defaults import (
    KILL_AFTER_ENV,
    RUN_CONTAINER_NAME,
    Defaults,
    DefaultsError,
    LanguageDefault,
    PoolLabelMap,
)

CXX_BUILD_IMAGE = "registry.example.com/bazel:latest"
CXX_RUN_IMAGE = "registry.example.com/fake-project/cxx"
LT_DRIVER_IMAGE = "registry.example.com/test-infra/driver"
LT_RUN_IMAGE = "registry.example.com/test-infra/cxx"
REPO_URL = "https://git.example.com/project/repo.git"


@pytest.fixture
def defaults():
    return Defaults(
        component_namespace="component-default",
        default_pool_labels=PoolLabelMap(
            client="default-client-pool",
            driver="default-driver-pool",
            server="default-server-pool",
        ),
        clone_image="registry.example.com/fake-project/clone",
        ready_image="registry.example.com/fake-project/ready",
        driver_image="registry.example.com/fake-project/driver",
        languages=[
            LanguageDefault("cxx", CXX_BUILD_IMAGE, CXX_RUN_IMAGE),
            LanguageDefault("go", "registry.example.com/go-build:1.17", "registry.example.com/fake-project/go"),
            LanguageDefault("java", "registry.example.com/java-build:8", "registry.example.com/fake-project/java"),
        ],
        kill_after=20,
    )


def _clone():
    return Clone(
        image="registry.example.com/test-infra/clone",
        repo=REPO_URL,
        git_ref="master",
    )


def _build():
    return Build(
        image=CXX_BUILD_IMAGE,
        command=["bazel"],
        args=["build", "//test/cpp/qps:qps_worker"],
    )


@pytest.fixture
def loadtest():
    run_command = ["bazel-bin/test/cpp/qps/qps_worker"]
    client_args = ["--driver_port=10000"]
    server_args = client_args + ["--server_port=10010"]
    test = LoadTest(
        spec=LoadTestSpec(
            driver=Driver(
                name="driver",
                language="cxx",
                pool="drivers",
                run=[Container(image=LT_DRIVER_IMAGE)],
            ),
            servers=[
                Server(
                    name="server",
                    language="cxx",
                    pool="workers-8core",
                    clone=_clone(),
                    build=_build(),
                    run=[Container(image=LT_RUN_IMAGE, command=list(run_command), args=server_args)],
                )
            ],
            clients=[
                Client(
                    name="client-1",
                    language="cxx",
                    pool="workers-8core",
                    clone=_clone(),
                    build=_build(),
                    run=[Container(image=LT_RUN_IMAGE, command=list(run_command), args=client_args)],
                )
            ],
            results=Results(big_query_table="example-project.e2e_benchmark.foobarbuzz"),
            scenarios_json='{"scenarios": []}',
        )
    )
    return test.deep_copy()


def _is_uuid(text):
    return str(uuid.UUID(text)) == text


# --- validate ---------------------------------------------------------------


@pytest.mark.parametrize(
    "field_name, message",
    [
        ("clone_image", "clone"),
        ("ready_image", "ready"),
        ("driver_image", "driver"),
    ],
)
def test_validate_missing_images(defaults, field_name, message):
    setattr(defaults, field_name, "")
    with pytest.raises(DefaultsError, match=message):
        defaults.validate()


def test_validate_unnamed_language(defaults):
    defaults.languages[1].language = ""
    with pytest.raises(DefaultsError, match="index 1"):
        defaults.validate()


def test_validate_language_missing_build_image(defaults):
    defaults.languages[1].build_image = ""
    with pytest.raises(DefaultsError, match="build init container"):
        defaults.validate()


def test_validate_language_missing_run_image(defaults):
    defaults.languages[1].run_image = ""
    with pytest.raises(DefaultsError, match="run container"):
        defaults.validate()


def test_validate_negative_kill_after(defaults):
    defaults.kill_after = -1
    with pytest.raises(DefaultsError, match="killAfter"):
        defaults.validate()


def test_validate_accepts_valid_defaults(defaults):
    assert defaults.validate() is None
    defaults.kill_after = 0
    assert defaults.validate() is None


# --- metadata ---------------------------------------------------------------


def test_sets_default_namespace_when_unset(defaults, loadtest):
    loadtest.metadata.namespace = ""
    defaults.component_namespace = "foobar-buzz"
    defaults.set_load_test_defaults(loadtest)
    assert loadtest.metadata.namespace == "foobar-buzz"


def test_does_not_override_namespace(defaults, loadtest):
    loadtest.metadata.namespace = "experimental"
    defaults.set_load_test_defaults(loadtest)
    assert loadtest.metadata.namespace == "experimental"


# --- driver -----------------------------------------------------------------


def test_sets_default_driver_when_none(defaults, loadtest):
    loadtest.spec.driver = None
    defaults.set_load_test_defaults(loadtest)
    driver = loadtest.spec.driver
    assert driver.language == "cxx"
    assert driver.run[0].name == RUN_CONTAINER_NAME
    assert driver.run[0].image == defaults.driver_image
    assert _is_uuid(driver.name)


def test_does_not_replace_driver_when_set(defaults, loadtest):
    driver = Driver()
    loadtest.spec.driver = driver
    defaults.set_load_test_defaults(loadtest)
    assert loadtest.spec.driver is driver
    assert driver.run[0].image == defaults.driver_image


def test_driver_sets_name_when_unspecified(defaults, loadtest):
    loadtest.spec.driver.name = None
    defaults.set_load_test_defaults(loadtest)
    name = loadtest.spec.driver.name
    assert len(name) == 36
    assert str(uuid.UUID(name)) == name


def test_driver_keeps_name_and_pool(defaults, loadtest):
    loadtest.spec.driver.pool = "example-pool"
    defaults.set_load_test_defaults(loadtest)
    assert loadtest.spec.driver.pool == "example-pool"
    assert loadtest.spec.driver.name == "driver"


def test_driver_sets_missing_clone_image(defaults, loadtest):
    driver = loadtest.spec.driver
    driver.clone = Clone(repo=REPO_URL, git_ref="master")
    defaults.set_load_test_defaults(loadtest)
    assert driver.clone.image == defaults.clone_image
    assert driver.clone.git_ref == "master"


def test_driver_sets_missing_build_image(defaults, loadtest):
    driver = loadtest.spec.driver
    driver.language = "cxx"
    driver.build = Build(command=["bazel"])
    defaults.set_load_test_defaults(loadtest)
    assert driver.build.image == CXX_BUILD_IMAGE


def test_driver_errors_when_build_image_cannot_be_inferred(defaults, loadtest):
    driver = loadtest.spec.driver
    driver.language = "fortran"
    driver.build = Build(command=["make"])
    with pytest.raises(DefaultsError, match="could not set defaults for driver"):
        defaults.set_load_test_defaults(loadtest)


def test_driver_accepts_explicit_build_image_for_unknown_language(defaults, loadtest):
    driver = loadtest.spec.driver
    driver.language = "fortran"
    driver.build = Build(image="test-image", command=["make"])
    defaults.set_load_test_defaults(loadtest)
    assert driver.build.image == "test-image"


def test_driver_sets_missing_run_image(defaults, loadtest):
    driver = loadtest.spec.driver
    driver.run[0].image = ""
    defaults.set_load_test_defaults(loadtest)
    assert driver.run[0].image == defaults.driver_image


def test_driver_sets_run_container_when_empty(defaults, loadtest):
    loadtest.spec.driver.run = []
    defaults.set_load_test_defaults(loadtest)
    assert loadtest.spec.driver.run[0].name == "main"


def test_driver_keeps_run_container_name_and_image(defaults, loadtest):
    loadtest.spec.driver.run[0].name = "custom"
    defaults.set_load_test_defaults(loadtest)
    assert loadtest.spec.driver.run[0].name == "custom"
    assert loadtest.spec.driver.run[0].image == LT_DRIVER_IMAGE
    assert loadtest.spec.driver.run[0].image != defaults.driver_image


def test_driver_accepts_explicit_run_image_for_unknown_language(defaults, loadtest):
    driver = loadtest.spec.driver
    driver.language = "fortran"
    driver.run[0].image = "example-image"
    driver.run[0].command = ["do-stuff"]
    defaults.set_load_test_defaults(loadtest)
    assert driver.run[0].image == "example-image"


# --- servers and clients ----------------------------------------------------


def _component(loadtest, role):
    return loadtest.spec.servers[0] if role == "server" else loadtest.spec.clients[0]


ROLES = ["server", "client"]


@pytest.mark.parametrize("role", ROLES)
def test_worker_sets_name_when_unspecified(defaults, loadtest, role):
    component = _component(loadtest, role)
    component.name = None
    defaults.set_load_test_defaults(loadtest)
    name = component.name
    assert len(name) == 36
    assert str(uuid.UUID(name)) == name


@pytest.mark.parametrize("role", ROLES)
def test_worker_keeps_pool(defaults, loadtest, role):
    component = _component(loadtest, role)
    component.pool = "example-pool"
    defaults.set_load_test_defaults(loadtest)
    assert component.pool == "example-pool"


@pytest.mark.parametrize("role", ROLES)
def test_worker_sets_missing_clone_image(defaults, loadtest, role):
    component = _component(loadtest, role)
    component.clone = Clone(repo=REPO_URL, git_ref="master")
    defaults.set_load_test_defaults(loadtest)
    assert component.clone.image == defaults.clone_image


@pytest.mark.parametrize("role", ROLES)
def test_worker_sets_missing_build_image(defaults, loadtest, role):
    component = _component(loadtest, role)
    component.language = "cxx"
    component.build = Build(command=["bazel"])
    defaults.set_load_test_defaults(loadtest)
    assert component.build.image == CXX_BUILD_IMAGE


@pytest.mark.parametrize("role", ROLES)
def test_worker_errors_when_build_image_cannot_be_inferred(defaults, loadtest, role):
    component = _component(loadtest, role)
    component.language = "fortran"
    component.build = Build(command=["make"])
    with pytest.raises(DefaultsError, match=f"could not set defaults for {role} at index 0"):
        defaults.set_load_test_defaults(loadtest)


@pytest.mark.parametrize("role", ROLES)
def test_worker_accepts_explicit_build_image_for_unknown_language(defaults, loadtest, role):
    component = _component(loadtest, role)
    component.language = "fortran"
    component.build = Build(image="test-image", command=["make"])
    defaults.set_load_test_defaults(loadtest)
    assert component.build.image == "test-image"


@pytest.mark.parametrize("role", ROLES)
def test_worker_sets_missing_run_image(defaults, loadtest, role):
    component = _component(loadtest, role)
    component.language = "cxx"
    component.run[0].image = ""
    defaults.set_load_test_defaults(loadtest)
    assert component.run[0].image == CXX_RUN_IMAGE
    assert component.run[0].env == [EnvVar(name=KILL_AFTER_ENV, value="20.000000")]


@pytest.mark.parametrize("role", ROLES)
def test_worker_keeps_explicit_run_image_without_env(defaults, loadtest, role):
    component = _component(loadtest, role)
    defaults.set_load_test_defaults(loadtest)
    assert component.run[0].image == LT_RUN_IMAGE
    assert component.run[0].env == []


@pytest.mark.parametrize("role", ROLES)
def test_worker_errors_when_run_image_cannot_be_inferred(defaults, loadtest, role):
    component = _component(loadtest, role)
    component.build = None
    component.language = "fortran"
    component.run[0].image = ""
    component.run[0].command = ["do-stuff"]
    with pytest.raises(DefaultsError, match="could not infer default run image"):
        defaults.set_load_test_defaults(loadtest)


@pytest.mark.parametrize("role", ROLES)
def test_worker_errors_for_unknown_language_with_no_run_containers(defaults, loadtest, role):
    component = _component(loadtest, role)
    component.build = None
    component.language = "fortran"
    component.run = []
    with pytest.raises(DefaultsError, match="fortran"):
        defaults.set_load_test_defaults(loadtest)


@pytest.mark.parametrize("role", ROLES)
def test_worker_accepts_explicit_run_image_for_unknown_language(defaults, loadtest, role):
    component = _component(loadtest, role)
    component.language = "fortran"
    component.run[0].image = "example-image"
    component.run[0].command = ["do-stuff"]
    defaults.set_load_test_defaults(loadtest)
    assert component.run[0].image == "example-image"


# --- parsing ----------------------------------------------------------------

YAML_TEXT = """
componentNamespace: default
defaultPoolLabels:
  client: default-client-pool
  driver: default-driver-pool
  server: default-server-pool
cloneImage: example/clone:latest
readyImage: example/ready:latest
driverImage: example/driver:latest
killAfter: 30
languages:
- language: go
  buildImage: example/go-build:1.17
  runImage: example/go:latest
"""


def test_from_yaml_parses_all_fields():
    parsed = Defaults.from_yaml(YAML_TEXT)
    assert parsed == Defaults(
        component_namespace="default",
        default_pool_labels=PoolLabelMap(
            client="default-client-pool",
            driver="default-driver-pool",
            server="default-server-pool",
        ),
        clone_image="example/clone:latest",
        ready_image="example/ready:latest",
        driver_image="example/driver:latest",
        languages=[LanguageDefault("go", "example/go-build:1.17", "example/go:latest")],
        kill_after=30.0,
    )


def test_from_yaml_empty_document_gives_empty_defaults():
    parsed = Defaults.from_yaml("")
    assert parsed == Defaults()
    with pytest.raises(DefaultsError):
        parsed.validate()


def test_from_yaml_rejects_invalid_yaml():
    with pytest.raises(DefaultsError):
        Defaults.from_yaml("cloneImage: [unclosed")


def test_from_yaml_rejects_non_mapping():
    with pytest.raises(DefaultsError):
        Defaults.from_yaml("- a\n- b\n")


def test_from_dict_rejects_non_numeric_kill_after():
    with pytest.raises(DefaultsError, match="killAfter"):
        Defaults.from_dict({"killAfter": "soon"})


def test_from_dict_later_language_entry_wins(loadtest):
    parsed = Defaults.from_dict(
        {
            "cloneImage": "c",
            "readyImage": "r",
            "driverImage": "d",
            "languages": [
                {"language": "cxx", "buildImage": "b1", "runImage": "r1"},
                {"language": "cxx", "buildImage": "b2", "runImage": "r2"},
            ],
        }
    )
    server = loadtest.spec.servers[0]
    server.build = Build(command=["bazel"])
    server.run[0].image = ""
    parsed.set_load_test_defaults(loadtest)
    assert server.build.image == "b2"
    assert server.run[0].image == "r2"
    assert server.run[0].env[0].value == "0.000000"