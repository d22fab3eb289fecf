# loadtestinfra

Tools for describing and managing gRPC load tests that run as Kubernetes
custom resources (`LoadTest` in the `e2etest.grpc.io/v1` API group).

The package provides:

- `loadtestinfra.api`: the load test resource model (`LoadTest`, `LoadTestSpec`,
  `Driver`, `Server`, `Client`, `Clone`, `Build`, `Container`, `LoadTestState`
  and friends), with `to_dict` / `from_dict` conversion to the JSON shape the
  cluster uses.
- `loadtestinfra.defaults`: the system `Defaults` configuration, its validation,
  and `Defaults.set_load_test_defaults`, which fills in namespaces, component
  names and container images a test leaves unset.
- `loadtestinfra.clientset`: a small REST client to create, get, list and delete
  load tests in a namespace.
- `loadtestinfra.configure`: renders a defaults file from a template and
  validates the result.

## Installation

```
pip install loadtestinfra
```

## Applying defaults

```python
from loadtestinfra.api import LoadTest
from loadtestinfra.defaults import Defaults

defaults = Defaults.from_yaml(open("defaults.yaml").read())
defaults.validate()

test = LoadTest.from_dict(spec_dict)
defaults.set_load_test_defaults(test)
```

`validate` and `set_load_test_defaults` raise `DefaultsError` when the
configuration is incomplete or when an image cannot be inferred for a
component's language.

## Talking to the cluster

```python
from loadtestinfra.clientset import RestConfig, new_for_config

clientset = new_for_config(RestConfig(host="https://localhost:6443", bearer_token="token"))
tests = clientset.load_tests("default")
for item in tests.list({}).items:
    print(item.metadata.name, item.status.state)
```

Failed requests raise `ApiError`.

## Generating a defaults file

```
loadtest-configure -version latest -kill-after 20 template.yaml defaults.yaml
```

The template may refer to `{{ .Version }}`, `{{ .InitImagePrefix }}`,
`{{ .BuildImagePrefix }}`, `{{ .RunImagePrefix }}` and `{{ .KillAfter }}`.
The `-kill-after` flag is required. Unless `-validate=false` is given, the
generated file is parsed and validated before it is written.