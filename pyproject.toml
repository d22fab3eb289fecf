[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "loadtestinfra"
version = "0.1.0"
description = "Load test resource types, defaulting and a REST client for gRPC benchmark orchestration on Kubernetes"
requires-python = ">=3.10"
keywords = ["grpc", "load-test", "benchmark", "kubernetes", "custom-resource"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Testing :: Traffic Generation",
    "Topic :: System :: Benchmark",
]
dependencies = [
    "pyyaml>=6.0",
    "requests>=2.28",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "responses>=0.23",
]

[project.scripts]
loadtest-configure = "loadtestinfra.configure:main"

[tool.hatch.build.targets.wheel]
packages = ["loadtestinfra"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
