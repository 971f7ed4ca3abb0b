[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "craqchain"
version = "0.1.0"
description = "Chain replication with apportioned queries (CRAQ) for files: a chain manager, storage nodes and a command-line client over gRPC"
requires-python = ">=3.10"
keywords = ["craq", "chain replication", "replication", "grpc", "distributed storage"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "grpcio",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
craq-manager = "craqchain.managerd:main"
craq-node = "craqchain.noded:main"
craq-cli = "craqchain.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["craqchain"]

[tool.hatch.build.targets.sdist]
include = ["craqchain", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
