[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "atticserver"
version = "0.1.0"
description = "Building blocks of a Nix binary cache server: narinfo manifests, errors, local chunk storage, row models and column migrations"
requires-python = ">=3.10"
dependencies = []
keywords = ["nix", "binary-cache", "narinfo", "manifest", "sqlite"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Software Distribution",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["atticserver"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
