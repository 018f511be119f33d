[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "horizonstore"
version = "0.1.0"
description = "Event stores for event-sourced applications: in-memory, recording and MongoDB backends."
requires-python = ">=3.10"
keywords = ["event sourcing", "cqrs", "event store", "mongodb", "ddd"]
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
    "Topic :: Software Development :: Libraries :: Application Frameworks",
    "Topic :: Database",
]
dependencies = [
    "pymongo",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["horizonstore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
