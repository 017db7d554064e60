[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "slsconfig"
version = "0.1.0"
description = "Logtail collection configs, plugin inputs, and project management (logstores, machine groups, configs, ETL metadata) for a log service"
requires-python = ">=3.10"
dependencies = []
keywords = ["logging", "log service", "logtail", "log collection", "configuration", "etl"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Logging",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["slsconfig"]

[tool.hatch.build.targets.sdist]
include = ["slsconfig", "tests", "README.md"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]
