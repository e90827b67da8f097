[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "moleids"
version = "0.1.0"
description = "Intrusion detection core: Yara-style rule loading, network match nodes and a decision tree that maps packet metadata to rule groups"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = [
    "ids",
    "intrusion-detection",
    "yara",
    "network-security",
    "decision-tree",
    "eve",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Information Technology",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
    "Topic :: System :: Networking :: Monitoring",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["moleids"]

[tool.hatch.build.targets.sdist]
include = [
    "moleids",
    "tests",
    "pyproject.toml",
]

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
