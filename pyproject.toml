[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "boltfile"
version = "0.1.0"
description = "Pages, meta records, freelists, B+tree nodes and low-level repair tools for Bolt-format database files"
requires-python = ">=3.10"
dependencies = []
keywords = ["bolt", "b+tree", "key-value", "database", "freelist", "page", "recovery"]
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
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest", "hypothesis"]

[tool.hatch.build.targets.wheel]
packages = ["boltfile"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
