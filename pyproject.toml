[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "levelkit"
version = "0.1.0"
description = "In-memory bookkeeping of a log-structured merge-tree store: write batches, snapshots, versions and compaction planning."
requires-python = ">=3.10"
dependencies = []
keywords = ["lsm-tree", "key-value", "storage-engine", "compaction", "write-batch"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["levelkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
