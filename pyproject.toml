[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kiwikv"
version = "0.1.0"
description = "A small embedded key-value store built on a skip-list memtable and sorted on-disk runs, with a mixed read/write benchmark"
requires-python = ">=3.10"
dependencies = []
keywords = ["key-value", "storage", "skiplist", "memtable", "benchmark"]
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
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
kiwi-bench = "kiwikv.bench:main"

[tool.hatch.build.targets.wheel]
packages = ["kiwikv"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
