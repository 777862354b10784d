[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kvsbench"
version = "0.1.0"
description = "Closed-loop load generator for key-value servers speaking the memcached binary protocol"
requires-python = ">=3.10"
dependencies = []
keywords = ["benchmark", "memcached", "key-value", "load-generator", "latency"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Benchmark",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
kvsbench = "kvsbench.bench:main"

[tool.hatch.build.targets.wheel]
packages = ["kvsbench"]

[tool.pytest.ini_options]
addopts = "-ra"
