[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ratnet"
version = "0.1.0"
description = "Asynchronous building blocks for a store-and-forward anonymity network: component registry, connection policies, mDNS peer discovery and channel routing."
requires-python = ">=3.10"
dependencies = []
keywords = ["mesh", "anonymity", "routing", "mdns", "peer-to-peer", "store-and-forward", "asyncio"]
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
    "Framework :: AsyncIO",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["ratnet"]

[tool.pytest.ini_options]
addopts = "-ra"
