[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "smartdns"
version = "0.1.0"
description = "Support library for a local DNS forwarder: config loading, address and TLS SNI parsing, ipset netlink messages, bit searches and prefix trees"
requires-python = ">=3.10"
dependencies = []
keywords = ["dns", "radix-tree", "longest-prefix-match", "config", "ipset", "netlink", "tls", "sni", "pidfile"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Name Service (DNS)",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest", "hypothesis"]

[tool.hatch.build.targets.wheel]
packages = ["smartdns"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
