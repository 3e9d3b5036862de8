[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "resolvkit"
version = "0.1.0"
description = "Inspect and manage the operating system's DNS resolver configuration: resolv.conf parsing and rewriting, resolvconf managers, DNS mode detection, a DNS response cache and resolver API helpers."
requires-python = ">=3.10"
keywords = ["dns", "resolv.conf", "resolvconf", "openresolv", "systemd-resolved", "resolver"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Operating System :: POSIX :: BSD :: FreeBSD",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Name Service (DNS)",
    "Topic :: System :: Networking",
]
dependencies = [
    "requests",
    "dnspython",
    "cachetools",
    "watchdog",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["resolvkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
