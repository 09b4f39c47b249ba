[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "coreinstall"
version = "0.1.0"
description = "Library for CoreOS installation media: live ISO embed areas, minimal ISO packing and osmet packed images"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "coreos",
    "installer",
    "iso9660",
    "osmet",
    "fiemap",
    "kernel-arguments",
    "miniso",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Installation/Setup",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["coreinstall"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
