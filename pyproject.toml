[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lvmlocal"
version = "0.1.0"
description = "Create, resize, snapshot and list LVM logical volumes on the local node, and parse LVM JSON reports"
requires-python = ">=3.10"
dependencies = []
keywords = ["lvm", "lvm2", "logical-volume", "thin-provisioning", "snapshot", "storage", "io-limits"]
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
    "Topic :: System :: Filesystems",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["lvmlocal"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
