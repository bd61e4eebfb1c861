[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fernload"
version = "0.1.0"
description = "Serial boot loader and factory-test tool for Fernvale boards"
requires-python = ">=3.10"
dependencies = [
    "pyserial",
]
keywords = ["bootloader", "serial", "fernvale", "boot-rom", "embedded", "firmware"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Embedded Systems",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
fernload = "fernload.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["fernload"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
