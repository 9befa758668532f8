[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "helmsource"
version = "0.1.0"
description = "Load, package and resolve Helm charts from local directories and chart repositories"
requires-python = ">=3.10"
keywords = ["helm", "chart", "kubernetes", "repository", "packaging", "semver"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Build Tools",
]
dependencies = [
    "pyyaml>=6.0",
    "requests>=2.28",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[tool.hatch.build.targets.wheel]
packages = ["helmsource"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
