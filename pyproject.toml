[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lookout"
version = "0.1.0"
description = "Code review assistant core: data services over git trees and an analyzer orchestration server"
requires-python = ">=3.10"
keywords = ["code-review", "analyzers", "git", "static-analysis", "linting"]
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
    "Topic :: Software Development :: Quality Assurance",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["lookout"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
