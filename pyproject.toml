[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "webjose"
version = "0.1.0"
description = "JSON Web Key, JSON Web Encryption and JSON Web Signature objects: parsing, validation and serialization"
requires-python = ">=3.10"
dependencies = [
    "cryptography",
]
keywords = ["jose", "jwk", "jwe", "jws", "json web key", "json web signature", "json web encryption"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security :: Cryptography",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["webjose"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
