[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ktapc"
version = "0.4.0"
description = "Front-end pieces of a tracing script compiler: script lexer, C declaration parser and small runtime helpers"
requires-python = ">=3.10"
dependencies = []
keywords = ["tracing", "lexer", "parser", "ffi", "c-declarations", "compiler"]
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
    "Topic :: Software Development :: Compilers",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ktapc"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
