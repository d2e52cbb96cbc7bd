[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "llmbridge"
version = "0.1.0"
description = "Shared chat types and clients for the OpenAI Responses and OpenRouter chat completions APIs, plus Algolia search conversions"
requires-python = ">=3.10"
dependencies = [
    "requests",
]
keywords = ["llm", "openai", "openrouter", "algolia", "chat", "streaming", "search", "sse"]
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
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["llmbridge"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
