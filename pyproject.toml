[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "homie-automation"
version = "0.1.0"
description = "Building blocks and a minimal MQTT controller for Homie 5 home automation"
requires-python = ">=3.10"
keywords = ["homie", "mqtt", "home-automation", "smarthome", "cron", "iot"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Framework :: AsyncIO",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Home Automation",
]
dependencies = [
    "paho-mqtt>=2.0",
    "platformdirs>=4.0",
    "httpx>=0.27",
]

[project.optional-dependencies]
test = [
    "pytest>=8.0",
    "pytest-asyncio>=0.23",
    "respx>=0.21",
]

[project.scripts]
homie-automation = "homie_automation.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["homie_automation"]

[tool.hatch.build.targets.sdist]
include = ["homie_automation", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP", "SIM"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
check_untyped_defs = true
