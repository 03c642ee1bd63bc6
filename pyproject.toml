[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "chromium-launcher"
version = "0.1.0"
description = "Locate, download and launch Chrome/Chromium with remote debugging enabled"
requires-python = ">=3.10"
keywords = ["chrome", "chromium", "headless", "devtools", "browser", "launcher"]
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
    "Topic :: Internet :: WWW/HTTP :: Browsers",
    "Topic :: Software Development :: Testing",
]
dependencies = [
    "platformdirs",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["chromium_launcher"]

[tool.pytest.ini_options]
addopts = "-ra"
