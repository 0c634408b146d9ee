[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "urlshortener"
version = "0.1.0"
description = "A small URL shortening service with click analytics, backed by SQLite and served over HTTP."
requires-python = ">=3.10"
keywords = ["url", "shortener", "redirect", "analytics", "flask", "sqlite", "geoip"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
]
dependencies = [
    "flask",
    "werkzeug",
    "redis",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
urlshortener = "urlshortener.app:main"

[tool.hatch.build.targets.wheel]
packages = ["urlshortener"]

[tool.pytest.ini_options]
addopts = "-ra"
