[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pobassets"
version = "0.1.0"
description = "Read game bundle archives and extract item images, fonts and gem data"
requires-python = ">=3.10"
keywords = ["bundle", "dat", "datc64", "game-assets", "extraction", "items", "gems"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Games/Entertainment",
    "Topic :: Multimedia :: Graphics :: Graphics Conversion",
]
dependencies = [
    "pillow",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
pobassets = "pobassets.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["pobassets"]

[tool.hatch.build.targets.sdist]
include = ["pobassets", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
