[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "postkit"
version = "0.1.0"
description = "Building blocks for digital cinema and IMF mastering tools: file hashing, JPEG 2000 header and bitrate analysis, a job queue, loudness measurement, MCA labels, CPL metadata editing, TIFF loading, camera ingest, J2K encode pipelines and mpv preview."
requires-python = ">=3.10"
dependencies = []
keywords = ["dcp", "imf", "jpeg2000", "cinema", "post-production", "mca", "loudness", "cpl"]
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
    "Topic :: Multimedia :: Video :: Conversion",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["postkit"]

[tool.hatch.build.targets.sdist]
include = ["postkit", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"
