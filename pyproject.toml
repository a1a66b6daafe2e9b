[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "streamcore"
version = "0.1.0"
description = "MPEG-TS packet codecs, H.264 SPS parsing and layered configuration for a streaming media engine"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = ["mpeg-ts", "mpegts", "pes", "pat", "pmt", "h264", "sps", "streaming", "configuration"]
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
    "Topic :: Multimedia :: Video",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["streamcore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
