[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mangopt"
version = "0.1.0"
description = "Optimization framework with finite-difference derivatives, worker-group partitioning and a Levenberg-Marquardt least-squares solver"
requires-python = ">=3.10"
dependencies = ["numpy"]
keywords = ["optimization", "least-squares", "levenberg-marquardt", "finite-differences", "jacobian"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Mathematics",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["mangopt"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
