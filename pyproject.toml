[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pagealloc"
version = "0.1.0"
description = "Simulated physical page allocators: first fit, best fit, buddy system and a SLUB-style object allocator"
requires-python = ">=3.10"
dependencies = []
keywords = ["memory", "allocator", "buddy-system", "slab", "slub", "first-fit", "best-fit", "kernel", "simulation"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Operating System Kernels",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
pagealloc = "pagealloc.pmm:main"

[tool.hatch.build.targets.wheel]
packages = ["pagealloc"]

[tool.pytest.ini_options]
addopts = "-ra"
