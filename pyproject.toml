[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "medledger"
version = "0.1.0"
description = "In-memory healthcare ledger contracts: escrow, governance, identity, consent tokens, medical records and meta-transaction forwarding"
requires-python = ">=3.10"
dependencies = []
keywords = ["healthcare", "medical-records", "consent", "escrow", "governance", "ledger"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Healthcare Industry",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Medical Science Apps.",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["medledger"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
