"""Stable constants shared across mapping-forge planes."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
OUTCOME_SCHEMA_VERSION: Final[int] = 1

# Repair loop defaults. The budget counts retries beyond the first attempt.
DEFAULT_ATTEMPT_BUDGET: Final[int] = 2
DEFAULT_MAX_WORKERS: Final[int] = 4
DEFAULT_GENERATOR_TIMEOUT_SECONDS: Final[float] = 600.0

# Helper namespace scanned by the key-set checker.
DEFAULT_HELPER_NAMESPACE: Final[str] = "figma"

# External structural parser.
DEFAULT_STRUCTURAL_TIMEOUT_SECONDS: Final[float] = 30.0
CLI_PATH_ENV_VAR: Final[str] = "FIGMA_CLI_PATH"
PROJECT_LOCAL_CLI: Final[tuple[str, ...]] = (
    "node_modules",
    "@figma",
    "code-connect",
    "bin",
    "figma",
)
GLOBAL_CLI_NAME: Final[str] = "figma"
SCRATCH_DIR_PREFIX: Final[str] = "mapforge-validate-"
SCRATCH_CONFIG_NAME: Final[str] = "figma.config.json"
SCRATCH_CANDIDATE_STEM: Final[str] = "candidate"

# Config discovery.
CONFIG_FILE_NAME: Final[str] = "mapforge.toml"
ENV_PREFIX: Final[str] = "MAPFORGE_"

__all__ = [
    "CLI_PATH_ENV_VAR",
    "CONFIG_FILE_NAME",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_ATTEMPT_BUDGET",
    "DEFAULT_GENERATOR_TIMEOUT_SECONDS",
    "DEFAULT_HELPER_NAMESPACE",
    "DEFAULT_MAX_WORKERS",
    "DEFAULT_STRUCTURAL_TIMEOUT_SECONDS",
    "ENV_PREFIX",
    "GLOBAL_CLI_NAME",
    "OUTCOME_SCHEMA_VERSION",
    "PROJECT_LOCAL_CLI",
    "SCRATCH_CANDIDATE_STEM",
    "SCRATCH_CONFIG_NAME",
    "SCRATCH_DIR_PREFIX",
]
