"""
Sky-Install — Pydantic Configuration Schema

Validates config.yaml against a typed schema at load time.  Catches typos,
type errors, and invalid values before they can point a destructive
operation at the wrong directory.

# ---- Changelog ----
# [2026-10-15] SKY_INSTALL_ROOT override.
#   What: The managed root can be moved with the SKY_INSTALL_ROOT
#         environment variable, which wins over config.yaml.
#   How:  Applied in load_and_validate() after schema validation.
#
# [2026-10-12] Initial creation.
#   What: Pydantic v2 models for the sky_install: section of config.yaml
#         (managed root, well-known resources, git, web dependencies,
#         logging).
#   How:  Unknown keys are ignored for forward compatibility.  Unlike a
#         missing file (defaults are used), an invalid file raises
#         ConfigError: falling back to defaults could silently retarget
#         the managed root.
# -------------------
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from installer_core.errors import ConfigError

logger = logging.getLogger("sky_install.config")

ROOT_ENV_VAR = "SKY_INSTALL_ROOT"

CORE_URL = "https://github.com/SCAII/SCAII"
CORE_NAME = "SCAII"

RTS_URL = "https://github.com/SCAII/Sky-RTS"
RTS_NAME = "Sky-RTS"

DEFAULT_BRANCH = "master"

CLOSURE_LIB_URL = "https://github.com/google/closure-library/archive/v20171112.zip"
CLOSURE_LIB_BYTES = 7_032_575

PROTOBUF_JS_URL = (
    "https://github.com/google/protobuf/releases/download/v3.5.1/protobuf-js-3.5.1.zip"
)
PROTOBUF_JS_BYTES = 5_538_299


def _relative_dir(v: str) -> str:
    p = Path(v)
    if not v or p.is_absolute() or ".." in p.parts:
        raise ValueError(f"'{v}' must be a relative directory inside the managed root")
    return v


class WellKnownResourceConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    install_dir: str

    @field_validator("install_dir")
    @classmethod
    def install_dir_inside_root(cls, v: str) -> str:
        return _relative_dir(v)


class GitConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    executable: str = "git"
    timeout_seconds: int = Field(600, gt=0)


class WebDependencyConfig(BaseModel):
    """An archive the core glue downloads and unpacks into the core install."""
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    size_bytes: Optional[int] = Field(None, gt=0)
    dest: str

    @field_validator("dest")
    @classmethod
    def dest_inside_install(cls, v: str) -> str:
        return _relative_dir(v)


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    level: str = Field("INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR)$")


def _default_web_dependencies() -> List[WebDependencyConfig]:
    return [
        WebDependencyConfig(
            name="closure-library",
            url=CLOSURE_LIB_URL,
            size_bytes=CLOSURE_LIB_BYTES,
            dest="viz/js/closure-library",
        ),
        WebDependencyConfig(
            name="protobuf-js",
            url=PROTOBUF_JS_URL,
            size_bytes=PROTOBUF_JS_BYTES,
            dest="viz/js/protobuf",
        ),
    ]


class SkyInstallConfig(BaseModel):
    """Top-level validated config schema for config.yaml -> sky_install: key."""
    model_config = ConfigDict(extra="ignore")

    root_dir: str = "~/.scaii"
    default_branch: str = Field(DEFAULT_BRANCH, min_length=1)
    manifest_file: str = "manifest.json"
    backends_dir: str = "backends"
    link_mode: str = Field("copy", pattern=r"^(copy|symlink)$")

    core: WellKnownResourceConfig = WellKnownResourceConfig(
        name=CORE_NAME, url=CORE_URL, install_dir="core",
    )
    rts: WellKnownResourceConfig = WellKnownResourceConfig(
        name=RTS_NAME, url=RTS_URL, install_dir=f"backends/{RTS_NAME}",
    )

    git: GitConfig = GitConfig()
    web_dependencies: List[WebDependencyConfig] = Field(
        default_factory=_default_web_dependencies
    )
    logging: LoggingConfig = LoggingConfig()

    @field_validator("backends_dir", "manifest_file")
    @classmethod
    def inside_root(cls, v: str) -> str:
        return _relative_dir(v)

    @property
    def root_path(self) -> Path:
        return Path(self.root_dir).expanduser()

    @property
    def reserved_names(self) -> List[str]:
        return [self.core.name, self.rts.name]


def validate_config(raw: dict) -> SkyInstallConfig:
    """Validate a raw config dict against the schema.

    Raises:
        pydantic.ValidationError: If config values are invalid.
    """
    return SkyInstallConfig(**raw)


def load_and_validate(config_path: str = "config.yaml") -> SkyInstallConfig:
    """Load config.yaml, validate it, and apply environment overrides.

    Args:
        config_path: Path to config.yaml.  A missing file means defaults.

    Returns:
        Validated SkyInstallConfig.

    Raises:
        ConfigError: The file is not valid YAML or fails validation.
    """
    p = Path(config_path)
    if not p.exists():
        logger.debug("Config not found at %s, using defaults", config_path)
        raw = {}
    else:
        try:
            with open(p, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"{config_path} is not valid YAML: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(f"{config_path} must contain a mapping")
        raw = (loaded or {}).get("sky_install") or {}

    try:
        config = validate_config(raw)
    except pydantic.ValidationError as e:
        raise ConfigError(f"invalid configuration in {config_path}: {e}") from e

    env_root = os.environ.get(ROOT_ENV_VAR)
    if env_root:
        config = config.model_copy(update={"root_dir": env_root})
        logger.debug("Managed root overridden by %s=%s", ROOT_ENV_VAR, env_root)

    logger.debug("Config loaded (root=%s)", config.root_path)
    return config
