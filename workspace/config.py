"""Workspace configuration.

Priority: --profile <name> > REMOTE_WORKSPACE_PROFILE env > "default"
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, model_validator

PROFILE_ENV = "REMOTE_WORKSPACE_PROFILE"


def config_home() -> Path:
    # @@@env-at-call - resolved on every call, never cached
    override = os.getenv("REMOTE_WORKSPACE_HOME")
    if override:
        return Path(override)
    return Path.home() / ".remote-workspace"


class DefaultsConfig(BaseModel):
    ssh_port: int = Field(default=22, ge=1, le=65535)
    ftp_port: int = Field(default=21, ge=1, le=65535)
    vnc_port: int = Field(default=5900, ge=1, le=65535)
    rdp_port: int = Field(default=3389, ge=1, le=65535)
    rdp_width: int = Field(default=1920, gt=0)
    rdp_height: int = Field(default=1080, gt=0)
    vnc_width: int = Field(default=1024, gt=0)
    vnc_height: int = Field(default=768, gt=0)


class NavigationConfig(BaseModel):
    # latest: newest listing request wins, stale responses are dropped
    # serialize: listings run one at a time per cache
    policy: Literal["latest", "serialize"] = "latest"
    home_path: str = "."
    downloads_path: str = "~/Downloads"


class TransferConfig(BaseModel):
    keep_history: bool = True
    max_history: int = Field(default=200, ge=0)
    chunk_size: int = Field(default=32768, gt=0)


class WorkspaceConfig(BaseModel):
    name: str = "default"
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    navigation: NavigationConfig = Field(default_factory=NavigationConfig)
    transfers: TransferConfig = Field(default_factory=TransferConfig)
    local_root: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_legacy_flat_keys(cls, value):
        if not isinstance(value, dict):
            return value
        payload = dict(value)
        # Older profiles kept "navigation_policy" at the top level
        legacy_policy = payload.pop("navigation_policy", None)
        if legacy_policy is not None:
            navigation = dict(payload.get("navigation") or {})
            navigation.setdefault("policy", legacy_policy)
            payload["navigation"] = navigation
        return payload

    @staticmethod
    def profile_path(name: str) -> Path:
        profiles = config_home() / "profiles"
        for suffix in (".yaml", ".yml", ".json"):
            candidate = profiles / f"{name}{suffix}"
            if candidate.exists():
                return candidate
        return profiles / f"{name}.yaml"

    @classmethod
    def load(cls, name: str) -> WorkspaceConfig:
        if name == "default" and not cls.profile_path(name).exists():
            return cls()

        path = cls.profile_path(name)
        if not path.exists():
            raise FileNotFoundError(f"Workspace profile not found: {path}")

        text = path.read_text()
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
        config = cls(**(data or {}))
        config.name = name
        return config

    def save(self, name: str) -> Path:
        path = config_home() / "profiles" / f"{name}.yaml"
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude={"name"}, exclude_defaults=True)
        path.write_text(yaml.safe_dump(data, sort_keys=False))
        return path


def resolve_profile_name(cli_arg: str | None) -> str:
    if cli_arg:
        return cli_arg
    return os.getenv(PROFILE_ENV, "default")
