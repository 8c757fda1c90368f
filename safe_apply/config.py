from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

from .errors import ConfigError

DEFAULT_PATH_ALLOWLIST: Tuple[str, ...] = (
    "src",
    "app",
    "pages",
    "components",
    "package.json",
)

DEFAULT_COMMAND_ALLOWLIST: Tuple[str, ...] = (
    "npm ci",
    "npm run build",
    "npm run dev",
    "npm install",
    "pnpm i",
    "pnpm build",
    "pnpm dev",
    "pnpm install",
    "yarn",
    "yarn build",
    "yarn dev",
    "yarn install",
)

COMMAND_POLICIES = ("exact", "prefix")


@dataclass(frozen=True)
class SafetyConfig:
    """Safety policy for one plan application.

    Immutable and passed explicitly to every guard, validator and executor call.
    """

    root: str = "."
    path_allowlist: Tuple[str, ...] = DEFAULT_PATH_ALLOWLIST
    command_allowlist: Tuple[str, ...] = DEFAULT_COMMAND_ALLOWLIST
    max_actions: int = 50
    max_patch_bytes: int = 2_000_000
    timeout_secs: float = 240.0
    # "exact" or "prefix"; governs validation and spawning alike.
    command_policy: str = "exact"
    # Additive merging only applies to these suffixes. Empty means every file.
    additive_extensions: Tuple[str, ...] = (".ts", ".tsx", ".js")
    preview_max_lines: int = 120

    def __post_init__(self) -> None:
        if self.command_policy not in COMMAND_POLICIES:
            raise ConfigError(
                f"command_policy must be one of {COMMAND_POLICIES}, got {self.command_policy!r}"
            )
        if self.max_actions < 0 or self.max_patch_bytes < 0:
            raise ConfigError("max_actions and max_patch_bytes must be non-negative")
        if self.timeout_secs <= 0:
            raise ConfigError("timeout_secs must be positive")
        if self.preview_max_lines <= 0:
            raise ConfigError("preview_max_lines must be positive")

    @property
    def root_path(self) -> Path:
        return Path(self.root).expanduser()

    def with_root(self, root: str | Path) -> "SafetyConfig":
        return replace(self, root=str(root))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "SafetyConfig":
        if not isinstance(raw, Mapping):
            raise ConfigError(f"Config must be a mapping/object, got {type(raw).__name__}")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

        kwargs: Dict[str, Any] = {}
        for key, value in raw.items():
            if value is None:
                continue
            if key in {"path_allowlist", "command_allowlist", "additive_extensions"}:
                kwargs[key] = _str_tuple(key, value)
            elif key in {"max_actions", "max_patch_bytes", "preview_max_lines"}:
                kwargs[key] = _int(key, value)
            elif key == "timeout_secs":
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ConfigError(f"timeout_secs must be a number, got {value!r}")
                kwargs[key] = float(value)
            else:
                kwargs[key] = str(value)
        return cls(**kwargs)


def _str_tuple(key: str, value: Any) -> Tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ConfigError(f"{key} must be a list of strings")
    if not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{key} must contain only strings")
    return tuple(value)


def _int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    return value


def load_config(path: str) -> SafetyConfig:
    """Load a SafetyConfig from a YAML or JSON file."""

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    suffix = p.suffix.lower()
    text = p.read_text(encoding="utf-8")
    if suffix in {".yaml", ".yml"}:
        try:
            import yaml  # type: ignore
        except Exception as e:
            raise RuntimeError("PyYAML is required to read YAML config files") from e
        raw = yaml.safe_load(text) or {}
    elif suffix == ".json":
        raw = json.loads(text)
    else:
        raise ConfigError("config must be YAML or JSON")

    return SafetyConfig.from_mapping(raw)
