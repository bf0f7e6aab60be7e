"""Instance configuration loaded from ``{instance}/config.yaml``.

```yaml
instance_name: prod
modules:
  xsiam:
    enabled: true
    fqdn: "${XSIAM_FQDN}"
    api_key: "${XSIAM_API_KEY}"
    api_key_id: "${XSIAM_API_KEY_ID}"
    timeout: 30
  appsec:
    enabled: false
```

``${VAR}`` references are expanded from the environment. Credentials that
are still empty afterwards fall back to ``DEMISTO_BASE_URL``,
``DEMISTO_API_KEY`` and ``XSIAM_AUTH_ID``.
"""
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from ..modules import ModuleRegistry
from ..object_store.git_manager import GitManager
from ..object_store.lock import LOCK_FILENAME
from ..pull_engine.client import DEFAULT_TIMEOUT, Credentials

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

FALLBACK_ENV = {
    "fqdn": "DEMISTO_BASE_URL",
    "api_key": "DEMISTO_API_KEY",
    "api_key_id": "XSIAM_AUTH_ID",
}

CONFIG_TEMPLATE = """\
# gcgit instance configuration. This file is git-ignored.
instance_name: {name}

modules:
  xsiam:
    enabled: true
    fqdn: "${{XSIAM_FQDN}}"
    api_key: "${{XSIAM_API_KEY}}"
    api_key_id: "${{XSIAM_API_KEY_ID}}"
    timeout: {timeout}
  appsec:
    enabled: false
    fqdn: "${{XSIAM_FQDN}}"
    api_key: "${{XSIAM_API_KEY}}"
    api_key_id: "${{XSIAM_API_KEY_ID}}"
    timeout: {timeout}
"""

GITIGNORE_TEMPLATE = f"""\
# gcgit instance gitignore
{CONFIG_FILENAME}
{LOCK_FILENAME}
*.tmp
"""


class ConfigError(Exception):
    """Raised for missing or incomplete instance configuration."""
    pass


def expand_env(value: str) -> str:
    """Replace ``${VAR}`` references; unset variables expand to ''."""
    return _ENV_REF.sub(lambda match: os.environ.get(match.group(1), ""), value)


def normalize_fqdn(value: str) -> str:
    """Strip a URL scheme and trailing slashes from a host name."""
    value = value.strip()
    for scheme in ("https://", "http://"):
        if value.startswith(scheme):
            value = value[len(scheme):]
    return value.rstrip("/")


@dataclass
class ModuleConfig:
    """Connection settings of one module."""
    module_id: str
    enabled: bool = True
    fqdn: str = ""
    api_key: str = ""
    api_key_id: str = ""
    timeout: float = DEFAULT_TIMEOUT
    verify_ssl: bool = True

    @classmethod
    def from_mapping(cls, module_id: str, data: dict[str, Any]) -> "ModuleConfig":
        """Build from a config block, expanding and falling back credentials."""
        values = {}
        for key, env_name in FALLBACK_ENV.items():
            raw = data.get(key)
            value = expand_env(str(raw)) if raw is not None else ""
            if not value.strip():
                fallback = os.environ.get(env_name, "")
                if fallback:
                    logger.info(f"{module_id}: using {env_name} for {key}")
                value = fallback
            values[key] = value.strip()

        try:
            timeout = float(data.get("timeout", DEFAULT_TIMEOUT))
        except (TypeError, ValueError):
            raise ConfigError(f"{module_id}: timeout must be a number") from None

        return cls(
            module_id=module_id,
            enabled=bool(data.get("enabled", True)),
            fqdn=normalize_fqdn(values["fqdn"]),
            api_key=values["api_key"],
            api_key_id=values["api_key_id"],
            timeout=timeout,
            verify_ssl=bool(data.get("verify_ssl", True)),
        )

    def credentials(self) -> Credentials:
        """Credentials for the API client.

        Raises:
            ConfigError: If any of fqdn, api_key, api_key_id is empty
        """
        missing = [key for key in FALLBACK_ENV if not getattr(self, key)]
        if missing:
            raise ConfigError(
                f"Module '{self.module_id}' is missing {', '.join(missing)}. "
                f"Set them in {CONFIG_FILENAME} or via environment variables"
            )
        return Credentials(
            fqdn=self.fqdn,
            api_key=self.api_key,
            api_key_id=self.api_key_id,
            timeout=self.timeout,
            verify_ssl=self.verify_ssl,
        )


@dataclass
class InstanceConfig:
    """Parsed config.yaml of one instance."""
    instance_name: str
    path: Path
    modules: dict[str, dict[str, Any]] = field(default_factory=dict)

    def module_config(self, module_id: str) -> ModuleConfig:
        if module_id not in self.modules:
            raise ConfigError(
                f"Module '{module_id}' is not configured for instance '{self.instance_name}'"
            )
        return ModuleConfig.from_mapping(module_id, self.modules[module_id])

    def enabled_modules(self) -> list[str]:
        return [
            module_id for module_id, data in self.modules.items()
            if bool(data.get("enabled", True))
        ]


class ConfigManager:
    """Locates, loads and creates instance directories under a root."""

    def __init__(self, root: Optional[Path] = None):
        self.root = root or Path.cwd()

    def instance_dir(self, name: str) -> Path:
        return self.root / name

    def list_instances(self) -> list[str]:
        """Instance directories (those holding a config file), sorted."""
        if not self.root.is_dir():
            return []
        return sorted(
            path.name for path in self.root.iterdir()
            if path.is_dir() and (path / CONFIG_FILENAME).is_file()
        )

    def load(self, name: str) -> InstanceConfig:
        """Load an instance's configuration.

        Raises:
            ConfigError: If the file is missing or malformed
        """
        path = self.instance_dir(name) / CONFIG_FILENAME
        if not path.is_file():
            raise ConfigError(
                f"Instance '{name}' not found. Run 'gcgit init --instance {name}' first"
            )

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping")

        modules = data.get("modules") or {}
        if not isinstance(modules, dict):
            raise ConfigError(f"{path}: 'modules' must be a mapping")
        modules = {module_id: dict(block or {}) for module_id, block in modules.items()}

        # Pre-module layout kept a single top-level xsiam block
        legacy = data.get("xsiam")
        if isinstance(legacy, dict) and "xsiam" not in modules:
            logger.info(f"{name}: using legacy top-level 'xsiam' block")
            modules["xsiam"] = dict(legacy)

        return InstanceConfig(
            instance_name=str(data.get("instance_name") or name),
            path=path,
            modules=modules,
        )

    def init_instance(self, name: str, registry: ModuleRegistry) -> Path:
        """Create an instance directory with its layout, config and git repo.

        An existing config file is left untouched.

        Returns:
            The instance directory
        """
        instance_dir = self.instance_dir(name)
        for module in registry.all_modules():
            for content_type in module.content_type_names:
                (instance_dir / module.id / content_type).mkdir(parents=True, exist_ok=True)

        config_path = instance_dir / CONFIG_FILENAME
        if config_path.exists():
            logger.info(f"Keeping existing {config_path}")
        else:
            config_path.write_text(CONFIG_TEMPLATE.format(name=name, timeout=int(DEFAULT_TIMEOUT)))
            logger.info(f"Wrote config template {config_path}")

        gitignore = instance_dir / ".gitignore"
        if not gitignore.exists():
            gitignore.write_text(GITIGNORE_TEMPLATE)

        GitManager(instance_dir).init(f"Initialize gcgit instance {name}")
        return instance_dir
