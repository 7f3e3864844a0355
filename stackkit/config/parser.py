"""YAML configuration parser for StackKit.

This module parses the application's ``Logstash`` file, the buildpack's
template catalog (defaults/templates/templates.yml) and the memory limit the
platform publishes in VCAP_APPLICATION.

Keys in the Logstash file may be written with hyphens (``config-check``) or
underscores (``config_check``).
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from stackkit.core.exceptions import ConfigError

DEFAULT_RESERVED_MEMORY = 300
DEFAULT_HEAP_PERCENTAGE = 90
DEFAULT_CURATOR_SCHEDULE = "@daily"


@dataclass
class ConfigTemplate:
    """A template explicitly requested by the application."""

    name: str
    service_instance_name: str = ""


@dataclass
class CuratorConfig:
    """Log retention (curator, scheduled by ofelia)."""

    install: bool = False
    schedule: str = DEFAULT_CURATOR_SCHEDULE


@dataclass
class LogstashCredentials:
    """Basic auth credentials templates use to protect the Logstash HTTP input."""

    username: str = ""
    password: str = ""

    @property
    def auth(self) -> bool:
        return bool(self.username)


@dataclass
class BuildpackConfig:
    """Options controlling the supply run itself."""

    log_level: str = "info"
    no_cache: bool = False
    do_sleep_command: bool = False

    @property
    def debug(self) -> bool:
        return self.log_level.lower() == "debug"


@dataclass
class SupplyConfig:
    """Complete application configuration from the Logstash file."""

    version: str = ""
    plugins: List[str] = field(default_factory=list)
    certificates: List[str] = field(default_factory=list)
    config_check: bool = False
    reserved_memory: int = DEFAULT_RESERVED_MEMORY
    heap_percentage: int = DEFAULT_HEAP_PERCENTAGE
    java_opts: str = ""
    cmd_args: str = ""
    config_templates: List[ConfigTemplate] = field(default_factory=list)
    logstash_credentials: LogstashCredentials = field(default_factory=LogstashCredentials)
    curator: CuratorConfig = field(default_factory=CuratorConfig)
    buildpack: BuildpackConfig = field(default_factory=BuildpackConfig)


@dataclass
class ApplicationLimits:
    """Resource limits of the application instance (megabytes)."""

    mem: int = 0


@dataclass
class Template:
    """A pipeline configuration template shipped with the buildpack."""

    name: str
    is_default: bool = False
    tags: List[str] = field(default_factory=list)
    groks: List[str] = field(default_factory=list)
    plugins: List[str] = field(default_factory=list)


@dataclass
class TemplateAlias:
    """Names of the credential fields templates read from service bindings."""

    credentials_host_field: str = "host"
    credentials_username_field: str = "username"
    credentials_password_field: str = "password"


@dataclass
class TemplateCatalog:
    """Templates available in the buildpack."""

    templates: List[Template] = field(default_factory=list)
    alias: TemplateAlias = field(default_factory=TemplateAlias)

    def get(self, name: str) -> Optional[Template]:
        for template in self.templates:
            if template.name == name:
                return template
        return None

    def defaults(self) -> List[Template]:
        return [t for t in self.templates if t.is_default]


# ============================================================================
# Logstash file
# ============================================================================


def parse_config(config_path: Path) -> SupplyConfig:
    """
    Parse the application's Logstash file.

    Args:
        config_path: Path to <build_dir>/Logstash

    Returns:
        Parsed configuration with defaults applied

    Raises:
        ConfigError: If the file is missing or invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}") from e

    if data is None:
        data = {}

    return parse_config_data(data)


def parse_config_data(data: Any) -> SupplyConfig:
    """Build a SupplyConfig from already loaded YAML data."""
    data = _section(data, "Logstash file")

    curator_data = _section(data.get("curator", {}), "curator")
    buildpack_data = _section(data.get("buildpack", {}), "buildpack")

    curator = CuratorConfig(
        install=_as_bool(curator_data.get("install", False), "curator.install"),
        schedule=_as_str(curator_data.get("schedule"), "curator.schedule")
        or DEFAULT_CURATOR_SCHEDULE,
    )
    buildpack = BuildpackConfig(
        log_level=_as_str(buildpack_data.get("log_level"), "buildpack.log-level") or "info",
        no_cache=_as_bool(buildpack_data.get("no_cache", False), "buildpack.no-cache"),
        do_sleep_command=_as_bool(
            buildpack_data.get("do_sleep_command", False), "buildpack.do-sleep-command"
        ),
    )
    credentials_data = _section(data.get("logstash_credentials", {}), "logstash-credentials")
    credentials = LogstashCredentials(
        username=_as_str(credentials_data.get("username"), "logstash-credentials.username"),
        password=_as_str(credentials_data.get("password"), "logstash-credentials.password"),
    )

    return SupplyConfig(
        version=_as_str(data.get("version"), "version"),
        plugins=_as_str_list(data.get("plugins"), "plugins"),
        certificates=_as_str_list(data.get("certificates"), "certificates"),
        config_check=_as_bool(data.get("config_check", False), "config-check"),
        reserved_memory=_as_int(
            data.get("reserved_memory", DEFAULT_RESERVED_MEMORY), "reserved-memory"
        ),
        heap_percentage=_as_int(
            data.get("heap_percentage", DEFAULT_HEAP_PERCENTAGE), "heap-percentage"
        ),
        java_opts=_as_str(data.get("java_opts"), "java-opts"),
        cmd_args=_as_str(data.get("cmd_args"), "cmd-args"),
        config_templates=_parse_config_templates(data.get("config_templates")),
        logstash_credentials=credentials,
        curator=curator,
        buildpack=buildpack,
    )


def _parse_config_templates(data: Any) -> List[ConfigTemplate]:
    """Parse config-templates entries."""
    if data is None:
        return []
    if not isinstance(data, list):
        raise ConfigError("config-templates must be a list")

    templates = []
    for item in data:
        item = _section(item, "config-templates entry")
        templates.append(
            ConfigTemplate(
                name=_as_str(item.get("name"), "config-templates.name"),
                service_instance_name=_as_str(
                    item.get("service_instance_name"),
                    "config-templates.service-instance-name",
                ),
            )
        )
    return templates


# ============================================================================
# VCAP_APPLICATION
# ============================================================================


def parse_application_limits(raw: Optional[str]) -> ApplicationLimits:
    """
    Read the memory limit from a VCAP_APPLICATION JSON document.

    An unset or empty value yields a zero limit.

    Raises:
        ConfigError: If raw is not valid JSON or the limit is not a number
    """
    if not raw or not raw.strip():
        return ApplicationLimits()

    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid VCAP_APPLICATION: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("VCAP_APPLICATION must be a JSON object")

    limits = data.get("limits") or {}
    return ApplicationLimits(mem=_as_int(limits.get("mem", 0), "limits.mem"))


# ============================================================================
# Template catalog
# ============================================================================


def parse_template_catalog(catalog_path: Path) -> TemplateCatalog:
    """
    Parse defaults/templates/templates.yml.

    Raises:
        ConfigError: If the catalog is missing or invalid
    """
    catalog_path = Path(catalog_path)
    if not catalog_path.exists():
        raise ConfigError(f"Template catalog not found: {catalog_path}")

    try:
        with open(catalog_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {catalog_path}: {e}") from e

    data = _section(data or {}, "template catalog")

    templates = []
    for item in data.get("templates") or []:
        item = _section(item, "template")
        if not item.get("name"):
            raise ConfigError("Template missing required field: name")
        templates.append(
            Template(
                name=_as_str(item["name"], "templates.name"),
                is_default=_as_bool(item.get("is_default", False), "templates.is_default"),
                tags=_as_str_list(item.get("tags"), "templates.tags"),
                groks=_as_str_list(item.get("groks"), "templates.groks"),
                plugins=_as_str_list(item.get("plugins"), "templates.plugins"),
            )
        )

    alias_data = _section(data.get("alias", {}), "alias")
    alias = TemplateAlias(
        credentials_host_field=alias_data.get("credentials_host_field") or "host",
        credentials_username_field=alias_data.get("credentials_username_field")
        or "username",
        credentials_password_field=alias_data.get("credentials_password_field")
        or "password",
    )

    return TemplateCatalog(templates=templates, alias=alias)


# ============================================================================
# Value helpers
# ============================================================================


def _section(data: Any, what: str) -> Dict[str, Any]:
    """Return data as a mapping with hyphenated keys normalized."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{what} must be a mapping")
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ConfigError(f"{key} must be true or false, got {value!r}")


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    return value


def _as_str(value: Any, key: str) -> str:
    if value is None:
        return ""
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return str(value).strip()
    raise ConfigError(f"{key} must be a string, got {value!r}")


def _as_str_list(value: Any, key: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"{key} must be a list")
    return [_as_str(v, key) for v in value]


__all__ = [
    "ConfigTemplate",
    "CuratorConfig",
    "LogstashCredentials",
    "BuildpackConfig",
    "SupplyConfig",
    "ApplicationLimits",
    "Template",
    "TemplateAlias",
    "TemplateCatalog",
    "parse_config",
    "parse_config_data",
    "parse_application_limits",
    "parse_template_catalog",
]
