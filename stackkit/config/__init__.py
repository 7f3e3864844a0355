"""Configuration module for StackKit.

This module provides YAML parsing for the application's Logstash file and the
buildpack's template catalog.
"""

from stackkit.config.parser import (
    ConfigTemplate,
    CuratorConfig,
    BuildpackConfig,
    LogstashCredentials,
    SupplyConfig,
    ApplicationLimits,
    Template,
    TemplateAlias,
    TemplateCatalog,
    parse_config,
    parse_config_data,
    parse_application_limits,
    parse_template_catalog,
)
from stackkit.core.exceptions import ConfigError

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
    "ConfigError",
    "parse_config",
    "parse_config_data",
    "parse_application_limits",
    "parse_template_catalog",
]
