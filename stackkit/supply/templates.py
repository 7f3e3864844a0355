"""
Pipeline template selection and rendering.

Templates ship with the buildpack under defaults/templates and are rendered
into <deps_dir>/conf.d with the staged gte template tool. An application
without its own conf.d files and without a config-templates list gets every
default template; otherwise only the templates it names.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from stackkit.config.parser import SupplyConfig, Template, TemplateCatalog
from stackkit.core.exceptions import TemplateError
from stackkit.core.process import CommandRunner
from stackkit.supply.context import SupplyContext

logger = logging.getLogger(__name__)

TEMPLATE_DELIMITERS = "<<:>>"


@dataclass
class SelectedTemplate:
    """A template chosen for this application, with its service binding name."""

    template: Template
    service_instance_name: str = ""

    @property
    def name(self) -> str:
        return self.template.name


class TemplateRenderer:
    """Runs <gte>/gte to render a file or directory of templates."""

    def __init__(self, gte_home: Path, runner: Optional[CommandRunner] = None):
        self.gte_home = Path(gte_home)
        self.runner = runner or CommandRunner()

    def render(
        self,
        source: Path,
        destination: Path,
        env: Optional[Dict[str, str]] = None,
        delimiters: Optional[str] = TEMPLATE_DELIMITERS,
    ):
        """
        Render source to destination.

        Raises:
            TemplateError: If gte fails
        """
        cmd = [self.gte_home / "gte"]
        if delimiters:
            cmd += ["-d", delimiters]
        cmd += [source, destination]

        try:
            result = self.runner.capture(cmd, env=env)
        except OSError as e:
            raise TemplateError(f"Unable to run gte for {source}: {e}") from e

        if not result.success:
            raise TemplateError(f"Error pre-processing {source}: {result.output.strip()}")


def select_templates(
    catalog: TemplateCatalog, config: SupplyConfig, config_files_exist: bool
) -> List[SelectedTemplate]:
    """
    Choose the templates to install.

    Raises:
        TemplateError: If a named template needs a service binding but the
            Logstash file gives no service-instance-name
    """
    if not config_files_exist and not config.config_templates:
        return [SelectedTemplate(t) for t in catalog.defaults()]

    selected = []
    for requested in config.config_templates:
        name = requested.name.strip()
        if not name:
            logger.warning("Skipping template: no valid name defined for template in Logstash file")
            continue

        template = catalog.get(name)
        if template is None:
            logger.warning(f"Template {name} defined in Logstash file does not exist")
            continue

        service = requested.service_instance_name.strip()
        if not service and template.tags:
            raise TemplateError(
                f"No service instance name defined for template {name} in Logstash file"
            )
        if service and not template.tags:
            logger.warning(
                f"Service instance name '{service}' is defined for template {name} "
                "in Logstash file but template can not be bound to a service."
            )
            service = ""

        selected.append(SelectedTemplate(template, service))
    return selected


def install_templates(
    context: SupplyContext, catalog: TemplateCatalog, renderer: TemplateRenderer
) -> List[SelectedTemplate]:
    """
    Render selected templates and their grok patterns into staging.

    The plugins of the selected templates are added to the context's plugin
    list.
    """
    stager = context.stager
    selected = select_templates(catalog, context.config, context.config_files_exist)

    alias = catalog.alias
    credentials = context.config.logstash_credentials
    base_env = {
        "CREDENTIALS_HOST_FIELD": alias.credentials_host_field,
        "CREDENTIALS_USERNAME_FIELD": alias.credentials_username_field,
        "CREDENTIALS_PASSWORD_FIELD": alias.credentials_password_field,
        "LOGSTASH_AUTH": "true" if credentials.auth else "false",
        "LOGSTASH_USERNAME": credentials.username,
        "LOGSTASH_PASSWORD": credentials.password,
    }

    for item in selected:
        logger.info(f"--> installing template {item.name}")
        env = context.child_env(
            dict(base_env, SERVICE_INSTANCE_NAME=item.service_instance_name)
        )
        renderer.render(
            stager.buildpack_dir / "defaults" / "templates" / f"{item.name}.conf",
            stager.deps_dir / "conf.d" / f"{item.name}.conf",
            env=env,
        )
        context.add_groks(item.template.groks)
        context.add_plugins(item.template.plugins)

    for grok in context.groks:
        renderer.render(
            stager.buildpack_dir / "defaults" / "grok-patterns" / grok,
            stager.deps_dir / "grok-patterns" / grok,
            env=context.child_env(),
        )

    return selected


__all__ = [
    "SelectedTemplate",
    "TemplateRenderer",
    "select_templates",
    "install_templates",
    "TEMPLATE_DELIMITERS",
]
