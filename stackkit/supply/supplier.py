"""
Supply run orchestration.

One call to Supplier.run() performs the whole supply step for an
application:

1. Parse the Logstash file and the environment
2. Open the dependency cache (held locked for the whole run)
3. Install the toolchain: gte, jq, [curator stack], openjdk
4. Render templates, import certificates, prepare curator
5. Install Logstash, its plugin bundles and the requested plugins
6. Optionally check the Logstash configuration
7. Sweep cache entries this run did not use and write config.yml

Every step fails fast: the error is logged with the step's name and
re-raised, and the cache lock is released on the way out.
"""

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Mapping, Optional

from stackkit.config.parser import (
    TemplateCatalog,
    parse_application_limits,
    parse_config,
    parse_template_catalog,
)
from stackkit.core.exceptions import ConfigError, StackKitError
from stackkit.core.process import CommandRunner
from stackkit.manifest.manifest import Manifest
from stackkit.supply.cache import DEFAULT_FORMAT_VERSION, CacheStore
from stackkit.supply.certificates import install_certificates
from stackkit.supply.context import SupplyContext
from stackkit.supply.curator import prepare_curator
from stackkit.supply.dependency import DependencyLayout
from stackkit.supply.installer import ArtifactInstaller
from stackkit.supply.plugins import PluginInstaller, PluginResolver, PluginSource
from stackkit.supply.registry import (
    PHASE_PLUGINS,
    PHASE_RUNTIME,
    PHASE_TOOLCHAIN,
    DependencyRegistry,
    build_default_registry,
)
from stackkit.supply.stager import Stager
from stackkit.supply.templates import TemplateRenderer, install_templates

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "Logstash"


@contextmanager
def _step(description: str):
    """Log a failing step by name before propagating its error."""
    try:
        yield
    except StackKitError as e:
        logger.error(f"Error {description}: {e}")
        raise


def _has_entries(directory: Path) -> bool:
    try:
        return directory.is_dir() and any(directory.iterdir())
    except OSError:
        return False


class Supplier:
    """
    Supplies a Logstash application with its dependencies.

    Example:
        >>> stager = Stager(build_dir, cache_dir, deps_dir, "0", buildpack_dir)
        >>> context = Supplier(stager).run()
        >>> context.home("logstash")
        PosixPath('/tmp/deps/0/logstash-6.4.0')
    """

    def __init__(
        self,
        stager: Stager,
        manifest: Optional[Manifest] = None,
        runner: Optional[CommandRunner] = None,
        registry: Optional[DependencyRegistry] = None,
        environ: Optional[Mapping[str, str]] = None,
        tmp_root: Optional[Path] = None,
        format_version: str = DEFAULT_FORMAT_VERSION,
        lock_timeout: float = 300,
    ):
        """
        Args:
            stager: Directories of this invocation
            manifest: Dependency manifest (default: <buildpack_dir>/manifest.yml)
            runner: Child process runner (default: streams output in debug mode)
            registry: Installation sequence (default: built from the config)
            environ: Process environment (default: os.environ)
            tmp_root: Scratch root for downloads and source trees
            format_version: Cache layout version
            lock_timeout: Seconds to wait for the cache lock
        """
        self.stager = stager
        self.manifest = manifest
        self.runner = runner
        self.registry = registry
        self.environ = dict(os.environ if environ is None else environ)
        self.format_version = format_version
        self.lock_timeout = lock_timeout
        self.tmp_root = Path(tmp_root) if tmp_root else Path(tempfile.gettempdir()) / "dependencies"
        self.installer: Optional[ArtifactInstaller] = None

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def load_context(self) -> SupplyContext:
        """
        Parse the Logstash file and the environment into a fresh context.

        Raises:
            ConfigError: If the Logstash file or VCAP_APPLICATION is invalid
        """
        with _step("evaluating Logstash file"):
            config = parse_config(self.stager.build_dir / CONFIG_FILE_NAME)
            limits = parse_application_limits(self.environ.get("VCAP_APPLICATION"))

        if config.buildpack.debug:
            logging.getLogger("stackkit").setLevel(logging.DEBUG)

        if self.runner is None:
            self.runner = CommandRunner(stream_output=config.buildpack.debug)
        if self.registry is None:
            self.registry = build_default_registry(config)

        return SupplyContext(
            stager=self.stager,
            config=config,
            limits=limits,
            runner=self.runner,
            base_env=dict(self.environ),
            config_files_exist=_has_entries(self.stager.build_dir / "conf.d"),
        )

    def _load_manifest(self) -> Manifest:
        if self.manifest is None:
            self.manifest = Manifest(self.stager.buildpack_dir / "manifest.yml")
        return self.manifest

    def _load_catalog(self) -> TemplateCatalog:
        return parse_template_catalog(
            self.stager.buildpack_dir / "defaults" / "templates" / "templates.yml"
        )

    def _log_directories(self):
        logger.debug("----> Show staging directories:")
        logger.debug(f"        Cache dir: {self.stager.cache_dir}")
        logger.debug(f"        Build dir: {self.stager.build_dir}")
        logger.debug(f"        Buildpack dir: {self.stager.buildpack_dir}")
        logger.debug(f"        Dependency dir: {self.stager.deps_dir}")
        logger.debug(f"        DepsIdx: {self.stager.deps_idx}")

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self) -> SupplyContext:
        """
        Perform the supply step.

        Returns:
            The context of the finished run

        Raises:
            StackKitError: From the first step that fails
        """
        context = self.load_context()
        config = context.config

        with _step("reading dependency manifest"):
            manifest = self._load_manifest()

        store = CacheStore(
            self.stager.cache_dir / "dependencies",
            format_version=self.format_version,
            lock_timeout=self.lock_timeout,
        )
        with _step("opening dependency cache"):
            session = store.open(no_cache=config.buildpack.no_cache)

        with session:
            self._log_directories()

            with _step("preparing directory structure"):
                self.stager.prepare_app_dirs()

            with _step("evaluating templates file"):
                catalog = self._load_catalog()

            layout = DependencyLayout(
                cache_dir=session.format_dir,
                deps_dir=self.stager.deps_dir,
                deps_idx=self.stager.deps_idx,
                tmp_dir=self.tmp_root / self.format_version,
            )
            self.installer = ArtifactInstaller(
                manifest,
                session,
                layout,
                runner=self.runner,
                no_cache=config.buildpack.no_cache,
            )

            self.registry.install_phase(PHASE_TOOLCHAIN, self.installer, context)
            self._log_staging_environment(context)

            renderer = TemplateRenderer(context.home("gte"), self.runner)
            with _step("installing templates"):
                install_templates(context, catalog, renderer)

            with _step("installing user certificates"):
                install_certificates(
                    config.certificates,
                    self.stager.build_dir / "certificates",
                    context.home("openjdk"),
                    self.runner,
                    env=context.child_env(),
                )

            if config.curator.install:
                with _step("preparing curator"):
                    prepare_curator(context, renderer)

            self.registry.install_phase(PHASE_RUNTIME, self.installer, context)

            plugin_installer = PluginInstaller(
                context.home("logstash"), self.runner, env=context.child_env()
            )
            if context.plugins:
                self.registry.install_phase(PHASE_PLUGINS, self.installer, context)
                with _step("installing Logstash plugins"):
                    self.install_plugins(context, plugin_installer)
            else:
                logger.info("--> no Logstash plugins requested")

            with _step("listing Logstash plugins"):
                plugin_installer.list_installed()

            if config.config_check:
                with _step("checking configuration"):
                    self.check_config(context, renderer)

            removed = session.sweep()
            if removed:
                logger.info(f"--> removed unused dependencies from cache: {', '.join(removed)}")

            with _step("writing config.yml"):
                self.stager.write_config_yml(
                    {"logstash_version": context.installed["logstash"].version}
                )

        return context

    def _log_staging_environment(self, context: SupplyContext):
        env = context.child_env()
        logger.debug(f" ### JAVA_HOME {env.get('JAVA_HOME')}")
        logger.debug(f" ### PATH {env.get('PATH')}")
        logger.debug(f" ### LS_JAVA_OPTS {env.get('LS_JAVA_OPTS')}")

    def plugin_sources(self, context: SupplyContext) -> Dict[str, PluginSource]:
        """Offline plugin sources in priority order."""
        installed = context.installed
        return {
            "x-pack": PluginSource(
                "x-pack",
                installed["x-pack"].staging_location if "x-pack" in installed else None,
            ),
            "logstash-plugins": PluginSource(
                "logstash-plugins",
                installed["logstash-plugins"].staging_location
                if "logstash-plugins" in installed
                else None,
            ),
            "app": PluginSource("app", self.stager.build_dir / "plugins"),
        }

    def install_plugins(self, context: SupplyContext, plugin_installer: PluginInstaller):
        logger.info("----> Installing Logstash plugins ...")
        resolver = PluginResolver(list(self.plugin_sources(context).values()))
        plugin_installer.install(resolver.resolve_all(context.plugins))

    def check_config(self, context: SupplyContext, renderer: TemplateRenderer):
        """
        Render conf.d and run 'logstash -t' against it.

        Raises:
            TemplateError: If rendering fails
            ConfigError: If Logstash rejects the configuration
        """
        logger.info("----> Starting Logstash config check...")
        deps_dir = self.stager.deps_dir
        conf_dir = deps_dir / "logstash.conf.d"
        env = context.child_env()

        renderer.render(deps_dir / "conf.d", conf_dir, env=env, delimiters=None)

        logger.info("  --> Listing files in logstash.conf.d directory ...")
        names = sorted(p.name for p in conf_dir.iterdir()) if conf_dir.is_dir() else []
        for name in names:
            logger.info(f"      {name}")
        if not names:
            logger.warning("      no files found")

        logger.info("  --> Checking Logstash config ...")
        logstash = context.home("logstash") / "bin" / "logstash"
        try:
            result = self.runner.capture([logstash, "-f", conf_dir, "-t"], env=env)
        except OSError as e:
            raise ConfigError(f"Unable to run Logstash config check: {e}") from e

        logger.info(result.output)
        if not result.success:
            raise ConfigError(
                f"Logstash config check failed (exit code {result.returncode})"
            )
        logger.info("  --> Finished Logstash config check...")


def run_supply(stager: Stager, **kwargs) -> SupplyContext:
    """Convenience wrapper: Supplier(stager, **kwargs).run()."""
    return Supplier(stager, **kwargs).run()


__all__ = ["Supplier", "run_supply", "CONFIG_FILE_NAME"]
