"""
Ordered installation sequence of the supply run.

Each RegistryStep names a Dependency, the phase it belongs to, a gate
deciding whether the run needs it, and an optional hook run once it is
installed (writing its profile.d script, running pip, ...).

Default sequence:

    toolchain: gte, jq, [ofelia, python3, curator], openjdk
    runtime:   logstash
    plugins:   [x-pack], [logstash-plugins]

Bracketed steps are gated: the curator stack on ``curator.install``, the
plugin bundles on the plugins requested by the application and its
templates. The runtime and its plugin bundles follow the Logstash version
from the configuration.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from stackkit.config.parser import SupplyConfig
from stackkit.core.exceptions import InstallError, StackKitError
from stackkit.supply.context import SupplyContext
from stackkit.supply.dependency import CompileFromSource, Dependency, ResolvedDependency
from stackkit.supply.installer import ArtifactInstaller

logger = logging.getLogger(__name__)

PHASE_TOOLCHAIN = "toolchain"
PHASE_RUNTIME = "runtime"
PHASE_PLUGINS = "plugins"

Gate = Callable[[SupplyContext], bool]
Hook = Callable[[SupplyContext, ResolvedDependency], None]


def always(context: SupplyContext) -> bool:
    return True


@dataclass
class RegistryStep:
    """One dependency in the installation sequence."""

    dependency: Dependency
    phase: str
    when: Gate = always
    after: Optional[Hook] = None

    @property
    def name(self) -> str:
        return self.dependency.name


class DependencyRegistry:
    """
    Ordered list of installation steps.

    Example:
        >>> registry = build_default_registry(config)
        >>> registry.install_phase("toolchain", installer, context)
        >>> context.home("openjdk")
        PosixPath('/tmp/deps/0/openjdk-1.8.0')
    """

    def __init__(self, steps: Optional[List[RegistryStep]] = None):
        self._steps: List[RegistryStep] = list(steps or [])

    def add(self, step: RegistryStep):
        self._steps.append(step)

    def steps(self, phase: Optional[str] = None) -> List[RegistryStep]:
        """Steps in installation order, optionally limited to one phase."""
        return [s for s in self._steps if phase is None or s.phase == phase]

    def enabled(self, phase: str, context: SupplyContext) -> List[RegistryStep]:
        """Steps of phase whose gate admits them for this run."""
        return [s for s in self.steps(phase) if s.when(context)]

    def install_phase(
        self, phase: str, installer: ArtifactInstaller, context: SupplyContext
    ) -> List[ResolvedDependency]:
        """
        Install every enabled step of phase in order.

        The first failure aborts the remaining steps.

        Returns:
            The installed dependencies, in order

        Raises:
            StackKitError: From the failing step
        """
        installed = []
        for step in self.steps(phase):
            if not step.when(context):
                logger.debug(f"Skipping {step.name}: not required for this application")
                continue

            try:
                resolved = installer.install(step.dependency, env=context.child_env())
                context.installed[step.name] = resolved
                if step.after is not None:
                    step.after(context, resolved)
            except StackKitError as e:
                logger.error(f"Error installing dependency {step.name}: {e}")
                raise

            installed.append(resolved)
        return installed


# ============================================================================
# Hooks
# ============================================================================


def home_profile(variable: str, prepend: bool = False, bin_dir: bool = False) -> Hook:
    """Hook writing a profile.d script that exports variable and extends PATH."""
    path_entry = f"${variable}/bin" if bin_dir else f"${variable}"

    def write(context: SupplyContext, resolved: ResolvedDependency):
        if prepend:
            path_line = f"PATH={path_entry}:$PATH"
        else:
            path_line = f"PATH=$PATH:{path_entry}"
        context.stager.write_profile_d(
            resolved.name,
            f"export {variable}=$DEPS_DIR/{resolved.runtime_location}\n{path_line}\n",
        )

    return write


def python_series(version: str) -> str:
    """'3.6.8' -> '3.6'."""
    return ".".join(version.split(".")[:2])


def curator_profile(context: SupplyContext, resolved: ResolvedDependency):
    """Curator is pip-installed into <deps_dir>/curator."""
    series = python_series(context.installed["python3"].version)
    context.stager.write_profile_d(
        resolved.name,
        f"""
        export CURATOR_HOME=$DEPS_DIR/{context.stager.deps_idx}/curator
        export PYTHONPATH=${{CURATOR_HOME}}/lib/python{series}/site-packages
        PATH=${{CURATOR_HOME}}/bin:${{PATH}}
        """,
    )


def pip_install_curator(context: SupplyContext, resolved: ResolvedDependency):
    """
    Install elasticsearch-curator from the wheels bundled in the curator artifact.

    Raises:
        InstallError: If pip exits non-zero
    """
    python_home = context.home("python3")
    script = context.stager.write_script(
        "pip_install_curator",
        f"""
        #!/bin/bash
        export PATH={python_home}/bin:$PATH
        # --no-index keeps pip off the network, --find-links points at the bundled wheels
        pip3 install --no-index --find-links {resolved.staging_location}/dependencies --prefix={context.stager.deps_dir}/curator elasticsearch-curator -v
        pip3 list
        """,
    )

    logger.info("--> installing curator with pip3")
    try:
        result = context.runner.stream(["/bin/bash", script], env=context.child_env())
    except OSError as e:
        raise InstallError(f"Unable to run {script}: {e}") from e

    if not result.success:
        raise InstallError(f"pip3 install of curator failed (exit code {result.returncode})")


def curator_hooks(context: SupplyContext, resolved: ResolvedDependency):
    curator_profile(context, resolved)
    pip_install_curator(context, resolved)


def logstash_profile(context: SupplyContext, resolved: ResolvedDependency):
    config = context.config
    curator_enabled = "enabled" if config.curator.install else ""
    do_sleep = "yes" if config.buildpack.do_sleep_command else ""
    context.stager.write_profile_d(
        resolved.name,
        f"""
        export LS_BP_RESERVED_MEMORY={config.reserved_memory}
        export LS_BP_HEAP_PERCENTAGE={config.heap_percentage}
        export LS_BP_JAVA_OPTS="{config.java_opts}"
        export LS_CMD_ARGS="{config.cmd_args}"
        export LS_ROOT=$DEPS_DIR/{context.stager.deps_idx}
        export LS_CURATOR_ENABLED={curator_enabled}
        export LS_DO_SLEEP={do_sleep}
        export LOGSTASH_HOME=$DEPS_DIR/{resolved.runtime_location}
        PATH=$PATH:$LOGSTASH_HOME/bin
        """,
    )


# ============================================================================
# Gates
# ============================================================================


def curator_enabled(context: SupplyContext) -> bool:
    return context.config.curator.install


def wants_xpack(context: SupplyContext) -> bool:
    return any(p.startswith("x-pack") for p in context.plugins)


def wants_default_plugins(context: SupplyContext) -> bool:
    return any(not p.startswith("x-pack") for p in context.plugins)


def build_default_registry(config: SupplyConfig) -> DependencyRegistry:
    """Installation sequence for a Logstash application."""
    ls_version = config.version

    return DependencyRegistry(
        [
            RegistryStep(Dependency("gte"), PHASE_TOOLCHAIN, after=home_profile("GTE_HOME")),
            RegistryStep(Dependency("jq"), PHASE_TOOLCHAIN, after=home_profile("JQ_HOME")),
            RegistryStep(
                Dependency("ofelia"),
                PHASE_TOOLCHAIN,
                when=curator_enabled,
                after=home_profile("OFELIA_HOME"),
            ),
            RegistryStep(
                Dependency("python3", strategy=CompileFromSource()),
                PHASE_TOOLCHAIN,
                when=curator_enabled,
                after=home_profile("PYTHONHOME", prepend=True, bin_dir=True),
            ),
            RegistryStep(
                Dependency("curator"),
                PHASE_TOOLCHAIN,
                when=curator_enabled,
                after=curator_hooks,
            ),
            RegistryStep(
                Dependency("openjdk"),
                PHASE_TOOLCHAIN,
                after=home_profile("JAVA_HOME", bin_dir=True),
            ),
            RegistryStep(
                Dependency("logstash", ls_version), PHASE_RUNTIME, after=logstash_profile
            ),
            RegistryStep(Dependency("x-pack", ls_version), PHASE_PLUGINS, when=wants_xpack),
            RegistryStep(
                Dependency("logstash-plugins", ls_version),
                PHASE_PLUGINS,
                when=wants_default_plugins,
            ),
        ]
    )


__all__ = [
    "DependencyRegistry",
    "RegistryStep",
    "build_default_registry",
    "home_profile",
    "PHASE_TOOLCHAIN",
    "PHASE_RUNTIME",
    "PHASE_PLUGINS",
]
