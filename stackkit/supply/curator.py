"""
Curator (log retention) preparation.

Writes the ofelia job running curator on the configured schedule and renders
the buildpack's default curator configuration into <deps_dir>/curator.d.
"""

import logging

from stackkit.supply.context import SupplyContext
from stackkit.supply.templates import TemplateRenderer

logger = logging.getLogger(__name__)

CURATOR_SCRIPT = """
#!/bin/bash
export LC_ALL=en_US.UTF-8
export LANG=en_US.UTF-8
${PYTHONHOME}/bin/python3 ${CURATOR_HOME}/bin/curator --config ${HOME}/curator.conf.d/curator.yml ${HOME}/curator.conf.d/actions.yml
"""

SCHEDULE_INI = """
[job-local "curator"]
schedule = {schedule}
command = {{{{- .Env.HOME -}}}}/bin/curator.sh
"""


def prepare_curator(context: SupplyContext, renderer: TemplateRenderer):
    """
    Stage curator's start script, ofelia schedule and configuration.

    Raises:
        StagingError: If the files cannot be written
        TemplateError: If the default configuration cannot be rendered
    """
    stager = context.stager
    logger.info("--> preparing curator")

    stager.write_file("ofelia/scripts/curator.sh", CURATOR_SCRIPT.lstrip(), mode=0o755)
    stager.write_file(
        "ofelia/config/schedule.ini",
        SCHEDULE_INI.format(schedule=context.config.curator.schedule).lstrip(),
    )

    renderer.render(
        stager.buildpack_dir / "defaults" / "curator",
        stager.deps_dir / "curator.d",
        env=context.child_env(),
    )


__all__ = ["prepare_curator", "CURATOR_SCRIPT", "SCHEDULE_INI"]
