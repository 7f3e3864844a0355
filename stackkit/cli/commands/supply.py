"""
Supply command implementation.

Installs the Logstash stack for an application.
"""

import logging

from stackkit.core.exceptions import StackKitError
from stackkit.core.process import CommandRunner
from stackkit.supply.stager import Stager
from stackkit.supply.supplier import Supplier

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the supply command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, 1 if any step failed)
    """
    stager = Stager(
        build_dir=args.build_dir,
        cache_dir=args.cache_dir,
        deps_dir=args.deps_dir / args.deps_idx,
        deps_idx=args.deps_idx,
        buildpack_dir=args.buildpack_dir,
    )
    logger.debug(f"Arguments: {args}")

    try:
        runner = CommandRunner(stream_output=True) if args.verbose else None
        context = Supplier(stager, runner=runner, tmp_root=args.tmp_dir).run()
    except StackKitError as e:
        logger.error(f"Supply failed: {e}")
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1

    logstash = context.installed.get("logstash")
    if logstash is not None:
        logger.info(f"-----> Supplied {logstash.full_name}")
    return 0
