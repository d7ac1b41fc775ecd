"""
Plan command implementation.

Compiles the declaration and emits the build plan as JSON.
"""

import logging

from flakeplan.cli.utils import load_declaration
from flakeplan.compiler import compile_declaration
from flakeplan.core.filesystem import atomic_write
from flakeplan.core.locking import output_lock

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the plan command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success)
    """
    plan = compile_declaration(load_declaration(args))
    payload = plan.to_json() + "\n"

    if args.output is None:
        print(payload, end="")
        return 0

    with output_lock(args.output, timeout=args.lock_timeout):
        atomic_write(args.output, payload)

    logger.info(f"Wrote plan with {len(plan.units)} unit(s) to {args.output}")
    return 0
