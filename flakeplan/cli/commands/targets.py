"""
Targets command implementation.

Shows the resolved target matrix.
"""

from flakeplan.cli.utils import load_declaration
from flakeplan.cross.targets import DEFAULT_TARGETS, resolve


def run(args) -> int:
    declaration = load_declaration(args)
    enabled = {target.triple for target in resolve(DEFAULT_TARGETS, declaration.targets)}

    for target in DEFAULT_TARGETS:
        if target.triple in enabled:
            state = "enabled"
        elif args.all:
            state = "disabled"
        else:
            continue

        source = "override" if target.triple in declaration.targets else "default"
        print(f"{target.triple:<36} {state:<9} ({source})")

    return 0
