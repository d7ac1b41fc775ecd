"""
Fingerprint command implementation.

Prints the content fingerprint of the filtered source tree.
"""

import os

from flakeplan.cli.utils import load_declaration
from flakeplan.core.filesystem import filter_tree
from flakeplan.core.verification import fingerprint


def run(args) -> int:
    declaration = load_declaration(args)
    tree = filter_tree(declaration.root, declaration.exclude)

    if args.list:
        for entry in tree:
            marker = "x" if entry.executable else ("l" if entry.kind == "symlink" else "-")
            # Undecodable names are shown escaped
            shown = os.fsencode(entry.path).decode("utf-8", "backslashreplace")
            print(f"{marker} {shown}")

    print(fingerprint(tree))
    return 0
