"""
Shell command implementation.

Shows the tools of the composed development shell.
"""

from flakeplan.cli.utils import load_declaration
from flakeplan.packages.base import PackageDefinition, default_package_set
from flakeplan.packages.overlays import compose
from flakeplan.plan.devshell import DEFAULT_SHELL_TOOLS, compose_shell, resolve_tools


def run(args) -> int:
    declaration = load_declaration(args)
    packages = compose(default_package_set(), declaration.overlays)
    shell = compose_shell(DEFAULT_SHELL_TOOLS, declaration.shell_tools)

    for tool, package in resolve_tools(shell, packages).items():
        if isinstance(package, PackageDefinition):
            print(f"{tool} {package.version}")
        else:
            print(tool)

    return 0
