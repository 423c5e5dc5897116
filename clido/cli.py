import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as dist_version
from pathlib import Path

import fncli
from fncli import cli

from . import config, db
from .core.errors import ClidoError
from .lib import ansi, logs
from .lib.errors import echo, exit_error


@cli("clido", name="version")
def version():
    """Show the clido version"""
    try:
        echo(f"clido {dist_version('clido')}")
    except PackageNotFoundError:
        echo("clido (not installed)")


def main(argv: list[str] | None = None):
    user_args = sys.argv[1:] if argv is None else argv
    try:
        logs.configure()
        ansi.use(ansi.DEFAULT if config.color_enabled() and sys.stdout.isatty() else ansi.PLAIN)
        db.init()
        fncli.autodiscover(Path(__file__).parent, "clido")
        code = fncli.dispatch(["clido", *user_args])
    except ClidoError as e:
        exit_error(str(e))
    sys.exit(code)


if __name__ == "__main__":
    main()
