"""Command line entry point: `kcdist prepare` and `kcdist start`."""

import logging
import time
from pathlib import Path
from typing import Annotated

from typer import Argument, Exit, Option, Typer

from kcdist import __version__
from kcdist.errors import HarnessError
from kcdist.logging import configure_logging
from kcdist.models import HarnessConfig, StopMode
from kcdist.supervisor import DistributionSupervisor
from kcdist.utils import console

app = Typer(
    name="kcdist",
    help="Prepare, run and stop a server distribution under test.",
    no_args_is_help=True,
)

ArtifactOption = Annotated[
    Path | None,
    Option("--artifact", "-a", help="Distribution archive. Defaults to the local Maven repository"),
]
DistRootOption = Annotated[
    Path | None,
    Option("--dist-root", help="Directory the distribution is expanded into"),
]
RecreateOption = Annotated[
    bool,
    Option("--recreate", help="Delete and re-expand an existing installation"),
]
VerboseOption = Annotated[bool, Option("--verbose", "-v", help="Show debug logs")]


def _load_config(**overrides: object) -> HarnessConfig:
    # False flags must not mask values coming from the environment
    return HarnessConfig.from_env(
        **{k: (None if v is False else v) for k, v in overrides.items()}
    )


def version_callback(value: bool) -> None:
    if value:
        console.print(f"kcdist {__version__}")
        raise Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        Option("--version", callback=version_callback, is_eager=True, help="Show version"),
    ] = False,
) -> None:
    pass


@app.command()
def prepare(
    artifact: ArtifactOption = None,
    dist_root: DistRootOption = None,
    recreate: RecreateOption = False,
    verbose: VerboseOption = False,
) -> None:
    """Expand the distribution and print the installation path."""
    configure_logging(level=logging.DEBUG if verbose else logging.INFO)
    config = _load_config(artifact=artifact, dist_root=dist_root, recreate=recreate)
    try:
        path = DistributionSupervisor(config).prepare()
    except HarnessError as e:
        console.print(f"[red]❌ {e}[/red]", soft_wrap=True)
        raise Exit(code=1)
    console.print(str(path), markup=False, highlight=False, soft_wrap=True)


@app.command()
def start(
    arguments: Annotated[
        list[str] | None,
        Argument(help="Arguments passed verbatim to the server (put them after --)"),
    ] = None,
    manual: Annotated[
        bool,
        Option("--manual", help="Wait for readiness and keep the server up until Ctrl+C"),
    ] = False,
    debug: Annotated[bool, Option("--debug", help="Start the server in debug mode")] = False,
    artifact: ArtifactOption = None,
    dist_root: DistRootOption = None,
    recreate: RecreateOption = False,
    verbose: VerboseOption = False,
) -> None:
    """Run the server with the given arguments."""
    configure_logging(level=logging.DEBUG if verbose else logging.INFO)
    config = _load_config(
        artifact=artifact,
        dist_root=dist_root,
        recreate=recreate,
        debug=debug,
        stop_mode=StopMode.manual if manual else False,
    )
    supervisor = DistributionSupervisor(config)

    try:
        supervisor.start(arguments or [])
    except HarnessError as e:
        console.print(f"[red]❌ {e}[/red]", soft_wrap=True)
        raise Exit(code=1)

    if not config.manual_stop:
        console.print(f"Server exited with code {supervisor.exit_code}")
        if supervisor.exit_code != 0:
            raise Exit(code=supervisor.exit_code)
        return

    console.print(f"[green]✓[/green] Server ready at {supervisor.readiness_url}")
    try:
        while supervisor.is_running:
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        try:
            supervisor.stop_if_running()
        except HarnessError as e:
            console.print(f"[red]❌ {e}[/red]", soft_wrap=True)
            raise Exit(code=1)
    console.print(f"Server stopped with code {supervisor.exit_code}")


if __name__ == "__main__":
    app()
