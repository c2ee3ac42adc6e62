import logging
import shlex
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import typer
from typing_extensions import Annotated

import parallel
from parallel.config import ConfigurationError, load_settings, settings_to_options
from parallel.processor_count import physical_processor_count, processor_count

app = typer.Typer(
    name="parallel",
    help="Run a shell command for every input line, in threads or processes.",
    add_completion=False,
    no_args_is_help=True
)

PLACEHOLDER = "{}"


class CommandFailed(Exception):
    """A command exited with a non-zero status."""

    def __init__(self, item: str, returncode: int):
        self.item = item
        self.returncode = returncode
        super().__init__(item, returncode)

    def __str__(self):
        return f"Command for {self.item!r} exited with status {self.returncode}"


@dataclass
class CommandResult:
    item: str
    returncode: int
    stdout: str
    stderr: str


def setup_logging(verbose: bool, level: str = "INFO"):
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="[%(asctime)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_command(template: str, item: str) -> str:
    """Substitute the shell-quoted item for {} in template, or append it when there is no placeholder."""
    quoted = shlex.quote(item)
    if PLACEHOLDER in template:
        return template.replace(PLACEHOLDER, quoted)
    return f"{template} {quoted}"


def run_command(template: str, item: str, keep_going: bool = False) -> CommandResult:
    completed = subprocess.run(
        build_command(template, item), shell=True, capture_output=True, text=True
    )
    if completed.returncode != 0 and not keep_going:
        raise CommandFailed(item, completed.returncode)
    return CommandResult(item, completed.returncode, completed.stdout, completed.stderr)


def read_items(input_file: Optional[Path]) -> List[str]:
    if input_file is None:
        lines = sys.stdin.read().splitlines()
    else:
        lines = input_file.read_text().splitlines()
    return [line for line in lines if line.strip()]


@app.command()
def run(
    command: Annotated[str, typer.Argument(help="Shell command; {} is replaced by the item")],
    input_file: Annotated[Optional[Path], typer.Option("--input", "-i", help="File with one item per line (default: stdin)")] = None,
    jobs: Annotated[Optional[int], typer.Option("--jobs", "-j", help="Number of workers (default: CPU count)")] = None,
    threads: Annotated[bool, typer.Option("--threads", help="Use threads instead of forked processes")] = False,
    progress: Annotated[Optional[str], typer.Option(help="Show a progress bar with this title")] = None,
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="YAML file with default settings")] = None,
    keep_going: Annotated[bool, typer.Option(help="Run every item even if some commands fail")] = False,
    verbose: bool = False
):
    """Run COMMAND once per input line and print the outputs in input order."""
    try:
        settings = load_settings(str(config_file) if config_file else None)
        setup_logging(verbose, settings["log_level"])

        if threads or settings["in_threads"] is not None:
            given = [value for value in (jobs, settings["in_threads"], settings["count"]) if value is not None]
            # 0 runs in the caller, as it does for processes
            size = given[0] if given else processor_count()
            options = settings_to_options({**settings, "count": None}, in_threads=size, progress=progress)
        else:
            options = settings_to_options(settings, count=jobs, progress=progress)
    except ConfigurationError as e:
        typer.echo(f"Configuration Error: {e}", err=True)
        raise typer.Exit(code=2)

    if input_file is not None and not input_file.exists():
        typer.echo(f"Error: File {input_file} does not exist.", err=True)
        raise typer.Exit(code=1)
    items = read_items(input_file)

    try:
        results = parallel.map(items, lambda item: run_command(command, item, keep_going), options)
    except CommandFailed as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    failed = 0
    for result in results or []:
        if result.stdout:
            typer.echo(result.stdout, nl=False)
        if result.stderr:
            typer.echo(result.stderr, nl=False, err=True)
        if result.returncode != 0:
            failed += 1

    if failed:
        typer.echo(f"{failed} of {len(items)} commands failed", err=True)
        raise typer.Exit(code=1)


@app.command()
def cpus():
    """Print the number of logical and physical processors."""
    typer.echo(f"processors: {processor_count()}")
    typer.echo(f"physical: {physical_processor_count()}")


@app.command()
def version():
    """Print the installed version."""
    typer.echo(parallel.__version__)


def main():
    app()

if __name__ == "__main__":
    main()
