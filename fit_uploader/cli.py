"""Command line entry point for fit_uploader."""

import logging
from pathlib import Path

import click
from click.shell_completion import get_completion_class
from tqdm.contrib.logging import logging_redirect_tqdm

from fit_uploader.config import get_package_version, get_settings
from fit_uploader.services.progress import ProgressReporter
from fit_uploader.services.upload_manager import DirectoryEnumerationError, UploadManager

PROG_NAME = "fit-uploader"
COMPLETE_VAR = "_FIT_UPLOADER_COMPLETE"
SHELLS = ["bash", "zsh", "fish"]


def _print_completion(ctx: click.Context, param: click.Parameter, value: str | None) -> None:
    """Print the completion script for a shell and exit without doing any work."""
    if value is None or ctx.resilient_parsing:
        return
    click.echo(f"Generating completion file for {value}...", err=True)
    comp_cls = get_completion_class(value)
    if comp_cls is None:
        raise click.BadParameter(f"Unsupported shell: {value}", ctx=ctx, param=param)
    comp = comp_cls(ctx.command, {}, PROG_NAME, COMPLETE_VAR)
    click.echo(comp.source())
    ctx.exit(0)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    if not verbose:
        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--generate",
    type=click.Choice(SHELLS),
    callback=_print_completion,
    expose_value=False,
    is_eager=True,
    help="Print a shell completion script and exit.",
)
@click.option(
    "-f",
    "--fit-file-dir-path",
    type=click.Path(path_type=Path),
    help="Directory containing the FIT files to upload.",
)
@click.option("-a", "--auth-bearer-token", help="Bearer token for the upload API.")
@click.option("--athlete-id", type=int, help="Athlete the workouts are uploaded for.")
@click.option(
    "-p",
    "--parallelism",
    type=click.IntRange(min=1),
    help="Number of files processed at once (default: 8).",
)
@click.option(
    "--log-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Also write JSONL event logs under this directory.",
)
@click.option("--no-progress", is_flag=True, help="Do not render the progress bar.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.version_option(version=get_package_version(), prog_name=PROG_NAME)
def cli(
    fit_file_dir_path: Path | None,
    auth_bearer_token: str | None,
    athlete_id: int | None,
    parallelism: int | None,
    log_dir: Path | None,
    no_progress: bool,
    verbose: bool,
) -> None:
    """Upload every workout FIT file in a directory to TrainingPeaks.

    \b
    Examples:
      fit-uploader -f ~/garmin/activities -a $TOKEN --athlete-id 123456
      fit-uploader --generate zsh > ~/.zfunc/_fit-uploader
    """
    settings = get_settings()
    _configure_logging(verbose)

    directory = fit_file_dir_path or (
        Path(settings.default_upload_folder) if settings.default_upload_folder else None
    )
    token = auth_bearer_token or settings.auth_token
    athlete = athlete_id if athlete_id is not None else settings.athlete_id

    if directory is None:
        raise click.UsageError("Missing option '-f' / '--fit-file-dir-path'.")
    if not token:
        raise click.UsageError("Missing option '-a' / '--auth-bearer-token' (or TP_AUTH_TOKEN).")
    if athlete is None:
        raise click.UsageError("Missing option '--athlete-id' (or TP_ATHLETE_ID).")
    if log_dir is not None:
        settings.set("log_directory", str(log_dir))

    manager = UploadManager(
        max_workers=parallelism or settings.parallelism,
        progress_factory=lambda total: ProgressReporter(total, disable=no_progress),
    )

    try:
        with logging_redirect_tqdm():
            job = manager.run_sync(directory, token, athlete)
    except DirectoryEnumerationError as e:
        raise click.ClickException(str(e)) from e

    click.echo(
        f"Done: {job.files_uploaded} uploaded, {job.files_skipped} skipped, "
        f"{job.files_rejected} rejected, {job.files_failed} failed "
        f"({len(job.files)} FIT files)",
        err=True,
    )


def main() -> None:
    """Entry point for the CLI"""
    cli(prog_name=PROG_NAME)


if __name__ == "__main__":
    main()
