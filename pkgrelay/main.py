"""Command-line entry point for building and publishing packages.

Entry point: ``pkgrelay`` (configured via pyproject.toml scripts).
"""

import logging
import tempfile
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pkgrelay.artifact_collector import ArtifactCollector
from pkgrelay.build_orchestrator import BuildOrchestrator
from pkgrelay.config import (
    ENV_ABUILD_PRIVKEY,
    ENV_COMMAND_TIMEOUT,
    ENV_CONFIG_DIR,
    ENV_EXIT_POLICY,
    ENV_GITHUB_TOKEN,
    OperationLogger,
    get_env_var,
    setup_logging,
)
from pkgrelay.config_manager import ConfigManager, DownstreamConfig
from pkgrelay.downstream_publisher import DownstreamPublisher
from pkgrelay.errors import (
    ChecksumError,
    ConfigError,
    DownloadError,
    InvalidVersionError,
    ReleaseCheckError,
    ReleaseNotFoundError,
)
from pkgrelay.manifest_renderer import ManifestRenderer
from pkgrelay.models import BuildReport, ExitPolicy, PublishReport, PublishStatus, Version
from pkgrelay.notification_service import NotificationService
from pkgrelay.package_downloader import PackageDownloader
from pkgrelay.package_handlers import create_handler
from pkgrelay.process import CommandRunner
from pkgrelay.release_host import ReleaseHost
from pkgrelay.release_publisher import ReleasePublisher

logger = logging.getLogger(__name__)
console = Console()

app = typer.Typer(
    name="pkgrelay",
    help="Build distribution packages and publish releases downstream.",
    no_args_is_help=True,
    add_completion=False,
)

_STATUS_STYLES = {
    PublishStatus.PUSHED: "green",
    PublishStatus.SKIPPED_NO_CHANGE: "dim",
    PublishStatus.SKIPPED_NO_CREDS: "yellow",
    PublishStatus.PUSH_FAILED: "red",
    PublishStatus.RENDER_FAILED: "red",
    PublishStatus.COMMIT_FAILED: "red",
}


@app.callback()
def main_callback(
    ctx: typer.Context,
    config_dir: Path = typer.Option(
        None, "--config-dir", "-c", help="Configuration directory (default: $PKGRELAY_CONFIG_DIR or ./config)."
    ),
    log_level: str = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON lines."),
) -> None:
    setup_logging(log_level, json_logs=json_logs)
    ctx.obj = ConfigManager(str(config_dir or get_env_var(ENV_CONFIG_DIR, "config")))


def resolve_version(explicit: str | None, source: Path) -> Version:
    """Use the explicit version, or read it from the source tree's Cargo.toml."""
    if explicit:
        return Version.parse(explicit)
    return Version.from_cargo_toml(source / "Cargo.toml")


def resolve_policy(strict: bool) -> ExitPolicy:
    if strict:
        return ExitPolicy.STRICT
    try:
        return ExitPolicy(get_env_var(ENV_EXIT_POLICY, ExitPolicy.DEGRADED.value).lower())
    except ValueError:
        raise ConfigError(f"{ENV_EXIT_POLICY} must be 'degraded' or 'strict'") from None


def _fail(message: str, hint: str | None = None) -> None:
    console.print(f"[bold red]ERROR:[/bold red] {message}")
    if hint:
        console.print(hint)
    raise typer.Exit(code=1)


def print_build_report(report: BuildReport) -> None:
    table = Table(title=f"Build results for {report.version}")
    table.add_column("Target", style="cyan")
    table.add_column("Status")
    table.add_column("Artifact / error")

    for result in report.results:
        if result.succeeded:
            table.add_row(result.target, "[green]ok[/green]", result.artifact_path.name)
        else:
            category = result.category.value if result.category else "unknown"
            table.add_row(result.target, f"[red]failed ({category})[/red]", escape(result.error or ""))

    console.print(table)
    console.print(
        f"{len(report.succeeded)}/{len(report.results)} target(s) succeeded; "
        f"packages in {report.collection.output_dir}"
    )
    for result in report.failed:
        for step in result.trace[-1:]:
            console.print(f"[dim]{result.target}: last step '{step.name}' "
                          f"exited {step.returncode}: {escape(' '.join(step.command))}[/dim]")
            if step.output_tail:
                console.print(step.output_tail, markup=False, highlight=False)


def print_publish_report(report: PublishReport) -> None:
    table = Table(title=f"Downstream results for {report.version}")
    table.add_column("Repository", style="cyan")
    table.add_column("Status")
    table.add_column("Commit")
    table.add_column("Detail")

    for result in report.results:
        style = _STATUS_STYLES[result.status]
        table.add_row(
            result.repo,
            f"[{style}]{result.status.value}[/{style}]",
            (result.commit or "")[:12],
            escape(result.detail) if result.status.is_failure else "",
        )

    console.print(table)
    pushed = len(report.by_status(PublishStatus.PUSHED))
    unchanged = len(report.by_status(PublishStatus.SKIPPED_NO_CHANGE))
    console.print(f"{pushed} pushed, {unchanged} unchanged; {report.commits} commit(s) created")


@app.command("build", help="Build deb, rpm, apk and Arch packages from a source tree.")
def build_cmd(
    ctx: typer.Context,
    source: Path = typer.Argument(Path("."), help="Application source tree."),
    version: str = typer.Option(None, "--version", "-v", help="Version to build (default: Cargo.toml)."),
    output: Path = typer.Option(Path("pkg/out"), "--output", "-o", help="Output directory."),
    targets: list[str] = typer.Option(None, "--target", "-t", help="Only build these formats."),
    parallel: bool = typer.Option(False, "--parallel", help="Build all targets concurrently."),
    strict: bool = typer.Option(False, "--strict", help="Fail if any target fails."),
    timeout: float = typer.Option(None, "--timeout", help="Timeout in seconds per command."),
    work_dir: Path = typer.Option(None, "--work-dir", help="Keep intermediate files here."),
) -> None:
    config: ConfigManager = ctx.obj
    operations = OperationLogger()

    try:
        build_version = resolve_version(version, source)
        policy = resolve_policy(strict)
        project = config.load_project()
        target_configs = config.load_targets()
    except (InvalidVersionError, ConfigError, FileNotFoundError, KeyError) as e:
        _fail(f"Invalid configuration: {e}")

    if targets:
        unknown = set(targets) - {t.format for t in target_configs}
        if unknown:
            _fail(f"Unknown target(s): {', '.join(sorted(unknown))}")
        target_configs = [t for t in target_configs if t.format in targets]

    runner = CommandRunner(timeout=timeout or float(get_env_var(ENV_COMMAND_TIMEOUT, "3600")))
    signing_key = get_env_var(ENV_ABUILD_PRIVKEY)
    if signing_key and not Path(signing_key).is_file():
        _fail(
            f"Signing key not found: {signing_key}",
            f"Point {ENV_ABUILD_PRIVKEY} at an abuild private key, or unset it to sign with a throwaway key",
        )
    try:
        handlers = [
            create_handler(t, project, runner, signing_key=Path(signing_key) if signing_key else None)
            for t in target_configs
        ]
    except ConfigError as e:
        _fail(str(e))

    console.print(f"==> Building {project.package_name} {build_version}")
    with tempfile.TemporaryDirectory(prefix="pkgrelay-build-") as scratch:
        orchestrator = BuildOrchestrator(
            handlers,
            ArtifactCollector(output),
            work_dir or Path(scratch),
            parallel=parallel,
        )
        operations.start_operation("package_build", version=str(build_version), targets=len(handlers))
        report = orchestrator.run(source.resolve(), build_version)
        operations.complete_operation(
            "package_build",
            success=not report.failed,
            succeeded=len(report.succeeded),
            failed=len(report.failed),
        )

    print_build_report(report)
    NotificationService().send_build_report(report)
    raise typer.Exit(code=report.exit_code(policy))


def _release_publisher(
    config: ConfigManager, work: Path, parallel: bool, token: str | None,
    author_name: str | None, author_email: str | None,
) -> ReleasePublisher:
    project = config.load_project()
    host = ReleaseHost(project.repository, token=token or get_env_var(ENV_GITHUB_TOKEN) or None)
    runner = CommandRunner(timeout=float(get_env_var(ENV_COMMAND_TIMEOUT, "120")))
    return ReleasePublisher(
        project=project,
        host=host,
        downloader=PackageDownloader(work / "downloads"),
        renderer=ManifestRenderer(project, host, config.config_dir, work / "rendered"),
        publisher=DownstreamPublisher(
            runner,
            work / "clones",
            parallel=parallel,
            author_name=author_name,
            author_email=author_email,
        ),
    )


def _select_repos(config: ConfigManager, only: list[str] | None) -> list[DownstreamConfig]:
    repos = config.load_downstream()
    if only:
        unknown = set(only) - {r.name for r in repos}
        if unknown:
            _fail(f"Unknown downstream repository: {', '.join(sorted(unknown))}")
        repos = [r for r in repos if r.name in only]
    return repos


@app.command("publish", help="Update the AUR packages and Homebrew tap for a release.")
def publish_cmd(
    ctx: typer.Context,
    version: str = typer.Argument(None, help="Version to publish (default: Cargo.toml)."),
    source: Path = typer.Option(Path("."), "--source", help="Source tree holding Cargo.toml."),
    only: list[str] = typer.Option(None, "--only", help="Only publish to these repositories."),
    parallel: bool = typer.Option(False, "--parallel", help="Publish to all repositories concurrently."),
    strict: bool = typer.Option(False, "--strict", help="Fail if any repository fails."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Render manifests without touching any repository."),
    token: str = typer.Option(None, "--token", help="GitHub token (default: $GITHUB_TOKEN)."),
    author_name: str = typer.Option(None, "--author-name", help="Commit author name."),
    author_email: str = typer.Option(None, "--author-email", help="Commit author email."),
) -> None:
    config: ConfigManager = ctx.obj

    try:
        publish_version = resolve_version(version, source)
        policy = resolve_policy(strict)
        repos = _select_repos(config, only)
    except (InvalidVersionError, ConfigError, FileNotFoundError, KeyError) as e:
        _fail(f"Invalid configuration: {e}")

    notifications = NotificationService()
    with tempfile.TemporaryDirectory(prefix="pkgrelay-publish-") as scratch:
        publisher = _release_publisher(config, Path(scratch), parallel, token, author_name, author_email)
        try:
            if dry_run:
                artifacts = publisher.fetch(publish_version)
                manifests, failures = publisher.render(artifacts, repos)
                for manifest in manifests.values():
                    for relative, path in sorted(manifest.files.items()):
                        console.rule(f"{manifest.repo}: {relative}")
                        console.print(path.read_text(), markup=False, highlight=False)
                for failure in failures:
                    console.print(f"[red]{failure.repo}: {escape(failure.detail)}[/red]")
                raise typer.Exit(code=1 if failures else 0)

            report = publisher.publish(publish_version, repos)
        except (ReleaseNotFoundError, ReleaseCheckError) as e:
            notifications.send_failure_notification(e, "release check")
            _fail(escape(str(e)), e.remediation)
        except (DownloadError, ChecksumError) as e:
            notifications.send_failure_notification(e, "asset download")
            _fail(escape(str(e)))

    print_publish_report(report)
    notifications.send_publish_report(report)
    raise typer.Exit(code=report.exit_code(policy))


@app.command("render", help="Fetch release assets and write rendered manifests to a directory.")
def render_cmd(
    ctx: typer.Context,
    version: str = typer.Argument(..., help="Version to render."),
    output: Path = typer.Option(Path("pkg/rendered"), "--output", "-o", help="Output directory."),
    token: str = typer.Option(None, "--token", help="GitHub token (default: $GITHUB_TOKEN)."),
) -> None:
    config: ConfigManager = ctx.obj

    try:
        render_version = Version.parse(version)
        repos = config.load_downstream()
    except (InvalidVersionError, ConfigError, FileNotFoundError, KeyError) as e:
        _fail(f"Invalid configuration: {e}")

    with tempfile.TemporaryDirectory(prefix="pkgrelay-render-") as scratch:
        publisher = _release_publisher(config, Path(scratch), False, token, None, None)
        publisher.renderer.staging_dir = output
        try:
            artifacts = publisher.fetch(render_version)
        except (ReleaseNotFoundError, ReleaseCheckError) as e:
            NotificationService().send_failure_notification(e, "release check")
            _fail(escape(str(e)), e.remediation)
        except (DownloadError, ChecksumError) as e:
            NotificationService().send_failure_notification(e, "asset download")
            _fail(escape(str(e)))
        manifests, failures = publisher.render(artifacts, repos)

    for manifest in manifests.values():
        for relative, path in sorted(manifest.files.items()):
            console.print(f"{manifest.repo}: {relative} -> {path}")
    for failure in failures:
        console.print(f"[red]{failure.repo}: {escape(failure.detail)}[/red]")
    raise typer.Exit(code=1 if failures else 0)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
