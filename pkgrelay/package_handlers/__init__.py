"""Packaging format handlers, keyed by target format."""

from pathlib import Path

from pkgrelay.config_manager import ProjectConfig, TargetConfig
from pkgrelay.errors import ConfigError
from pkgrelay.package_handlers.alpine import AlpineHandler
from pkgrelay.package_handlers.arch import ArchHandler
from pkgrelay.package_handlers.base import PackageHandler
from pkgrelay.package_handlers.debian import DebianHandler
from pkgrelay.package_handlers.rpm import RpmHandler
from pkgrelay.process import CommandRunner

HANDLERS: dict[str, type[PackageHandler]] = {
    DebianHandler.format: DebianHandler,
    RpmHandler.format: RpmHandler,
    AlpineHandler.format: AlpineHandler,
    ArchHandler.format: ArchHandler,
}


def create_handler(
    config: TargetConfig,
    project: ProjectConfig,
    runner: CommandRunner,
    signing_key: Path | None = None,
    **kwargs,
) -> PackageHandler:
    """Instantiate the handler for a target configuration.

    Raises:
        ConfigError: If no handler exists for the configured format
    """
    try:
        handler_cls = HANDLERS[config.format]
    except KeyError:
        raise ConfigError(f"Unknown package format: {config.format!r}") from None
    if handler_cls is AlpineHandler:
        kwargs["signing_key"] = signing_key
    return handler_cls(config, project, runner, **kwargs)


__all__ = [
    "HANDLERS",
    "AlpineHandler",
    "ArchHandler",
    "DebianHandler",
    "PackageHandler",
    "RpmHandler",
    "create_handler",
]
