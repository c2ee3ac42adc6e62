"""
Configuration for pool invocations.

Options enumerates every recognized option and is validated once when a
call enters the dispatcher. File-based defaults for the command line are
read from YAML and converted into Options.
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)

# Default configuration values
DEFAULT_SETTINGS: Dict[str, Any] = {
    "count": None,
    "in_threads": None,
    "progress": None,
    "log_level": "INFO",
}

LOG_LEVELS: List[str] = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ConfigurationError(Exception):
    """Custom exception for configuration errors."""
    pass


def check_count(name: str, value: Any) -> None:
    if value is None:
        return
    # bool is an int subclass but never a meaningful pool size
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")


@dataclass
class Options:
    """
    Recognized options of map/each and friends.

    Attributes:
        count: Pool size for process execution. Defaults to the CPU count.
        in_threads: Run in this many threads instead of processes.
        in_processes: Run in this many forked processes.
        with_index: Pass the item index as second argument to the work function.
        preserve_results: Keep result values. each() turns this off.
        start: Called as start(item, index) before an item is computed.
        finish: Called as finish(item, index, result) after an item is computed.
        progress: Title of a progress bar, or a callable invoked once per finished item.
        mutex: Lock serializing start/finish calls. A new one is made per call if absent.
        scope: CancellationScope to register workers with. Defaults to the scope of the enclosing invocation, or a new one.
    """

    count: Optional[int] = None
    in_threads: Optional[int] = None
    in_processes: Optional[int] = None
    with_index: bool = False
    preserve_results: bool = True
    start: Optional[Callable] = None
    finish: Optional[Callable] = None
    progress: Union[str, Callable, None] = None
    mutex: Any = None
    scope: Any = field(default=None, repr=False)

    @classmethod
    def build(cls, options: Optional['Options'] = None, **overrides) -> 'Options':
        """
        Combine an optional base Options with keyword overrides and validate the result.

        Raises:
            ConfigurationError: On unknown keys or invalid values.
        """
        if options is None:
            options = cls()
        elif not isinstance(options, cls):
            raise ConfigurationError(f"options must be an {cls.__name__} instance, got {type(options).__name__}")

        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigurationError(f"Unknown options: {', '.join(unknown)}")

        built = dataclasses.replace(options, **overrides)
        built.validate()
        return built

    def validate(self) -> None:
        check_count("count", self.count)
        check_count("in_threads", self.in_threads)
        check_count("in_processes", self.in_processes)

        if self.in_threads is not None and self.in_processes is not None:
            raise ConfigurationError("in_threads and in_processes are mutually exclusive")

        for name in ("start", "finish"):
            hook = getattr(self, name)
            if hook is not None and not callable(hook):
                raise ConfigurationError(f"{name} must be callable, got {hook!r}")

        if self.progress is not None and not (isinstance(self.progress, str) or callable(self.progress)):
            raise ConfigurationError(f"progress must be a title or a callable, got {self.progress!r}")

        if self.mutex is not None and not (hasattr(self.mutex, "__enter__") and hasattr(self.mutex, "__exit__")):
            raise ConfigurationError(f"mutex must be usable as a context manager, got {self.mutex!r}")

    @property
    def return_results(self) -> bool:
        """Results travel back from workers when kept or when a finish hook wants them."""
        return self.preserve_results or self.finish is not None


def load_settings(config_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Load settings from a YAML file on top of DEFAULT_SETTINGS.

    Args:
        config_file: Path to the YAML configuration file, or None for defaults only.

    Returns:
        The merged settings dictionary.

    Raises:
        ConfigurationError: If the file is missing, malformed or has unknown keys.
    """
    settings = DEFAULT_SETTINGS.copy()
    if not config_file:
        return settings

    if not os.path.exists(config_file):
        raise ConfigurationError(f"Config file not found: {config_file}")
    try:
        with open(config_file, 'r') as f:
            file_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Error parsing config file {config_file}: {e}")

    if file_config is None:
        return settings
    if not isinstance(file_config, dict):
        raise ConfigurationError(f"Config file {config_file} must contain a mapping")

    unknown = sorted(set(file_config) - set(DEFAULT_SETTINGS))
    if unknown:
        raise ConfigurationError(f"Unknown settings in {config_file}: {', '.join(unknown)}")

    settings.update(file_config)
    _validate_settings(settings)
    logger.debug(f"Loaded settings from {config_file}: {settings}")
    return settings


def _validate_settings(settings: Dict[str, Any]) -> None:
    level = settings.get("log_level")
    if not isinstance(level, str) or level.upper() not in LOG_LEVELS:
        raise ConfigurationError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {level!r}")
    progress = settings.get("progress")
    if progress is not None and not isinstance(progress, str):
        raise ConfigurationError(f"progress must be a string, got {progress!r}")
    try:
        settings_to_options(settings)
    except ConfigurationError as e:
        raise ConfigurationError(f"Invalid settings: {e}")


def settings_to_options(settings: Dict[str, Any], **overrides) -> Options:
    """Turn loaded settings (plus explicit overrides that are not None) into Options."""
    values = {
        "count": settings.get("count"),
        "in_threads": settings.get("in_threads"),
        "progress": settings.get("progress"),
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    return Options.build(**values)
