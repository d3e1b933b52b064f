"""Run configuration.

RunConfig is the only knob set the orchestration core reads. It is built once,
validated on construction and never mutated afterwards. Settings groups it with
the solver credentials and browser options; load_settings() builds everything
from environment variables (optionally loaded from a .env file).
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import FrozenSet, Mapping, Optional

from dotenv import load_dotenv

from ..browser.interfaces import BrowserConfig, BrowserType
from ..errors import ConfigurationError


class PartitionStrategy(Enum):
    """How identifiers are distributed across workers."""
    STATIC = "static"    # contiguous shard per worker
    DYNAMIC = "dynamic"  # all workers pull from one shared queue


DEFAULT_BLOCKED_RESOURCES = frozenset({"image", "stylesheet", "font"})


def _cpu_count() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True)
class RunConfig:
    """Process-wide, read-only parameters of a run.

    Durations are in seconds.

    Attributes:
        worker_count: Number of persistent sessions (one per worker).
        max_concurrent_tasks: Size of the global admission gate.
        tasks_per_worker: Concurrent lanes each session may host.
        strategy: Static sharding or dynamic pulling.
        max_retries: Upper bound on attempts per identifier.
        retry_delay: Pause before re-attempting after a captcha failure.
        poll_interval: Initial pause between solver polls.
        poll_backoff: Multiplier applied to the poll pause after each poll.
        max_poll_interval: Cap for the grown poll pause.
        max_poll_attempts: Polls before the solver gives up with a timeout.
        per_task_timeout: Bound on the whole processing of one identifier.
        run_deadline: Optional bound on the whole run.
        navigation_timeout: Bound on one page navigation.
        selector_timeout: Bound on waiting for one element.
        blocked_resource_kinds: Request kinds the browser should not load.
        diagnostics_dir: Where a screenshot and the page HTML are saved when
            a lookup fails on the page; None disables the dumps.
    """
    worker_count: int = field(default_factory=_cpu_count)
    max_concurrent_tasks: int = field(default_factory=lambda: _cpu_count() * 2)
    tasks_per_worker: int = 1
    strategy: PartitionStrategy = PartitionStrategy.STATIC
    max_retries: int = 3
    retry_delay: float = 5.0
    poll_interval: float = 5.0
    poll_backoff: float = 1.0
    max_poll_interval: float = 10.0
    max_poll_attempts: int = 30
    per_task_timeout: float = 300.0
    run_deadline: Optional[float] = None
    navigation_timeout: float = 30.0
    selector_timeout: float = 10.0
    blocked_resource_kinds: FrozenSet[str] = DEFAULT_BLOCKED_RESOURCES
    diagnostics_dir: Optional[Path] = None

    def __post_init__(self):
        if self.worker_count < 1:
            raise ConfigurationError("worker_count must be at least 1")
        if self.tasks_per_worker < 1:
            raise ConfigurationError("tasks_per_worker must be at least 1")
        if self.max_concurrent_tasks < self.worker_count:
            raise ConfigurationError(
                f"max_concurrent_tasks ({self.max_concurrent_tasks}) must be >= "
                f"worker_count ({self.worker_count})"
            )
        if self.max_retries < 1:
            raise ConfigurationError("max_retries must be at least 1")
        if self.max_poll_attempts < 1:
            raise ConfigurationError("max_poll_attempts must be at least 1")
        if self.poll_backoff < 1.0:
            raise ConfigurationError("poll_backoff must be >= 1.0")
        for name in ("retry_delay", "poll_interval", "max_poll_interval"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative")
        for name in ("per_task_timeout", "navigation_timeout", "selector_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.run_deadline is not None and self.run_deadline <= 0:
            raise ConfigurationError("run_deadline must be positive when set")

    def should_load(self, resource_kind: str) -> bool:
        """Resource policy handed to the browser layer."""
        return resource_kind not in self.blocked_resource_kinds


@dataclass(frozen=True)
class SolverSettings:
    """Credentials and endpoints of the external solving service."""
    api_key: str
    base_url: str = "https://2captcha.com"
    request_timeout: float = 30.0

    def __post_init__(self):
        if not self.api_key:
            raise ConfigurationError("A 2Captcha API key is required (TWOCAPTCHA_API_KEY)")


@dataclass(frozen=True)
class Settings:
    """Everything a run needs, loaded from the environment."""
    run: RunConfig
    solver: SolverSettings
    browser: BrowserConfig
    log_level: str = "INFO"
    json_logs: bool = True


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _get_float(env: Mapping[str, str], name: str, default: Optional[float]) -> Optional[float]:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def run_config_from_env(env: Mapping[str, str]) -> RunConfig:
    """Build a RunConfig from RUTBATCH_* variables, falling back to defaults."""
    defaults = RunConfig(worker_count=1, max_concurrent_tasks=1)
    cpus = _cpu_count()
    workers = _get_int(env, "RUTBATCH_WORKERS", cpus)

    strategy_raw = env.get("RUTBATCH_STRATEGY", PartitionStrategy.STATIC.value)
    try:
        strategy = PartitionStrategy(strategy_raw.strip().lower())
    except ValueError as e:
        raise ConfigurationError(f"Unknown RUTBATCH_STRATEGY: {strategy_raw!r}") from e

    blocked_raw = env.get("RUTBATCH_BLOCKED_RESOURCES")
    if blocked_raw is None:
        blocked = DEFAULT_BLOCKED_RESOURCES
    else:
        blocked = frozenset(k.strip() for k in blocked_raw.split(",") if k.strip())

    diagnostics = (env.get("RUTBATCH_DIAGNOSTICS_DIR") or "").strip()

    return RunConfig(
        worker_count=workers,
        max_concurrent_tasks=_get_int(env, "RUTBATCH_MAX_CONCURRENT", max(workers, cpus * 2)),
        tasks_per_worker=_get_int(env, "RUTBATCH_TASKS_PER_WORKER", defaults.tasks_per_worker),
        strategy=strategy,
        max_retries=_get_int(env, "RUTBATCH_MAX_RETRIES", defaults.max_retries),
        retry_delay=_get_float(env, "RUTBATCH_RETRY_DELAY", defaults.retry_delay),
        poll_interval=_get_float(env, "RUTBATCH_POLL_INTERVAL", defaults.poll_interval),
        poll_backoff=_get_float(env, "RUTBATCH_POLL_BACKOFF", defaults.poll_backoff),
        max_poll_interval=_get_float(env, "RUTBATCH_MAX_POLL_INTERVAL", defaults.max_poll_interval),
        max_poll_attempts=_get_int(env, "RUTBATCH_MAX_POLL_ATTEMPTS", defaults.max_poll_attempts),
        per_task_timeout=_get_float(env, "RUTBATCH_TASK_TIMEOUT", defaults.per_task_timeout),
        run_deadline=_get_float(env, "RUTBATCH_RUN_DEADLINE", None),
        navigation_timeout=_get_float(env, "RUTBATCH_NAVIGATION_TIMEOUT", defaults.navigation_timeout),
        selector_timeout=_get_float(env, "RUTBATCH_SELECTOR_TIMEOUT", defaults.selector_timeout),
        blocked_resource_kinds=blocked,
        diagnostics_dir=Path(diagnostics) if diagnostics else None,
    )


def load_settings(
    env_file: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from the environment.

    Args:
        env_file: Optional path to a .env file. When omitted, python-dotenv
            searches for one starting from the working directory.
        environ: Mapping to read instead of os.environ (mainly for tests).
            When given, no .env file is loaded.

    Raises:
        ConfigurationError: If a value is malformed or inconsistent.
    """
    if environ is None:
        load_dotenv(env_file)
        environ = os.environ

    browser_raw = environ.get("RUTBATCH_BROWSER", BrowserType.CHROMIUM.value)
    try:
        browser_type = BrowserType(browser_raw.strip().lower())
    except ValueError as e:
        raise ConfigurationError(f"Unknown RUTBATCH_BROWSER: {browser_raw!r}") from e

    browser = BrowserConfig(
        browser_type=browser_type,
        headless=_get_bool(environ, "RUTBATCH_HEADLESS", True),
        proxy=environ.get("RUTBATCH_PROXY") or None,
        user_agent=environ.get("RUTBATCH_USER_AGENT") or BrowserConfig.DEFAULT_USER_AGENT,
    )

    return Settings(
        run=run_config_from_env(environ),
        solver=SolverSettings(
            api_key=environ.get("TWOCAPTCHA_API_KEY", ""),
            base_url=environ.get("TWOCAPTCHA_BASE_URL", "https://2captcha.com"),
            request_timeout=_get_float(environ, "TWOCAPTCHA_REQUEST_TIMEOUT", 30.0),
        ),
        browser=browser,
        log_level=environ.get("LOG_LEVEL", "INFO"),
        json_logs=_get_bool(environ, "RUTBATCH_JSON_LOGS", True),
    )
