"""
rutbatch - bulk RUT status lookups against the DIAN portal
Entry point: wires configuration, browser engine, solver and scheduler.
"""
import argparse
import asyncio
import dataclasses
import signal
from pathlib import Path
from typing import List, Optional, Sequence

from .browser.engines.playwright_engine import PlaywrightEngine
from .browser.interfaces import BrowserType
from .captcha.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from .captcha.client import ChallengeSolverClient
from .captcha.twocaptcha import TwoCaptchaService
from .config.logger import configure_logging, logger
from .config.settings import PartitionStrategy, RunConfig, Settings, load_settings
from .connectors.dian.query import RutStatusQuery
from .errors import CaptchaTransportError, ConfigurationError, RunAbortedError
from .io.excel import read_identifiers, write_results
from .io.pdf import write_pdf
from .io.report import summarize, summary_lines, write_json
from .models import Result
from .orchestrator.retry import RetryController
from .orchestrator.scheduler import Scheduler
from .session.browser_session import BrowserSessionFactory

OUTPUT_NAME = "resultados_consulta"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rutbatch",
        description="Look up the RUT status of every identifier in a spreadsheet.",
    )
    parser.add_argument("input", type=Path, help="xlsx file; identifiers in the first column, header in row 1")
    parser.add_argument("-o", "--output-dir", type=Path, default=Path("."), help="directory for the result files")
    parser.add_argument("--env-file", default=None, help=".env file to load before reading the environment")
    parser.add_argument("-w", "--workers", type=int, default=None, help="number of browser sessions")
    parser.add_argument("--max-concurrent", type=int, default=None, help="lookups allowed to run at once")
    parser.add_argument("--tasks-per-worker", type=int, default=None, help="concurrent pages per session")
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in PartitionStrategy],
        default=None,
        help="static shards or a shared queue",
    )
    parser.add_argument("--deadline", type=float, default=None, help="seconds before the whole run is aborted")
    parser.add_argument(
        "--browser",
        choices=[b.value for b in BrowserType],
        default=None,
        help="browser Playwright launches",
    )
    parser.add_argument("--headful", action="store_true", help="show the browser windows")
    parser.add_argument(
        "--diagnostics-dir",
        type=Path,
        default=None,
        help="save a screenshot and the page HTML here when a lookup fails on the page",
    )
    parser.add_argument("--console-logs", action="store_true", help="human-readable logs instead of JSON")
    return parser


def apply_overrides(run: RunConfig, args: argparse.Namespace) -> RunConfig:
    """Command-line flags win over the environment."""
    changes = {}
    if args.workers is not None:
        changes["worker_count"] = args.workers
        if args.max_concurrent is None:
            changes["max_concurrent_tasks"] = max(run.max_concurrent_tasks, args.workers)
    if args.max_concurrent is not None:
        changes["max_concurrent_tasks"] = args.max_concurrent
    if args.tasks_per_worker is not None:
        changes["tasks_per_worker"] = args.tasks_per_worker
    if args.strategy is not None:
        changes["strategy"] = PartitionStrategy(args.strategy)
    if args.deadline is not None:
        changes["run_deadline"] = args.deadline
    if args.diagnostics_dir is not None:
        changes["diagnostics_dir"] = args.diagnostics_dir
    return dataclasses.replace(run, **changes) if changes else run


async def check_balance(service: TwoCaptchaService) -> float:
    """Refuse to start a run the solver account cannot pay for."""
    try:
        balance = await service.get_balance()
    except CaptchaTransportError as e:
        raise ConfigurationError(f"cannot check the 2Captcha balance: {e}") from e
    if balance <= 0:
        raise ConfigurationError("the 2Captcha balance is exhausted")
    return balance


async def execute(settings: Settings, identifiers: Sequence[str]) -> List[Result]:
    """Run one batch end to end and return the ordered results."""
    service = TwoCaptchaService(settings.solver)
    engine = None
    try:
        await check_balance(service)

        breaker = CircuitBreaker(
            "2captcha",
            CircuitBreakerConfig(failure_threshold=25, max_consecutive_failures=5, recovery_timeout=30.0),
        )
        solver = ChallengeSolverClient.from_config(service, settings.run, circuit_breaker=breaker)
        controller = RetryController(RutStatusQuery(settings.run), solver, settings.run)

        engine = PlaywrightEngine()
        await engine.initialize(settings.browser)
        scheduler = Scheduler(settings.run, BrowserSessionFactory(engine, settings.run), controller)

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, scheduler.cancel)
        except NotImplementedError:
            logger.debug("signal_handler_unavailable")

        try:
            return await scheduler.run(identifiers)
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except NotImplementedError:
                logger.debug("signal_handler_unavailable")
    finally:
        if engine is not None:
            await engine.cleanup()
        await service.close()


async def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main with dependency injection"""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.env_file)
        run_config = apply_overrides(settings.run, args)
        browser = settings.browser
        if args.headful:
            browser = dataclasses.replace(browser, headless=False)
        if args.browser is not None:
            browser = dataclasses.replace(browser, browser_type=BrowserType(args.browser))
        settings = dataclasses.replace(settings, run=run_config, browser=browser)
        configure_logging(settings.log_level, json_logs=settings.json_logs and not args.console_logs)

        identifiers = read_identifiers(args.input)
        if not identifiers:
            logger.warning("no_identifiers_found", path=str(args.input))
            return 0

        results = await execute(settings, identifiers)
    except RunAbortedError as e:
        logger.error("run_aborted", error=str(e), kind=type(e).__name__)
        return 2

    summary = summarize(results)
    write_results(args.output_dir / f"{OUTPUT_NAME}.xlsx", results)
    write_json(args.output_dir / f"{OUTPUT_NAME}.json", results, summary)
    write_pdf(args.output_dir / f"{OUTPUT_NAME}.pdf", results, summary)

    logger.info("run_summary", **summary.to_dict())
    for line in summary_lines(summary):
        print(line)
    return 0 if summary.errors == 0 else 1


def run():
    """Entry point for the rutbatch console script"""
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    run()
