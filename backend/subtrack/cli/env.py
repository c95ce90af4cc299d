"""Environment file validation commands.

``flask env check`` and the standalone ``subtrack-env`` script read a ``.env``
file, check its structure, required keys, formatting and consistency with
``.env.example``, print a report and exit non-zero on failure.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import click
import requests
from dotenv import dotenv_values
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from subtrack.core.config import (
    ANON_KEY_MIN_LENGTH,
    GOOGLE_CLIENT_SUFFIX,
    PLACEHOLDER_MARKERS,
    REQUIRED_KEYS,
)

LOGGER = logging.getLogger(__name__)

OK, WARN, FAIL, INFO = "ok", "warn", "fail", "info"
_COLORS = {OK: "green", WARN: "yellow", FAIL: "red", INFO: "blue"}
_MARKS = {OK: "✅", WARN: "⚠️ ", FAIL: "❌", INFO: "ℹ️ "}


@dataclass(slots=True)
class CheckResult:
    """Outcome of one check group with its report lines."""

    name: str
    passed: bool = True
    lines: list[tuple[str, str]] = field(default_factory=list)

    def add(self, level: str, message: str) -> None:
        self.lines.append((level, message))
        if level == FAIL:
            self.passed = False


def _load(path: Path) -> dict[str, str] | None:
    if not path.is_file():
        return None
    return {key: (value or "").strip() for key, value in dotenv_values(path).items()}


# --------------------------------------------------------------------------- #
# Checks
# --------------------------------------------------------------------------- #


def check_structure(env_path: Path, example_path: Path) -> CheckResult:
    result = CheckResult("File structure")
    if not env_path.is_file():
        result.add(FAIL, f"{env_path.name} does not exist")
        result.add(WARN, f"Create it from the example: cp {example_path.name} {env_path.name}")
    else:
        result.add(OK, f"{env_path.name} exists")
    if not example_path.is_file():
        result.add(WARN, f"{example_path.name} does not exist")
    else:
        result.add(OK, f"{example_path.name} exists")
    return result


def check_required(env: Mapping[str, str] | None) -> CheckResult:
    result = CheckResult("Required variables")
    if env is None:
        result.add(FAIL, "The .env file cannot be read")
        return result
    for key in REQUIRED_KEYS:
        value = env.get(key, "")
        if not value:
            result.add(FAIL, f"Missing required variable: {key}")
        elif any(marker in value.lower() for marker in PLACEHOLDER_MARKERS):
            result.add(FAIL, f"{key} still holds a placeholder value")
        else:
            result.add(OK, f"{key}: set")
    return result


def check_formatting(env: Mapping[str, str] | None) -> CheckResult:
    result = CheckResult("Formatting")
    if env is None:
        result.add(FAIL, "The .env file cannot be read")
        return result

    url = env.get("SUBTRACK_SUPABASE_URL")
    if url:
        if not url.startswith("https://"):
            result.add(FAIL, "SUBTRACK_SUPABASE_URL must start with https://")
        elif ".supabase.co" not in url:
            result.add(WARN, "SUBTRACK_SUPABASE_URL is not a standard Supabase project URL")
        else:
            result.add(OK, "SUBTRACK_SUPABASE_URL: format looks right")

    anon_key = env.get("SUBTRACK_SUPABASE_ANON_KEY")
    if anon_key:
        if len(anon_key) < ANON_KEY_MIN_LENGTH:
            result.add(FAIL, "SUBTRACK_SUPABASE_ANON_KEY is too short")
        else:
            result.add(OK, "SUBTRACK_SUPABASE_ANON_KEY: length looks right")

    client_id = env.get("SUBTRACK_GOOGLE_CLIENT_ID")
    if client_id:
        if GOOGLE_CLIENT_SUFFIX not in client_id:
            result.add(FAIL, "SUBTRACK_GOOGLE_CLIENT_ID has an unexpected format")
        else:
            result.add(OK, "SUBTRACK_GOOGLE_CLIENT_ID: format looks right")

    for key in ("SUBTRACK_SITE_URL", "SUBTRACK_AUTH_REDIRECT_URL"):
        value = env.get(key)
        if not value:
            continue
        if not value.startswith("http"):
            result.add(FAIL, f"{key} must start with http:// or https://")
        else:
            result.add(OK, f"{key}: format looks right")
    return result


def check_consistency(env: Mapping[str, str] | None, example: Mapping[str, str] | None) -> CheckResult:
    """Every key of the example file must exist in the env file; extras are informational."""
    result = CheckResult("Consistency")
    if env is None or example is None:
        result.add(WARN, "Cannot read both files for the consistency check")
        return result
    for key in example:
        if key not in env:
            result.add(WARN, f"{key} from the example file is missing in .env")
            result.passed = False
    for key in env:
        if key not in example:
            result.add(INFO, f"Extra variable in .env: {key}")
    if result.passed:
        result.add(OK, "The env files are consistent")
    return result


class PingError(Exception):
    """Raised for retryable health-check responses (5xx)."""


def ping_identity(
    url: str,
    anon_key: str,
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    timeout: float = 5.0,
    sleep: Callable[[float], None] | None = None,
) -> CheckResult:
    """Call the identity health endpoint, retrying connection errors and 5xx."""
    result = CheckResult("Identity endpoint")
    health_url = f"{url.rstrip('/')}/auth/v1/health"

    def _call() -> requests.Response:
        response = requests.get(health_url, headers={"apikey": anon_key}, timeout=timeout)
        if response.status_code >= 500:
            raise PingError(f"HTTP {response.status_code}")
        return response

    retry_kwargs = {"sleep": sleep} if sleep is not None else {}
    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base_delay, min=0),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout, PingError)),
        before_sleep=before_sleep_log(LOGGER, logging.WARNING),
        reraise=True,
        **retry_kwargs,
    )
    try:
        response = retrying(_call)
    except (requests.RequestException, PingError) as exc:
        result.add(FAIL, f"{health_url} is unreachable: {exc}")
        return result
    if response.ok:
        result.add(OK, f"{health_url} answered {response.status_code}")
    else:
        result.add(FAIL, f"{health_url} answered {response.status_code}")
    return result


def run_checks(directory: Path, *, ping: bool = False, base_delay: float = 1.0) -> list[CheckResult]:
    """Run every check against ``directory/.env`` and ``directory/.env.example``."""
    env_path = directory / ".env"
    example_path = directory / ".env.example"
    env = _load(env_path)
    example = _load(example_path)
    results = [
        check_structure(env_path, example_path),
        check_required(env),
        check_formatting(env),
        check_consistency(env, example),
    ]
    if ping:
        if env and env.get("SUBTRACK_SUPABASE_URL") and results[1].passed:
            results.append(
                ping_identity(
                    env["SUBTRACK_SUPABASE_URL"],
                    env.get("SUBTRACK_SUPABASE_ANON_KEY", ""),
                    base_delay=base_delay,
                )
            )
        else:
            skipped = CheckResult("Identity endpoint")
            skipped.add(FAIL, "Skipped: required variables are not valid")
            results.append(skipped)
    return results


# --------------------------------------------------------------------------- #
# Output
# --------------------------------------------------------------------------- #


def _echo_report(results: list[CheckResult]) -> bool:
    for result in results:
        click.secho(f"\n🔍 {result.name}", fg="cyan")
        for level, message in result.lines:
            click.secho(f"  {_MARKS[level]} {message}", fg=_COLORS[level])

    click.secho("\n📊 Summary", fg="magenta")
    click.secho("=" * 50, fg="magenta")
    width = max(len(r.name) for r in results)
    for result in results:
        status = "passed" if result.passed else "FAILED"
        click.secho(f"  {result.name.ljust(width)}  {status}", fg="green" if result.passed else "red")
    click.secho("=" * 50, fg="magenta")

    overall = all(r.passed for r in results)
    if overall:
        click.secho("All environment checks passed.", fg="green")
    else:
        click.secho("Some checks failed. Fix the errors above and run again.", fg="yellow")
    return overall


def _run(directory: str, ping: bool) -> None:
    results = run_checks(Path(directory), ping=ping)
    if not _echo_report(results):
        raise SystemExit(1)


_path_option = click.option(
    "--path",
    "directory",
    default=".",
    show_default=True,
    type=click.Path(file_okay=False),
    help="Directory holding .env and .env.example.",
)
_ping_option = click.option(
    "--ping", is_flag=True, help="Also call the identity health endpoint."
)


@click.group("env")
def env_cli() -> None:
    """Environment file checks."""


@env_cli.command("check")
@_path_option
@_ping_option
def check_command(directory: str, ping: bool) -> None:
    """Validate the .env file and exit non-zero on failure."""
    _run(directory, ping)


@click.command("subtrack-env")
@_path_option
@_ping_option
def main(directory: str, ping: bool) -> None:
    """Validate the .env file without loading the application."""
    _run(directory, ping)


if __name__ == "__main__":  # pragma: no cover
    main()
