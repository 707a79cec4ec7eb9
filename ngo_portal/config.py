"""
ngo_portal/config.py

Environment-driven settings for the portal client.

Values come from the process environment first, then `.env.local`, then
`.env` in the project root. Malformed numbers fall back to the default and
are logged once per lookup.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import TypeVar

logger = logging.getLogger(__name__)

ENV_FILES: tuple[str, ...] = (".env.local", ".env")

_T = TypeVar("_T", int, float)


def _parse_env_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if not line or line.startswith("#") or "=" not in line:
        return None
    if line.startswith("export "):
        line = line[len("export "):]
    key, value = line.split("=", 1)
    key = key.strip()
    if not key:
        return None
    return key, value.strip().strip('"').strip("'")


def load_env_files(
    search_dir: Path | None = None,
    environ: MutableMapping[str, str] | None = None,
) -> list[str]:
    """
    Copy KEY=VALUE pairs from `.env.local` and `.env` into `environ`.

    Keys already present are left alone, so the process environment wins
    over `.env.local`, which wins over `.env`. Returns the keys that were set.
    """

    base_dir = search_dir or Path(__file__).resolve().parents[1]
    target = os.environ if environ is None else environ
    loaded: list[str] = []
    for filename in ENV_FILES:
        env_path = base_dir / filename
        if not env_path.is_file():
            continue
        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            parsed = _parse_env_line(raw_line)
            if parsed is None or parsed[0] in target:
                continue
            target[parsed[0]] = parsed[1]
            loaded.append(parsed[0])
    return loaded


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    loaded = load_env_files()
    if loaded:
        logger.debug("Loaded settings from env files keys=%s", sorted(loaded))


def _read_env(name: str) -> str | None:
    """
    Return the stripped value of `name`, or None when unset or blank.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _get_number_env(name: str, default: _T, parse: Callable[[str], _T]) -> _T:
    raw_value = _read_env(name)
    if raw_value is None:
        return default
    try:
        return parse(raw_value)
    except ValueError:
        logger.warning("Ignoring invalid setting %s=%r; using %s", name, raw_value, default)
        return default


def _get_int_env(name: str, default: int) -> int:
    return _get_number_env(name, default, int)


def _get_float_env(name: str, default: float) -> float:
    return _get_number_env(name, default, float)


def _get_str_env(name: str, default: str) -> str:
    return _read_env(name) or default


@dataclass(frozen=True)
class APIClientSettings:
    """
    Transport settings for the backend API.
    """

    base_url: str = "http://localhost:8000"
    timeout_seconds: float = 15.0


@dataclass(frozen=True)
class QuerySettings:
    """
    Retry policy shared by cached reads.
    """

    max_retries: int = 3
    backoff_initial_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    backoff_max_seconds: float = 30.0


@dataclass(frozen=True)
class JobPollSettings:
    """
    Cadence and retry budget for ingestion job polling.
    """

    interval_seconds: float = 2.0
    max_retries: int = 3


@lru_cache(maxsize=1)
def get_api_client_settings() -> APIClientSettings:
    """
    Return cached API client settings from environment variables.
    """

    return APIClientSettings(
        base_url=_get_str_env("NGO_PORTAL_API_BASE_URL", "http://localhost:8000").rstrip("/"),
        timeout_seconds=max(1.0, _get_float_env("NGO_PORTAL_HTTP_TIMEOUT_SECONDS", 15.0)),
    )


@lru_cache(maxsize=1)
def get_query_settings() -> QuerySettings:
    """
    Return cached read retry settings from environment variables.
    """

    return QuerySettings(
        max_retries=max(0, _get_int_env("NGO_PORTAL_QUERY_MAX_RETRIES", 3)),
        backoff_initial_seconds=max(0.0, _get_float_env("NGO_PORTAL_RETRY_BACKOFF_INITIAL_SECONDS", 1.0)),
        backoff_multiplier=max(1.0, _get_float_env("NGO_PORTAL_RETRY_BACKOFF_MULTIPLIER", 2.0)),
        backoff_max_seconds=max(0.0, _get_float_env("NGO_PORTAL_RETRY_BACKOFF_MAX_SECONDS", 30.0)),
    )


@lru_cache(maxsize=1)
def get_job_poll_settings() -> JobPollSettings:
    """
    Return cached job polling settings from environment variables.
    """

    return JobPollSettings(
        interval_seconds=max(0.1, _get_float_env("NGO_PORTAL_JOB_POLL_INTERVAL_SECONDS", 2.0)),
        max_retries=max(0, _get_int_env("NGO_PORTAL_JOB_POLL_MAX_RETRIES", 3)),
    )
