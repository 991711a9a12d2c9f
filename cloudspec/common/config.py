"""
Environment-driven settings

All knobs are read from environment variables so that CI can flip them
without touching test code.

Usage:
    from cloudspec.common.config import get_settings

    settings = get_settings()
    if settings.destroy_after_test:
        ...
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from cloudspec.common.constants import DEFAULT_REGION, PollingConfig, TimeoutConfig
from cloudspec.common.exceptions import ConfigurationError

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


class CloudSpecSettings(BaseModel):
    """Resolved configuration for one test session"""
    region: str = DEFAULT_REGION
    destroy_after_test: bool = False
    workflow_timeout_ms: int = Field(default=TimeoutConfig.WORKFLOW_MS, gt=0)
    setup_timeout_ms: int = Field(default=TimeoutConfig.SETUP_MS, gt=0)
    teardown_timeout_ms: int = Field(default=TimeoutConfig.TEARDOWN_MS, gt=0)
    test_timeout_ms: int = Field(default=TimeoutConfig.TEST_MS, gt=0)
    poll_interval_seconds: float = Field(default=PollingConfig.INTERVAL_SECONDS, gt=0)
    update_snapshots: bool = False
    outdir: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> "CloudSpecSettings":
        env = os.environ if environ is None else environ
        return cls(
            region=env.get("AWS_REGION") or env.get("AWS_DEFAULT_REGION") or DEFAULT_REGION,
            destroy_after_test=_parse_bool(env, "CLOUDSPEC_DESTROY_AFTER_TEST", False),
            workflow_timeout_ms=_parse_int(env, "CLOUDSPEC_WORKFLOW_TIMEOUT_MS", TimeoutConfig.WORKFLOW_MS),
            setup_timeout_ms=_parse_int(env, "CLOUDSPEC_SETUP_TIMEOUT_MS", TimeoutConfig.SETUP_MS),
            teardown_timeout_ms=_parse_int(env, "CLOUDSPEC_TEARDOWN_TIMEOUT_MS", TimeoutConfig.TEARDOWN_MS),
            test_timeout_ms=_parse_int(env, "CLOUDSPEC_TEST_TIMEOUT_MS", TimeoutConfig.TEST_MS),
            poll_interval_seconds=_parse_float(
                env, "CLOUDSPEC_POLL_INTERVAL_SECONDS", PollingConfig.INTERVAL_SECONDS
            ),
            update_snapshots=_parse_bool(env, "CLOUDSPEC_UPDATE_SNAPSHOTS", False),
            outdir=env.get("CLOUDSPEC_OUTDIR") or None,
        )


def _parse_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"expected a boolean, got {raw!r}", field=name)


def _parse_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"expected milliseconds as an integer, got {raw!r}", field=name) from None
    if value <= 0:
        raise ConfigurationError(f"must be positive, got {value}", field=name)
    return value


def _parse_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"expected seconds, got {raw!r}", field=name) from None
    if value <= 0:
        raise ConfigurationError(f"must be positive, got {value}", field=name)
    return value


_settings: Optional[CloudSpecSettings] = None


def get_settings() -> CloudSpecSettings:
    """Settings singleton, read once per process"""
    global _settings
    if _settings is None:
        _settings = CloudSpecSettings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (tests change the environment between cases)"""
    global _settings
    _settings = None
