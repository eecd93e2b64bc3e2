"""Timeout configuration shared by the test subscribers and the driver."""

import os
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TIMEOUT_ENV = "REACTIVE_TCK_DEFAULT_TIMEOUT_MILLIS"
DEFAULT_NO_SIGNALS_TIMEOUT_ENV = "REACTIVE_TCK_DEFAULT_NO_SIGNALS_TIMEOUT_MILLIS"
DEFAULT_POLL_TIMEOUT_ENV = "REACTIVE_TCK_DEFAULT_POLL_TIMEOUT_MILLIS"

_ENV_TO_FIELD: Dict[str, str] = {
    DEFAULT_TIMEOUT_ENV: "default_timeout_ms",
    DEFAULT_NO_SIGNALS_TIMEOUT_ENV: "default_no_signals_timeout_ms",
    DEFAULT_POLL_TIMEOUT_ENV: "default_poll_timeout_ms",
}


class TestEnvironment(BaseModel):
    """Timeouts, in milliseconds, used when an expectation is not given one."""

    __test__ = False  # not a pytest test class

    model_config = ConfigDict(frozen=True)

    default_timeout_ms: float = Field(
        default=1000.0,
        gt=0,
        description="How long to wait for an expected signal",
    )
    default_no_signals_timeout_ms: Optional[float] = Field(
        default=None,
        gt=0,
        description="How long to wait while asserting that no signal arrives "
        "(defaults to default_timeout_ms)",
    )
    default_poll_timeout_ms: float = Field(
        default=10.0,
        gt=0,
        description="Granularity for checks that poll for a condition",
    )

    @property
    def no_signals_timeout_ms(self) -> float:
        value = self.default_no_signals_timeout_ms
        return self.default_timeout_ms if value is None else value

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TestEnvironment":
        """Build an environment from ``REACTIVE_TCK_*`` variables.

        Unset variables fall back to the field defaults. Values that do not
        parse as positive numbers raise ``pydantic.ValidationError``.
        """
        source = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_TO_FIELD.items():
            raw = source.get(env_name)
            if raw is not None and raw.strip():
                overrides[field_name] = raw.strip()
        return cls(**overrides)
