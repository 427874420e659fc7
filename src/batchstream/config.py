"""
Constructor-time configuration of the batch pipeline.
"""

from __future__ import annotations

import os
import typing as t

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from batchstream.exceptions import ConfigurationError

log = structlog.get_logger(__name__)

BATCH_URL = "https://www.googleapis.com/batch"
ENV_PREFIX = "BATCHSTREAM_"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    user_quota: int = Field(default=25000, gt=0, description="quota units per window")
    user_quota_time_ms: int = Field(
        default=100000, gt=0, description="window after which spent quota units return"
    )
    parallel_requests: int = Field(default=10, gt=0, description="max in-flight batch calls")
    batch_size: int = Field(default=100, gt=0, description="max call descriptors per batch")
    quota_cost_per_item: int = Field(default=1, gt=0, description="quota units per call")
    filter_errors: bool = Field(
        default=False, description="suppress non-200 and undecodable sub-responses"
    )
    batch_url: str = Field(default=BATCH_URL, description="batch endpoint URL")
    request_timeout_seconds: float = Field(
        default=30.0, gt=0, description="transport timeout of one batch call"
    )
    access_token: str | None = Field(default=None, repr=False)

    @property
    def user_quota_time_seconds(self) -> float:
        return self.user_quota_time_ms / 1000

    @model_validator(mode="after")
    def check_batch_cost_fits_quota(self) -> "Settings":
        batch_cost = self.batch_size * self.quota_cost_per_item
        if batch_cost > self.user_quota:
            raise ValueError(
                f"a full batch costs {batch_cost} quota units but user_quota is {self.user_quota}"
            )
        return self

    @classmethod
    def build(cls, **values: t.Any) -> "Settings":
        """
        Validate settings, reporting failures as ``ConfigurationError``.

        Parameters
        ----------
        **values : typing.Any
            Field values; ``None`` values fall back to defaults.

        Returns
        -------
        Settings
            Validated settings.
        """
        try:
            return cls(**{key: value for key, value in values.items() if value is not None})
        except ValidationError as error:
            raise ConfigurationError(str(object=error)) from error

    @classmethod
    def from_env(cls, **overrides: t.Any) -> "Settings":
        """
        Load settings from ``BATCHSTREAM_*`` environment variables and a ``.env`` file.

        Parameters
        ----------
        **overrides : typing.Any
            Explicit values taking precedence over the environment.

        Returns
        -------
        Settings
            Validated settings.
        """
        load_dotenv()
        values: dict[str, t.Any] = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                values[name] = raw
        values.update({key: value for key, value in overrides.items() if value is not None})
        log.debug(
            event="Loaded settings from environment",
            env_fields=sorted(name for name in values if name != "access_token"),
        )
        return cls.build(**values)

    def with_overrides(self, **overrides: t.Any) -> "Settings":
        """
        Return a validated copy with the non-``None`` overrides applied.
        """
        values = self.model_dump()
        values.update({key: value for key, value in overrides.items() if value is not None})
        return self.build(**values)
