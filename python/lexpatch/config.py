"""Configuration for upstream streaming endpoints."""

import os
from typing import Optional

from pydantic import BaseModel, Field

DEFAULT_BASE_URL = "https://api.getmediarank.com/api/v1"
DEFAULT_FRAME_PREFIX = "data: "


class StreamSettings(BaseModel):
    """Connection settings shared by every streaming session."""

    base_url: str = Field(default=DEFAULT_BASE_URL, min_length=1)
    api_token: Optional[str] = Field(default=None, description="Bearer token sent with every request.")
    frame_prefix: str = Field(default=DEFAULT_FRAME_PREFIX, min_length=1)
    connect_timeout: float = Field(default=10.0, gt=0.0)
    # None disables the read timeout; long analyses may idle between frames.
    read_timeout: Optional[float] = Field(default=None, gt=0.0)

    @classmethod
    def from_env(cls, **overrides) -> "StreamSettings":
        """Builds settings from LEXPATCH_* environment variables, then applies overrides."""
        values = {}
        env_map = {
            "LEXPATCH_API_BASE_URL": "base_url",
            "LEXPATCH_API_TOKEN": "api_token",
            "LEXPATCH_FRAME_PREFIX": "frame_prefix",
            "LEXPATCH_CONNECT_TIMEOUT": "connect_timeout",
            "LEXPATCH_READ_TIMEOUT": "read_timeout",
        }
        for env_name, field_name in env_map.items():
            raw = os.environ.get(env_name)
            if raw:
                values[field_name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def auth_headers(self) -> dict:
        if not self.api_token:
            return {}
        return {"Authorization": f"Bearer {self.api_token}"}
