"""Configuration models for the shortest driver."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import Platform


class WebConfig(BaseModel):
    """Settings for the Playwright backend."""

    headless: bool = False
    viewport_width: int = 1920
    viewport_height: int = 1080
    launch_args: list[str] = Field(
        default_factory=lambda: [
            "--no-sandbox",
            "--disable-dev-shm-usage",
            "--disable-gpu",
        ]
    )


class MobileConfig(BaseModel):
    """Settings for the Appium backend."""

    server_url: str = Field(default="http://127.0.0.1:4723")
    capabilities: dict[str, Any] = Field(default_factory=dict)
    app_id: Optional[str] = Field(
        default=None,
        description="Package (Android) or bundle id (iOS) activated after connecting.",
    )
    connect_attempts: int = Field(default=2, ge=1)
    connect_delay: float = Field(default=1.0, description="Seconds between connect attempts.")
    status_timeout: float = Field(default=5.0, description="Timeout of the server status check.")
    tap_settle_ms: int = Field(default=5000, description="Pause after a tap before reading state.")


class ScreenshotConfig(BaseModel):
    """Where screenshots go and whether they are normalised for vision models."""

    directory: Optional[Path] = Field(
        default=None,
        description="Defaults to .shortest/screenshots under the working directory.",
    )
    vision_resize: Optional[bool] = Field(
        default=None,
        description="Pad screenshots to a vision bucket; defaults to on for mobile only.",
    )


class StabilityConfig(BaseModel):
    """Timings of the UI stability wait."""

    load_timeout_ms: int = 1000
    quiet_period_ms: int = 1000
    max_quiet_wait_ms: Optional[int] = Field(
        default=30000,
        description="Upper bound of the quiescence phase; None waits indefinitely.",
    )
    poll_interval_ms: int = Field(default=250, description="Page source polling on mobile.")


class DriverSettings(BaseSettings):
    """Top-level configuration for building a driver."""

    model_config = SettingsConfigDict(
        env_prefix="SHORTEST_DRIVER_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    platform: Platform = Platform.WEB
    navigation_timeout_ms: int = 30000
    web: WebConfig = Field(default_factory=WebConfig)
    mobile: MobileConfig = Field(default_factory=MobileConfig)
    screenshots: ScreenshotConfig = Field(default_factory=ScreenshotConfig)
    stability: StabilityConfig = Field(default_factory=StabilityConfig)

    def vision_resize_enabled(self, platform: Optional[Platform] = None) -> bool:
        if self.screenshots.vision_resize is not None:
            return self.screenshots.vision_resize
        return (platform or self.platform) is not Platform.WEB


def load_config(
    path: Path | None = None,
    *,
    env_file: Path | None = None,
    **overrides: object,
) -> DriverSettings:
    """Load configuration from an optional YAML file, env vars and overrides."""

    data: dict[str, Any] = {}
    if path:
        import yaml

        data = yaml.safe_load(path.read_text()) or {}
    if overrides:
        _deep_update(data, overrides)
    settings_kwargs: dict[str, object] = {}
    if env_file is not None:
        settings_kwargs["_env_file"] = env_file
    config = DriverSettings(**data, **settings_kwargs)
    if not data:
        return config

    merged = config.model_dump(mode="python")
    _deep_update(merged, data)
    return DriverSettings.model_validate(merged)


def _deep_update(target: dict[str, Any], updates: Mapping[str, Any]) -> None:
    """Recursively merge ``updates`` into ``target`` in-place."""

    for key, value in updates.items():
        if (
            isinstance(value, Mapping)
            and isinstance(existing := target.get(key), Mapping)
        ):
            nested: dict[str, Any]
            if isinstance(existing, dict):
                nested = existing
            else:
                nested = dict(existing)
            _deep_update(nested, value)
            target[key] = nested
        else:
            target[key] = value
