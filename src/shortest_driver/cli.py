"""Command line interface for shortest-driver."""

from __future__ import annotations

import asyncio
import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console

from .config import DriverSettings, load_config
from .factory import build_driver
from .models import ActionResult, Platform

app = typer.Typer(help="Shortest driver entry point")
console = Console()


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure logging before executing any command."""

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@app.command()
def version() -> None:
    """Print the package version."""

    try:
        typer.echo(get_version("shortest-driver"))
    except PackageNotFoundError:  # pragma: no cover - when running from source tree
        typer.echo("0.0.0")


async def _capture(config: DriverSettings, url: Optional[str]) -> ActionResult:
    driver = await build_driver(config)
    try:
        browser = await driver.create_browser()
        if url and config.platform is Platform.WEB:
            await browser.navigate(url)
        return await browser.screenshot()
    finally:
        await driver.destroy()


@app.command()
def capture(
    url: Annotated[
        Optional[str],
        typer.Argument(help="Page to open before capturing (web only)."),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to YAML configuration."),
    ] = None,
    env_file: Annotated[
        Optional[Path],
        typer.Option("--env-file", help="Path to an .env file with default configuration values."),
    ] = None,
    platform: Annotated[
        Optional[Platform],
        typer.Option("--platform", "-p", help="Platform to drive."),
    ] = None,
    headless: Annotated[
        Optional[bool],
        typer.Option("--headless/--headed", help="Run the web browser headless (or headed)."),
    ] = None,
    server_url: Annotated[
        Optional[str],
        typer.Option("--server-url", help="Appium server for mobile platforms."),
    ] = None,
    output_dir: Annotated[
        Optional[Path],
        typer.Option("--output-dir", help="Directory for the captured screenshot."),
    ] = None,
    vision: Annotated[
        Optional[bool],
        typer.Option("--vision/--no-vision", help="Pad the screenshot for vision models."),
    ] = None,
) -> None:
    """Start a session, take one screenshot and tear everything down."""

    overrides: dict[str, Any] = {}
    if platform is not None:
        overrides["platform"] = platform.value
    if headless is not None:
        overrides["web"] = {"headless": headless}
    if server_url is not None:
        overrides["mobile"] = {"server_url": server_url}
    if output_dir is not None or vision is not None:
        overrides.setdefault("screenshots", {})
        if output_dir is not None:
            overrides["screenshots"]["directory"] = str(output_dir)
        if vision is not None:
            overrides["screenshots"]["vision_resize"] = vision

    config = load_config(config_path, env_file=env_file, **overrides)
    typer.echo(f"Capturing on platform: {config.platform.value}")

    result = asyncio.run(_capture(config, url))
    payload = result.payload or {}
    console.print(f"[green]{result.message}[/green] {payload.get('path', '')}")
    if result.metadata and result.metadata.browser_state:
        console.print(result.metadata.browser_state.model_dump(), style="dim")


if __name__ == "__main__":
    app()
