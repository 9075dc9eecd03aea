"""Pytest configuration and fixtures for Packsmith tests."""

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from packsmith.core.config_manager import BuildSettings
from packsmith.core.watch import WatchController

PROJECT_NAME = "demo"
MCWORLD_NAME = "DemoWorld"


@pytest.fixture
def logger_manager():
    """Create a mock LoggingManager whose loggers are mocks too."""
    manager = MagicMock()
    manager.get_logger.return_value = MagicMock()
    return manager


@pytest.fixture(autouse=True)
def reset_watch_session():
    """Make sure no watch session leaks between tests."""
    yield
    WatchController._active = None


@pytest.fixture
def project_dir(tmp_path) -> Path:
    """Create an add-on project tree with both packs and a world template."""
    root = tmp_path / "project"

    bp = root / "behavior_packs" / PROJECT_NAME
    (bp / "texts").mkdir(parents=True)
    (bp / "manifest.json").write_text(json.dumps({"format_version": 2, "header": {"name": "bp"}}))
    (bp / "texts" / "en_US.lang").write_text("pack.name=Demo\n")

    rp = root / "resource_packs" / PROJECT_NAME
    (rp / "textures").mkdir(parents=True)
    (rp / "manifest.json").write_text(json.dumps({"format_version": 2, "header": {"name": "rp"}}))
    (rp / "textures" / "icon.png").write_bytes(bytes(range(256)))

    world = root / "world"
    (world / "db").mkdir(parents=True)
    (world / "level.dat").write_bytes(b"\x0a\x00\x00level")
    (world / "levelname.txt").write_text(MCWORLD_NAME)
    (world / "db" / "CURRENT").write_text("MANIFEST-000001\n")

    (root / "scripts").mkdir()
    (root / "scripts" / "main.ts").write_text('import { world } from "@minecraft/server";\n')
    return root


@pytest.fixture
def settings(project_dir, tmp_path) -> BuildSettings:
    """Create build settings for the test project."""
    return BuildSettings(
        project_name=PROJECT_NAME,
        mcworld_name=MCWORLD_NAME,
        root_dir=project_dir,
        custom_deployment_path=tmp_path / "com.mojang",
        watch_debounce=0.05,
    )


@pytest.fixture
def write_compiled_script(settings):
    """Return a helper writing the bundle output a successful build leaves behind."""

    def write(content: str = "console.log('demo');\n") -> Path:
        settings.scripts_output_dir.mkdir(parents=True, exist_ok=True)
        settings.script_output_path.write_text(content)
        return settings.script_output_path

    return write
