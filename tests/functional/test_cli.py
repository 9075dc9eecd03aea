"""Functional tests running the packsmith command in-process."""

import json
import os
import sys
import textwrap
import zipfile

import pytest

from packsmith.main import EXIT_CONFIG_ERROR, EXIT_OK, EXIT_TASK_FAILED, main

FAKE_ESBUILD = textwrap.dedent(
    """
    import pathlib
    import sys

    outfile = pathlib.Path(next(a.split("=", 1)[1] for a in sys.argv if a.startswith("--outfile=")))
    outfile.write_text("console.log('bundled');\\n")
    if any(a.startswith("--sourcemap") for a in sys.argv):
        outfile.with_name(outfile.name + ".map").write_text("{}")
    """
)


@pytest.fixture
def environment(monkeypatch):
    """Give each test its own copy of the process environment."""
    monkeypatch.setattr(os, "environ", dict(os.environ))
    for name in ("PROJECT_NAME", "MCWORLD_NAME"):
        os.environ.pop(name, None)
    return os.environ


@pytest.fixture
def project(project_dir, tmp_path, environment):
    """Configure the project with stand-in compiler and bundler commands."""
    fake_esbuild = tmp_path / "fake_esbuild.py"
    fake_esbuild.write_text(FAKE_ESBUILD)
    config = {
        "tsc_command": [sys.executable, "-c", "pass"],
        "esbuild_command": [sys.executable, str(fake_esbuild)],
        "custom_deployment_path": str(tmp_path / "com.mojang"),
    }
    (project_dir / "packsmith.json").write_text(json.dumps(config))
    environment["PROJECT_NAME"] = "demo"
    environment["MCWORLD_NAME"] = "DemoWorld"
    return project_dir


def test_missing_environment(project_dir, environment, capsys):
    """Test that a run without the required variables stops before building."""
    exit_code = main(["--root", str(project_dir), "mcaddon"])

    assert exit_code == EXIT_CONFIG_ERROR
    assert "PROJECT_NAME" in capsys.readouterr().err
    assert not (project_dir / "dist").exists()


def test_env_file(project_dir, environment, capsys):
    """Test that the required variables are read from the .env file."""
    (project_dir / ".env").write_text("PROJECT_NAME=demo\nMCWORLD_NAME=DemoWorld\n")

    exit_code = main(["--root", str(project_dir), "--list"])

    assert exit_code == EXIT_OK
    assert environment["PROJECT_NAME"] == "demo"


def test_list(project, capsys):
    exit_code = main(["--root", str(project), "--list"])

    out = capsys.readouterr().out
    assert exit_code == EXIT_OK
    names = [line.split()[0] for line in out.splitlines()]
    assert "mcaddon" in names
    assert "local-deploy" in names


def test_plan(project, capsys):
    exit_code = main(["--root", str(project), "--plan", "build"])

    assert exit_code == EXIT_OK
    assert capsys.readouterr().out.splitlines()[-3:] == ["typescript", "bundle", "build"]


def test_unknown_task(project, capsys):
    exit_code = main(["--root", str(project), "publish"])

    assert exit_code == EXIT_CONFIG_ERROR
    assert "publish" in capsys.readouterr().err


def test_invalid_config_file(project, capsys):
    (project / "packsmith.json").write_text(json.dumps({"watch_debounce": -1}))

    assert main(["--root", str(project), "build"]) == EXIT_CONFIG_ERROR
    assert "watch_debounce" in capsys.readouterr().err


def test_mcaddon(project):
    """Test a full mcaddon build through the command line."""
    exit_code = main(["--root", str(project), "mcaddon"])

    assert exit_code == EXIT_OK
    with zipfile.ZipFile(project / "dist" / "packages" / "demo.mcaddon") as archive:
        names = archive.namelist()
    assert "behavior_packs/demo/scripts/main.js" in names
    assert "resource_packs/demo/manifest.json" in names


def test_failing_tool(project, capsys):
    """Test that a failing compiler fails the run and names the task."""
    config = json.loads((project / "packsmith.json").read_text())
    config["tsc_command"] = [sys.executable, "-c", "import sys; print('error TS1005'); sys.exit(3)"]
    (project / "packsmith.json").write_text(json.dumps(config))

    exit_code = main(["--root", str(project), "mcaddon"])

    err = capsys.readouterr().err
    assert exit_code == EXIT_TASK_FAILED
    assert "Task 'typescript' failed" in err
    assert "status 3" in err
    assert not (project / "dist" / "packages").exists()
