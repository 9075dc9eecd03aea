"""Unit tests for the external tool invocations."""

import sys
import textwrap

import pytest

from packsmith.build.collaborators import CommandRunner, run_bundle, run_lint, run_typescript
from packsmith.build.config import BundleConfig, LintConfig, TypeScriptConfig
from packsmith.utils.exceptions import CollaboratorError

FAKE_ESBUILD = textwrap.dedent(
    """
    import pathlib
    import sys

    args = sys.argv[1:]
    outfile = pathlib.Path(next(a.split("=", 1)[1] for a in args if a.startswith("--outfile=")))
    outfile.write_text("// bundled " + args[0] + "\\n" + " ".join(args[1:]) + "\\n")
    if any(a.startswith("--sourcemap") for a in args):
        outfile.with_name(outfile.name + ".map").write_text('{"version": 3}')
    if "--sourcemap" in args:
        with outfile.open("a") as bundle:
            bundle.write("//# sourceMappingURL=" + outfile.name + ".map\\n")
    print("built", outfile.name)
    """
)


@pytest.fixture
def runner(tmp_path, logger_manager):
    return CommandRunner(tmp_path, logger_manager)


@pytest.fixture
def fake_esbuild(tmp_path):
    script = tmp_path / "fake_esbuild.py"
    script.write_text(FAKE_ESBUILD)
    return [sys.executable, str(script)]


@pytest.mark.asyncio
async def test_run_returns_output(runner):
    """Test that a successful command's output is returned."""
    output = await runner.run("echo", [sys.executable, "-c", "print('one'); print('two')"])

    assert output == "one\ntwo"


@pytest.mark.asyncio
async def test_non_zero_exit_is_collaborator_error(runner):
    """Test that a failing tool raises with its status and output."""
    config = TypeScriptConfig(
        command=[sys.executable, "-c", "import sys; print('error TS2304: nope'); sys.exit(2)"]
    )

    with pytest.raises(CollaboratorError) as exc_info:
        await run_typescript(config, runner)

    error = exc_info.value
    assert error.tool == "tsc"
    assert error.returncode == 2
    assert "error TS2304: nope" in error.output
    assert str(error) == "tsc exited with status 2: error TS2304: nope"


@pytest.mark.asyncio
async def test_missing_executable(runner):
    """Test that a command that cannot start raises CollaboratorError."""
    with pytest.raises(CollaboratorError, match="Failed to start eslint"):
        await runner.run("eslint", ["definitely-not-a-real-packsmith-tool"])


@pytest.mark.asyncio
async def test_bundle_moves_source_map(runner, fake_esbuild, tmp_path):
    """Test bundling with externals and a source map moved to the debug folder."""
    config = BundleConfig(
        entry_point=tmp_path / "scripts" / "main.ts",
        outfile=tmp_path / "dist" / "scripts" / "main.js",
        external=["@minecraft/server", "@minecraft/server-ui"],
        minify_whitespace=True,
        sourcemap=True,
        sourcemap_dir=tmp_path / "dist" / "debug",
        command=fake_esbuild,
    )

    outfile = await run_bundle(config, runner)

    assert outfile == config.outfile
    content = outfile.read_text()
    assert "--bundle" in content
    assert "--external:@minecraft/server " in content
    assert "--external:@minecraft/server-ui" in content
    assert "--minify-whitespace" in content
    assert "--sourcemap=external" in content
    assert "sourceMappingURL" not in content
    assert not (tmp_path / "dist" / "scripts" / "main.js.map").exists()
    assert (tmp_path / "dist" / "debug" / "main.js.map").read_text() == '{"version": 3}'


@pytest.mark.asyncio
async def test_bundle_without_source_map(runner, fake_esbuild, tmp_path):
    """Test that no map is written when source maps are off."""
    config = BundleConfig(
        entry_point=tmp_path / "main.ts",
        outfile=tmp_path / "out" / "main.js",
        command=fake_esbuild,
    )

    await run_bundle(config, runner)

    assert "--sourcemap" not in config.outfile.read_text()
    assert not (tmp_path / "out" / "main.js.map").exists()


@pytest.mark.asyncio
async def test_bundle_with_linked_source_map(runner, fake_esbuild, tmp_path):
    """Test that a map left beside the bundle stays linked from it."""
    config = BundleConfig(
        entry_point=tmp_path / "main.ts",
        outfile=tmp_path / "out" / "main.js",
        sourcemap=True,
        command=fake_esbuild,
    )

    await run_bundle(config, runner)

    assert "//# sourceMappingURL=main.js.map" in config.outfile.read_text()
    assert (tmp_path / "out" / "main.js.map").exists()


@pytest.mark.asyncio
async def test_lint_passes_matching_files(runner, tmp_path):
    """Test that the linter gets the matching files and --fix."""
    (tmp_path / "scripts" / "lib").mkdir(parents=True)
    (tmp_path / "scripts" / "main.ts").write_text("")
    (tmp_path / "scripts" / "lib" / "util.ts").write_text("")
    (tmp_path / "scripts" / "readme.md").write_text("")
    config = LintConfig(
        patterns=["scripts/**/*.ts"],
        fix=True,
        command=[sys.executable, "-c", "import sys; print(' '.join(sys.argv[1:]))"],
    )

    output = await run_lint(config, runner)

    assert output == "--fix scripts/lib/util.ts scripts/main.ts"


@pytest.mark.asyncio
async def test_lint_without_matches(runner, logger_manager):
    """Test that linting nothing is a warning, not a failure."""
    config = LintConfig(patterns=["scripts/**/*.ts"], command=["definitely-not-a-real-packsmith-tool"])
    logger = logger_manager.get_logger.return_value

    assert await run_lint(config, runner, logger) is None
    logger.warning.assert_called_once()
