"""Build configuration for Packsmith tasks.

This module contains the configuration models for each leaf task type and the
package descriptors that say which staged trees go into which archive. Every
model is validated when the task using it is registered, so a bad option
surfaces before anything runs.
"""

from __future__ import annotations

import enum
import pathlib
from typing import List, Optional

import pydantic

from packsmith.core.config_manager import BuildSettings

ARCHIVE_SUFFIXES = ('.mcaddon', '.mcworld', '.zip')


class PackType(str, enum.Enum):
    """Canonical pack-type directory names inside a package."""

    BEHAVIOR = "behavior_packs"
    RESOURCE = "resource_packs"


class TaskConfig(pydantic.BaseModel):
    """Base class for task configuration models."""

    model_config = pydantic.ConfigDict(frozen=True, extra="forbid")


class TypeScriptConfig(TaskConfig):
    """Options for the type-check step.

    Attributes:
        command: Command that runs the TypeScript compiler
        project: Optional tsconfig path passed with ``--project``
    """

    command: List[str] = pydantic.Field(default_factory=lambda: ["npx", "tsc"])
    project: Optional[pathlib.Path] = None

    @pydantic.field_validator("command")
    @classmethod
    def validate_command(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("command must not be empty")
        return v

    def to_args(self) -> List[str]:
        args = list(self.command)
        if self.project is not None:
            args.extend(["--project", str(self.project)])
        return args


class BundleConfig(TaskConfig):
    """Options for the bundler step.

    Attributes:
        entry_point: Script the bundle starts from
        outfile: Bundled script to write
        external: Module names left as imports instead of being bundled
        minify_whitespace: Strip whitespace from the output
        sourcemap: Emit a source map next to the bundle
        sourcemap_dir: Directory the source map is moved to, if set
        command: Command that runs the bundler
    """

    entry_point: pathlib.Path
    outfile: pathlib.Path
    external: List[str] = pydantic.Field(default_factory=list)
    minify_whitespace: bool = False
    sourcemap: bool = False
    sourcemap_dir: Optional[pathlib.Path] = None
    command: List[str] = pydantic.Field(default_factory=lambda: ["npx", "esbuild"])

    @pydantic.field_validator("outfile")
    @classmethod
    def validate_outfile(cls, v: pathlib.Path) -> pathlib.Path:
        """Bundles are always plain JavaScript files."""
        if v.suffix != ".js":
            raise ValueError(f"Bundle output must be a .js file: {v}")
        return v

    @pydantic.field_validator("command")
    @classmethod
    def validate_command(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("command must not be empty")
        return v

    @property
    def sourcemap_file(self) -> pathlib.Path:
        return self.outfile.with_name(self.outfile.name + ".map")

    def to_args(self) -> List[str]:
        """Convert the options to bundler command-line arguments."""
        args = list(self.command)
        args.append(str(self.entry_point))
        args.extend(["--bundle", "--format=esm", f"--outfile={self.outfile}"])

        for module in self.external:
            args.append(f"--external:{module}")

        if self.minify_whitespace:
            args.append("--minify-whitespace")

        if self.sourcemap:
            # A map moved to sourcemap_dir must not be linked from the bundle.
            args.append("--sourcemap=external" if self.sourcemap_dir is not None else "--sourcemap")

        return args


class LintConfig(TaskConfig):
    """Options for the lint step."""

    patterns: List[str]
    fix: bool = False
    command: List[str] = pydantic.Field(default_factory=lambda: ["npx", "eslint"])

    @pydantic.field_validator("patterns")
    @classmethod
    def validate_patterns(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("at least one lint pattern is required")
        return v

    @pydantic.field_validator("command")
    @classmethod
    def validate_command(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("command must not be empty")
        return v


class CleanConfig(TaskConfig):
    """Paths removed by a clean step."""

    paths: List[pathlib.Path] = pydantic.Field(default_factory=list)


class CopyConfig(TaskConfig):
    """Sources and destination of the deploy copy.

    Attributes:
        behavior_packs: Behavior pack source directory of the project
        scripts: Directory holding the compiled scripts
        resource_packs: Resource pack source directory of the project
        deployment_root: ``com.mojang`` folder to deploy into, or None when
            it cannot be resolved on this platform
        project_name: Name of the pack folders in the development pack roots
    """

    behavior_packs: pathlib.Path
    scripts: pathlib.Path
    resource_packs: pathlib.Path
    deployment_root: Optional[pathlib.Path] = None
    project_name: str

    def development_pack_path(self, pack_type: PackType) -> Optional[pathlib.Path]:
        """Get where a pack of the given type is deployed."""
        if self.deployment_root is None:
            return None
        return self.deployment_root / f"development_{pack_type.value}" / self.project_name


class ZipConfig(CopyConfig):
    """Copy sources plus the archive to produce."""

    output_file: pathlib.Path

    @pydantic.field_validator("output_file")
    @classmethod
    def validate_output_file(cls, v: pathlib.Path) -> pathlib.Path:
        if v.suffix not in ARCHIVE_SUFFIXES:
            raise ValueError(
                f"Archive must end in one of {', '.join(ARCHIVE_SUFFIXES)}: {v}"
            )
        return v


class StagingEntry(TaskConfig):
    """One source copied into the staging tree before archiving.

    Attributes:
        source: File or directory to copy
        target: Path relative to the staging root
        required: Missing source is an error instead of a warning
    """

    source: pathlib.Path
    target: str
    required: bool = False

    @pydantic.field_validator("target", mode="before")
    @classmethod
    def validate_target(cls, v: object) -> str:
        target = pathlib.PurePosixPath(str(v).replace("\\", "/"))
        if target.is_absolute() or ".." in target.parts:
            raise ValueError(f"Staging target must stay inside the staging root: {v}")
        return target.as_posix()


class PackageDescriptor(TaskConfig):
    """What goes into one package archive.

    Attributes:
        name: Package variant name, used in log output
        staging_root: Directory the entries are staged into and that is zipped
        staging: Sources copied into the staging root, in order
        output_path: Archive file to write
    """

    name: str
    staging_root: pathlib.Path
    staging: List[StagingEntry]
    output_path: pathlib.Path

    @pydantic.field_validator("output_path")
    @classmethod
    def validate_output_path(cls, v: pathlib.Path) -> pathlib.Path:
        if v.suffix not in ARCHIVE_SUFFIXES:
            raise ValueError(
                f"Archive must end in one of {', '.join(ARCHIVE_SUFFIXES)}: {v}"
            )
        return v


def typescript_config(settings: BuildSettings) -> TypeScriptConfig:
    return TypeScriptConfig(command=settings.tsc_command)


def bundle_config(settings: BuildSettings) -> BundleConfig:
    return BundleConfig(
        entry_point=settings.resolve(settings.entry_point),
        outfile=settings.script_output_path,
        external=settings.external_modules,
        minify_whitespace=settings.minify_whitespace,
        sourcemap=settings.sourcemap,
        sourcemap_dir=settings.debug_dir if settings.sourcemap else None,
        command=settings.esbuild_command,
    )


def lint_config(settings: BuildSettings, fix: bool = False) -> LintConfig:
    return LintConfig(patterns=settings.lint_patterns, fix=fix, command=settings.eslint_command)


def clean_local_config(settings: BuildSettings) -> CleanConfig:
    return CleanConfig(paths=[settings.resolve(path) for path in settings.clean_directories])


def copy_config(settings: BuildSettings) -> CopyConfig:
    return CopyConfig(
        behavior_packs=settings.behavior_pack_path,
        scripts=settings.scripts_output_dir,
        resource_packs=settings.resource_pack_path,
        deployment_root=settings.deployment_root(),
        project_name=settings.project_name,
    )


def zip_config(settings: BuildSettings, output_file: pathlib.Path) -> ZipConfig:
    return ZipConfig(**copy_config(settings).model_dump(), output_file=output_file)


def _pack_entries(options: ZipConfig, script_name: str) -> List[StagingEntry]:
    project = options.project_name
    behavior_target = f"{PackType.BEHAVIOR.value}/{project}"
    return [
        StagingEntry(source=options.behavior_packs, target=behavior_target),
        StagingEntry(
            source=options.scripts / script_name,
            target=f"{behavior_target}/scripts/{script_name}",
            required=True,
        ),
        StagingEntry(
            source=options.resource_packs,
            target=f"{PackType.RESOURCE.value}/{project}",
        ),
    ]


def mcaddon_descriptor(settings: BuildSettings) -> PackageDescriptor:
    """Describe the ``.mcaddon`` package: both packs of the project."""
    options = zip_config(settings, settings.packages_dir / f"{settings.project_name}.mcaddon")
    return PackageDescriptor(
        name="mcaddon",
        staging_root=settings.dist_path / "addon",
        staging=_pack_entries(options, settings.script_name),
        output_path=options.output_file,
    )


def mcworld_descriptor(settings: BuildSettings) -> PackageDescriptor:
    """Describe the ``.mcworld`` package: world template plus both packs.

    The packs are staged next to the world template, inside the packages
    directory that also receives the finished archive.
    """
    options = zip_config(settings, settings.packages_dir / f"{settings.mcworld_name}.mcworld")
    world = StagingEntry(source=settings.resolve(settings.world_dir), target=".")
    return PackageDescriptor(
        name="mcworld",
        staging_root=settings.packages_dir,
        staging=[world] + _pack_entries(options, settings.script_name),
        output_path=options.output_file,
    )
