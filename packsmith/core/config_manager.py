from __future__ import annotations

import json
import os
import pathlib
import sys
from copy import deepcopy
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from packsmith.utils.exceptions import ConfigurationError

REQUIRED_ENV_VARS = ('PROJECT_NAME', 'MCWORLD_NAME')
DEFAULT_CONFIG_FILES = ('packsmith.yaml', 'packsmith.yml', 'packsmith.json')
ENV_PREFIX = 'PACKSMITH_'

UWP_PACKAGE_NAMES = {
    'BedrockUWP': 'Microsoft.MinecraftUWP_8wekyb3d8bbwe',
    'PreviewUWP': 'Microsoft.MinecraftWindowsBeta_8wekyb3d8bbwe',
}


class MinecraftProduct(str, Enum):
    """Minecraft installation the development packs are deployed into."""
    BEDROCK_UWP = 'BedrockUWP'
    PREVIEW_UWP = 'PreviewUWP'
    CUSTOM = 'Custom'


class LoggingSettings(BaseModel):
    """Logging block of the build settings."""
    model_config = ConfigDict(frozen=True)

    level: str = 'INFO'
    format: str = 'text'
    console: Dict[str, Any] = Field(default_factory=lambda: {'enabled': True, 'level': 'INFO'})
    file: Dict[str, Any] = Field(
        default_factory=lambda: {
            'enabled': False,
            'path': 'logs/packsmith.log',
            'rotation': '10 MB',
            'retention': '30 days',
        }
    )

    @field_validator('format')
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v.lower() not in ('text', 'json'):
            raise ValueError(f"Unsupported log format '{v}' (expected 'text' or 'json')")
        return v.lower()


class BuildSettings(BaseModel):
    """Immutable settings for a Packsmith run.

    Produced once at startup by :func:`load_settings` and threaded through to
    every task. Relative paths are resolved against ``root_dir``.
    """
    model_config = ConfigDict(frozen=True)

    project_name: str
    mcworld_name: str
    root_dir: pathlib.Path = Field(default_factory=pathlib.Path.cwd)
    dist_dir: pathlib.Path = pathlib.Path('dist')
    entry_point: pathlib.Path = pathlib.Path('scripts/main.ts')
    script_name: str = 'main.js'
    external_modules: List[str] = Field(
        default_factory=lambda: ['@minecraft/server', '@minecraft/server-ui']
    )
    minify_whitespace: bool = False
    sourcemap: bool = True
    behavior_packs_dir: pathlib.Path = pathlib.Path('behavior_packs')
    resource_packs_dir: pathlib.Path = pathlib.Path('resource_packs')
    world_dir: pathlib.Path = pathlib.Path('world')
    clean_directories: List[pathlib.Path] = Field(
        default_factory=lambda: [pathlib.Path('temp'), pathlib.Path('lib'), pathlib.Path('dist')]
    )
    watch_patterns: List[str] = Field(
        default_factory=lambda: [
            'scripts/**/*.ts',
            'behavior_packs/**/*.{json,lang,png}',
            'resource_packs/**/*.{json,lang,png}',
        ]
    )
    watch_debounce: float = 0.25
    watch_stop_timeout: Optional[float] = None
    max_parallel: Optional[int] = None
    minecraft_product: MinecraftProduct = MinecraftProduct.BEDROCK_UWP
    custom_deployment_path: Optional[pathlib.Path] = None
    lint_patterns: List[str] = Field(default_factory=lambda: ['scripts/**/*.ts'])
    tsc_command: List[str] = Field(default_factory=lambda: ['npx', 'tsc'])
    esbuild_command: List[str] = Field(default_factory=lambda: ['npx', 'esbuild'])
    eslint_command: List[str] = Field(default_factory=lambda: ['npx', 'eslint'])
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator('project_name', 'mcworld_name')
    @classmethod
    def validate_names(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('must not be empty')
        if '/' in v or '\\' in v:
            raise ValueError(f"'{v}' must be a plain name, not a path")
        return v

    @field_validator('watch_debounce')
    @classmethod
    def validate_debounce(cls, v: float) -> float:
        if v < 0:
            raise ValueError('watch_debounce must not be negative')
        return v

    @field_validator('max_parallel')
    @classmethod
    def validate_max_parallel(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError('max_parallel must be at least 1')
        return v

    @field_validator('tsc_command', 'esbuild_command', 'eslint_command')
    @classmethod
    def validate_command(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError('command must not be empty')
        return v

    @model_validator(mode='after')
    def validate_custom_deployment(self) -> 'BuildSettings':
        """Require a deployment path when the product is Custom."""
        if self.minecraft_product == MinecraftProduct.CUSTOM and self.custom_deployment_path is None:
            raise ValueError('custom_deployment_path must be set when minecraft_product is Custom')
        return self

    def resolve(self, path: Union[str, pathlib.Path]) -> pathlib.Path:
        """Resolve a configured path against the project root."""
        path = pathlib.Path(path)
        return path if path.is_absolute() else self.root_dir / path

    @property
    def dist_path(self) -> pathlib.Path:
        return self.resolve(self.dist_dir)

    @property
    def scripts_output_dir(self) -> pathlib.Path:
        return self.dist_path / 'scripts'

    @property
    def script_output_path(self) -> pathlib.Path:
        return self.scripts_output_dir / self.script_name

    @property
    def debug_dir(self) -> pathlib.Path:
        return self.dist_path / 'debug'

    @property
    def packages_dir(self) -> pathlib.Path:
        return self.dist_path / 'packages'

    @property
    def behavior_pack_path(self) -> pathlib.Path:
        return self.resolve(self.behavior_packs_dir) / self.project_name

    @property
    def resource_pack_path(self) -> pathlib.Path:
        return self.resolve(self.resource_packs_dir) / self.project_name

    def deployment_root(self) -> Optional[pathlib.Path]:
        """Get the ``com.mojang`` folder development packs are deployed into.

        Returns:
            The deployment root, or None when it cannot be determined on this
            platform
        """
        if self.custom_deployment_path is not None:
            return self.resolve(self.custom_deployment_path)
        if self.minecraft_product == MinecraftProduct.CUSTOM:
            return None
        local_app_data = os.environ.get('LOCALAPPDATA')
        if sys.platform != 'win32' or not local_app_data:
            return None
        package = UWP_PACKAGE_NAMES[self.minecraft_product.value]
        return pathlib.Path(local_app_data) / 'Packages' / package / 'LocalState' / 'games' / 'com.mojang'


def _parse_env_value(value: str) -> Any:
    """Parse environment variable values into appropriate types.

    Args:
        value: The string value from the environment

    Returns:
        The parsed value (bool, int, float, list, or string)
    """
    if value.lower() in ('true', 'yes', 'on'):
        return True
    if value.lower() in ('false', 'no', 'off'):
        return False

    if value.startswith('['):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    try:
        if value.isdigit() or (value.startswith('-') and value[1:].isdigit()):
            return int(value)
        return float(value)
    except ValueError:
        return value


def _set_nested_value(config: Dict[str, Any], path: List[str], value: Any) -> None:
    """Set a nested value in the configuration dictionary.

    Args:
        config: The configuration dictionary
        path: List of keys forming the path to the value
        value: The value to set
    """
    if not path:
        return

    if len(path) == 1:
        config[path[0]] = value
        return

    key = path[0]
    if not isinstance(config.get(key), dict):
        config[key] = {}

    _set_nested_value(config[key], path[1:], value)


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    result = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_file(root_dir: pathlib.Path) -> Optional[pathlib.Path]:
    for name in DEFAULT_CONFIG_FILES:
        candidate = root_dir / name
        if candidate.exists():
            return candidate
    return None


def _load_config_file(config_path: pathlib.Path) -> Dict[str, Any]:
    """Load settings overrides from a YAML or JSON file.

    Raises:
        ConfigurationError: If the file is missing, unsupported or unparsable
    """
    if not config_path.exists():
        raise ConfigurationError(f'Config file not found: {config_path}', config_key='config_path')

    suffix = config_path.suffix.lower()
    try:
        content = config_path.read_text(encoding='utf-8')
        if suffix in ('.yaml', '.yml'):
            file_config = yaml.safe_load(content)
        elif suffix == '.json':
            file_config = json.loads(content)
        else:
            raise ConfigurationError(
                f'Unsupported config file format: {config_path.suffix}',
                config_key='config_path'
            )
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            f'Error parsing config file {config_path}: {str(e)}',
            config_key='config_path'
        ) from e

    if file_config is None:
        return {}
    if not isinstance(file_config, dict):
        raise ConfigurationError(
            f'Config file {config_path} must contain a mapping',
            config_key='config_path'
        )
    return file_config


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Collect ``PACKSMITH_`` prefixed overrides; ``__`` separates nested keys."""
    overrides: Dict[str, Any] = {}
    for env_name, env_value in environ.items():
        if not env_name.startswith(ENV_PREFIX):
            continue
        path = env_name[len(ENV_PREFIX):].lower().split('__')
        _set_nested_value(overrides, path, _parse_env_value(env_value))
    return overrides


def load_settings(
        root_dir: Optional[Union[str, pathlib.Path]] = None,
        config_path: Optional[Union[str, pathlib.Path]] = None,
        env_file: Optional[Union[str, pathlib.Path]] = '.env',
        environ: Optional[Mapping[str, str]] = None,
) -> BuildSettings:
    """Load the build settings for a run.

    This is the only place the process environment is read. The ``.env``
    file is loaded first (variables already set win), then the optional
    config file, then ``PACKSMITH_`` overrides, and finally the two required
    variables ``PROJECT_NAME`` and ``MCWORLD_NAME``.

    Args:
        root_dir: Project root, defaults to the current directory
        config_path: Explicit config file; otherwise ``packsmith.yaml`` (or
            ``.yml``/``.json``) under the root is used when present
        env_file: Dotenv file relative to the root, or None to skip it
        environ: Environment mapping to read instead of ``os.environ``

    Returns:
        Validated, frozen settings

    Raises:
        ConfigurationError: If a required variable is missing or the
            configuration is invalid
    """
    root = pathlib.Path(root_dir).resolve() if root_dir else pathlib.Path.cwd()

    if environ is None:
        if env_file is not None:
            env_path = pathlib.Path(env_file)
            if not env_path.is_absolute():
                env_path = root / env_path
            if env_path.exists():
                load_dotenv(env_path, override=False)
        environ = os.environ

    config: Dict[str, Any] = {}
    if config_path is not None:
        path = pathlib.Path(config_path)
        config = _load_config_file(path if path.is_absolute() else root / path)
    else:
        found = _find_config_file(root)
        if found is not None:
            config = _load_config_file(found)

    config = _merge(config, _env_overrides(environ))

    for name in REQUIRED_ENV_VARS:
        value = environ.get(name)
        if value is None or not value.strip():
            raise ConfigurationError(
                f'Required environment variable {name} is not set',
                config_key=name
            )
        config[name.lower()] = value

    config['root_dir'] = root

    try:
        return BuildSettings(**config)
    except ValidationError as e:
        errors = e.errors()
        error_details = ', '.join((
            f"{'.'.join((str(loc) for loc in error['loc']))}: {error['msg']}"
            for error in errors
        ))
        raise ConfigurationError(
            f'Invalid configuration: {error_details}',
            details={'validation_errors': [error['msg'] for error in errors]}
        ) from e
