"""Packsmith - build orchestration for Minecraft Bedrock add-on projects.

Compiles, bundles, stages and archives behavior and resource packs into
``.mcaddon`` and ``.mcworld`` packages, with a watch-and-rebuild loop for
local deployment.
"""

from __future__ import annotations

from packsmith.__version__ import __version__

__all__ = ["__version__"]
