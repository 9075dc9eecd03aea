"""Utility modules for Packsmith."""

from packsmith.utils.exceptions import PacksmithError

__all__ = ["PacksmithError"]
