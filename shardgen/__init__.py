"""Convenience imports for the :mod:`shardgen` package.

Importing :mod:`shardgen` exposes its submodules directly::

    from shardgen import config, converter, matches, pipeline, sharding
"""

from . import config, converter, matches, pipeline, sharding

__all__ = ["config", "converter", "matches", "pipeline", "sharding"]
