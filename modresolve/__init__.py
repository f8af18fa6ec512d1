"""
ModResolve

Minecraft 整合包依赖解析：在 Modrinth 与 CurseForge 上查找项目，
确定加载器与 Minecraft 版本，并输出按依赖顺序排列的集合。
"""

from modresolve.exceptions import ModResolveError
from modresolve.logger import setup_logger

__version__ = "0.1.0"

__all__ = ["ModResolveError", "setup_logger", "__version__"]
