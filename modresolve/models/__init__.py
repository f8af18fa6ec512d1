"""
ModResolve 数据模型包

包含配置模型和 API 模型定义。
"""

from modresolve.models.config import (
    ModLoader,
    ModProjectType,
    DependencySpec,
    ProjectPlan,
    parse_dependency_spec,
)
from modresolve.models.api import (
    ProjectPlatform,
    SearchCandidate,
    ResolvedProject,
    CachedResponse,
    ResolvedVersions,
    DependencyNode,
    ResolvedDependency,
    popularity_confidence,
)

__all__ = [
    # 配置模型
    "ModLoader",
    "ModProjectType",
    "DependencySpec",
    "ProjectPlan",
    "parse_dependency_spec",
    # API 模型
    "ProjectPlatform",
    "SearchCandidate",
    "ResolvedProject",
    "CachedResponse",
    "ResolvedVersions",
    "DependencyNode",
    "ResolvedDependency",
    "popularity_confidence",
]
