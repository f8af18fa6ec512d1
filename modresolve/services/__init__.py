"""
ModResolve 服务层

包含业务逻辑服务：API 客户端、缓存与限流、项目解析、版本解析、依赖处理。
"""

from modresolve.services.api_client import PlatformClient
from modresolve.services.dependency_resolver import (
    CollectedDependencies,
    DependencyCollector,
    DependencyGraph,
)
from modresolve.services.http_cache import HttpCache
from modresolve.services.mod_resolver import ProjectResolver, ResolverSettings
from modresolve.services.rate_limit import (
    BackoffConfig,
    BackoffState,
    RateLimitedClient,
    RateLimiterManager,
    TokenBucket,
)
from modresolve.services.resolution_manager import BatchResult, ResolutionManager
from modresolve.services.search_intent import SearchIntent
from modresolve.services.version_matcher import NeoForgeMapping, VersionResolver

__all__ = [
    "PlatformClient",
    "HttpCache",
    "BackoffConfig",
    "BackoffState",
    "TokenBucket",
    "RateLimitedClient",
    "RateLimiterManager",
    "ResolutionManager",
    "BatchResult",
    "SearchIntent",
    "ProjectResolver",
    "ResolverSettings",
    "VersionResolver",
    "NeoForgeMapping",
    "DependencyGraph",
    "DependencyCollector",
    "CollectedDependencies",
]
