"""
主协调器

整合所有服务层组件，从项目计划得到版本三元组和有序依赖集合。
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from loguru import logger

from modresolve.exceptions import ModResolveError, RateLimitExhaustedError
from modresolve.models import (
    DependencySpec,
    ProjectPlan,
    ResolvedDependency,
    ResolvedProject,
    ResolvedVersions,
)
from modresolve.platform import SystemResources
from modresolve.services import (
    DependencyCollector,
    PlatformClient,
    ProjectResolver,
    ResolutionManager,
    ResolverSettings,
    VersionResolver,
)


@dataclass
class ResolutionReport:
    """解析结果：版本三元组、有序依赖以及失败条目（规格 key -> 错误）"""

    versions: ResolvedVersions
    ordered: List[ResolvedDependency] = field(default_factory=list)
    failures: Dict[str, Exception] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict:
        return {
            "loader": self.versions.loader.value,
            "minecraft_version": self.versions.minecraft_version,
            "loader_version": self.versions.loader_version,
            "compatibility_validated": self.versions.compatibility_validated,
            "dependencies": [
                {
                    "key": dep.key,
                    "project_id": dep.project.project_id,
                    "name": dep.project.name,
                    "platform": dep.project.platform.value,
                    "version_id": dep.version_id,
                }
                for dep in self.ordered
            ],
            "failures": {
                key: (
                    error.to_dict()
                    if isinstance(error, ModResolveError)
                    else {"error": True, "message": str(error)}
                )
                for key, error in self.failures.items()
            },
        }


class ResolutionOrchestrator:
    """ModResolve 主协调器"""

    def __init__(
        self,
        plan: ProjectPlan,
        client: PlatformClient,
        resources: SystemResources,
        max_jobs: Optional[int] = None,
        settings: Optional[ResolverSettings] = None,
        version_resolver: Optional[VersionResolver] = None,
    ):
        self.plan = plan
        self.client = client
        self.manager = ResolutionManager(resources, max_jobs)
        self.resolver = ProjectResolver(client, settings)
        self.version_resolver = version_resolver or VersionResolver(client)
        self.collector = DependencyCollector(client)

    async def run(self) -> ResolutionReport:
        """
        运行完整的解析流程

        Raises:
            VersionResolutionError: 无法确定版本三元组
            CycleDetectedError: 依赖存在环
            RateLimitExhaustedError: 任一项目限流重试耗尽
        """
        logger.info(f"开始解析项目 '{self.plan.name}'...")

        versions = await self.version_resolver.resolve(
            self.plan.loader, self.plan.minecraft_version, self.plan.loader_version
        )
        report = ResolutionReport(versions=versions)

        specs: List[DependencySpec] = []
        for parsed in self.plan.specs(versions.minecraft_version, versions.loader):
            if isinstance(parsed, DependencySpec):
                specs.append(parsed)
            else:
                logger.warning(f"[配置] {parsed.message}")
                report.failures[parsed.spec] = parsed

        if not specs:
            logger.warning("没有可解析的依赖")
            return report

        results = await self.manager.resolve_all(specs, self.resolver.resolve)

        resolved: List[Tuple[DependencySpec, ResolvedProject]] = []
        for result in results:
            if result.ok:
                resolved.append((result.identifier, result.value))
                continue
            if isinstance(result.error, RateLimitExhaustedError):
                raise result.error
            logger.warning(f"[解析] {result.identifier.key}: {result.error}")
            report.failures[result.identifier.key] = result.error

        collected = await self.collector.collect(resolved)
        report.failures.update(collected.failures)
        for node in collected.graph.resolve():
            project = collected.projects[node.id]
            report.ordered.append(
                ResolvedDependency(
                    key=collected.keys.get(node.id, project.slug or project.project_id),
                    project=project,
                    version_id=collected.versions.get(node.id),
                )
            )

        logger.success(
            f"解析完成! {len(report.ordered)} 个依赖, {len(report.failures)} 个失败"
        )
        return report
