"""
依赖处理服务

实现依赖图构建、依赖去重、循环依赖检测，以及从平台收集传递依赖。
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from loguru import logger

from modresolve.api import curseforge, modrinth, payload_guard
from modresolve.exceptions import (
    APIError,
    APINotFoundError,
    CycleDetectedError,
    NodeNotFoundError,
    RateLimitExhaustedError,
)
from modresolve.models import (
    DependencyNode,
    DependencySpec,
    ModLoader,
    ModProjectType,
    ProjectPlatform,
    ResolvedProject,
)
from modresolve.services.api_client import PlatformClient

_UNVISITED = 0
_IN_PROGRESS = 1
_DONE = 2


class DependencyGraph:
    """有向依赖图，边从依赖方指向被依赖方"""

    def __init__(self):
        self._nodes: Dict[str, DependencyNode] = {}

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[str]]) -> "DependencyGraph":
        """从 {id: [依赖 id]} 构建，值中未作为键出现的 id 不会自动创建节点"""
        graph = cls()
        for node_id, deps in mapping.items():
            graph.add_node(DependencyNode(id=node_id, direct_dependencies=set(deps)))
        return graph

    def add_node(self, node: DependencyNode):
        """添加节点，重复添加时合并依赖并补全缺失信息"""
        existing = self._nodes.get(node.id)
        if existing is None:
            self._nodes[node.id] = node
            return
        existing.direct_dependencies |= node.direct_dependencies
        existing.name = existing.name or node.name
        existing.platform = existing.platform or node.platform
        existing.version = existing.version or node.version

    def add_dependency(self, dependent: str, dependency: str):
        """
        添加依赖边

        Raises:
            NodeNotFoundError: 任意一端不在图中
        """
        if dependent not in self._nodes:
            raise NodeNotFoundError(dependent)
        if dependency not in self._nodes:
            raise NodeNotFoundError(dependency, required_by=dependent)
        self._nodes[dependent].direct_dependencies.add(dependency)

    def get_node(self, node_id: str) -> DependencyNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def get_dependencies(self, node_id: str) -> Set[str]:
        return set(self.get_node(node_id).direct_dependencies)

    def get_dependents(self, node_id: str) -> Set[str]:
        self.get_node(node_id)
        return {
            node.id
            for node in self._nodes.values()
            if node_id in node.direct_dependencies
        }

    def get_transitive_dependencies(self, node_id: str) -> Set[str]:
        seen: Set[str] = set()
        stack = list(self.get_dependencies(node_id))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            if current in self._nodes:
                stack.extend(self._nodes[current].direct_dependencies)
        return seen

    def contains(self, node_id: str) -> bool:
        return node_id in self._nodes

    def node_count(self) -> int:
        return len(self._nodes)

    def edge_count(self) -> int:
        return sum(len(node.direct_dependencies) for node in self._nodes.values())

    def detect_cycle(self) -> Optional[List[str]]:
        """返回发现的第一个环（首尾为同一 id），无环时返回 None"""
        try:
            self.resolve()
        except CycleDetectedError as e:
            return e.cycle
        return None

    def resolve(self, roots: Optional[Iterable[str]] = None) -> List[DependencyNode]:
        """
        拓扑排序

        从每个根节点（默认全部节点）深度优先遍历，依赖排在依赖方之前，
        每个节点只出现一次。

        Raises:
            CycleDetectedError: 存在循环依赖
            NodeNotFoundError: 根节点或依赖不在图中
        """
        state: Dict[str, int] = {}
        order: List[DependencyNode] = []
        for root in list(self._nodes) if roots is None else roots:
            self._visit(root, state, [], order, None)
        return order

    def _visit(
        self,
        node_id: str,
        state: Dict[str, int],
        path: List[str],
        order: List[DependencyNode],
        required_by: Optional[str],
    ):
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id, required_by=required_by)

        status = state.get(node_id, _UNVISITED)
        if status == _DONE:
            return
        if status == _IN_PROGRESS:
            cycle = path[path.index(node_id):] + [node_id]
            raise CycleDetectedError(cycle)

        state[node_id] = _IN_PROGRESS
        path.append(node_id)
        for dependency in sorted(node.direct_dependencies):
            self._visit(dependency, state, path, order, node_id)
        path.pop()
        state[node_id] = _DONE
        order.append(node)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return self.contains(node_id)


@dataclass
class CollectedDependencies:
    """依赖收集结果，failures 为根依赖规格 key -> 错误"""

    graph: DependencyGraph = field(default_factory=DependencyGraph)
    projects: Dict[str, ResolvedProject] = field(default_factory=dict)
    versions: Dict[str, Optional[str]] = field(default_factory=dict)
    keys: Dict[str, str] = field(default_factory=dict)
    failures: Dict[str, Exception] = field(default_factory=dict)


class DependencyCollector:
    """从平台版本信息收集传递依赖"""

    def __init__(self, client: PlatformClient):
        self.client = client

    async def collect(
        self, roots: Sequence[Tuple[DependencySpec, ResolvedProject]]
    ) -> CollectedDependencies:
        """
        收集依赖

        先按各自的版本覆盖为所有根依赖选定版本，再展开传递依赖，
        因此根依赖的版本与其在计划中的顺序无关。
        单个根依赖的 API 错误记录到 failures 后继续，限流耗尽直接抛出。

        Args:
            roots: 已解析的 (依赖规格, 项目) 列表

        Returns:
            依赖图、节点对应的项目、所选版本 ID、根节点的规格 key 以及失败条目
        """
        result = CollectedDependencies()
        seeded: List[Tuple[DependencySpec, ResolvedProject, List[str]]] = []

        for spec, project in roots:
            if project.project_id in result.keys:
                logger.debug(
                    f"[依赖] {spec.key} 与 {result.keys[project.project_id]} "
                    f"指向同一项目 {project.project_id}，已合并"
                )
                continue
            try:
                version_id, dependency_ids = await self.select_version(
                    project,
                    spec.minecraft_version,
                    spec.loader,
                    spec.project_type,
                    spec.version_overrides,
                )
            except RateLimitExhaustedError:
                raise
            except APIError as e:
                self._record_failure(result, spec, e)
                continue
            result.keys[project.project_id] = spec.key
            self._add_project(result, project, version_id)
            seeded.append((spec, project, dependency_ids))

        for spec, project, dependency_ids in seeded:
            try:
                await self._collect_dependencies(
                    project, dependency_ids, spec.minecraft_version, spec.loader, result
                )
            except RateLimitExhaustedError:
                raise
            except APIError as e:
                self._record_failure(result, spec, e)

        logger.debug(
            f"[依赖] 收集完成: {result.graph.node_count()} 个节点, "
            f"{result.graph.edge_count()} 条依赖, {len(result.failures)} 个失败"
        )
        return result

    async def _collect_recursive(
        self,
        project: ResolvedProject,
        mc_version: str,
        loader: ModLoader,
        result: CollectedDependencies,
    ):
        """递归收集传递依赖，传递依赖总是按模组类型选择最新兼容版本"""
        if result.graph.contains(project.project_id):
            return

        version_id, dependency_ids = await self.select_version(
            project, mc_version, loader, ModProjectType.MOD
        )
        self._add_project(result, project, version_id)
        await self._collect_dependencies(
            project, dependency_ids, mc_version, loader, result
        )

    async def _collect_dependencies(
        self,
        project: ResolvedProject,
        dependency_ids: Sequence[str],
        mc_version: str,
        loader: ModLoader,
        result: CollectedDependencies,
    ):
        for dependency_id in dependency_ids:
            if not result.graph.contains(dependency_id):
                dependency = await self._fetch_project(project.platform, dependency_id)
                if dependency is None:
                    continue
                await self._collect_recursive(dependency, mc_version, loader, result)
            if result.graph.contains(dependency_id):
                result.graph.add_dependency(project.project_id, dependency_id)

    @staticmethod
    def _add_project(
        result: CollectedDependencies,
        project: ResolvedProject,
        version_id: Optional[str],
    ):
        result.graph.add_node(
            DependencyNode(
                id=project.project_id,
                name=project.name,
                platform=project.platform,
                version=version_id,
            )
        )
        result.projects[project.project_id] = project
        result.versions[project.project_id] = version_id

    @staticmethod
    def _record_failure(
        result: CollectedDependencies, spec: DependencySpec, error: APIError
    ):
        logger.warning(f"[依赖] {spec.key}: 收集依赖失败: {error.message}")
        result.failures.setdefault(spec.key, error)

    async def select_version(
        self,
        project: ResolvedProject,
        mc_version: str,
        loader: ModLoader,
        project_type: ModProjectType = ModProjectType.MOD,
        overrides: Sequence[str] = (),
    ) -> Tuple[Optional[str], List[str]]:
        """
        选择兼容版本

        有版本覆盖时取第一个能匹配到的覆盖，否则取最新的兼容版本。

        Returns:
            (版本 ID, 必需依赖的项目 ID 列表)，没有兼容版本时为 (None, [])
        """
        version_loader = loader if project_type is ModProjectType.MOD else None
        if project.platform is ProjectPlatform.MODRINTH:
            url = modrinth.versions_url(project.project_id, mc_version, version_loader)
            matches, required = modrinth.version_matches, modrinth.required_dependencies
        else:
            url = curseforge.files_url(project.project_id, mc_version, version_loader)
            matches, required = curseforge.file_matches, curseforge.required_dependencies
        payload = await self.client.get_json(project.platform, url)

        with payload_guard(project.platform, url):
            if project.platform is ProjectPlatform.CURSEFORGE:
                payload = payload.get("data", [])
            versions = list(payload)

            chosen = None
            for wanted in overrides:
                chosen = next((v for v in versions if matches(v, wanted)), None)
                if chosen is not None:
                    break
            if chosen is None and overrides:
                logger.warning(
                    f"[依赖] {project.name} 的版本覆盖 {list(overrides)} 均未匹配，使用最新版本"
                )
            if chosen is None and versions:
                chosen = versions[0]

            if chosen is None:
                logger.warning(
                    f"[依赖] {project.name} 没有兼容 Minecraft {mc_version} 的版本"
                )
                return None, []
            return str(chosen["id"]), required(chosen)

    async def _fetch_project(
        self, platform: ProjectPlatform, project_id: str
    ) -> Optional[ResolvedProject]:
        api = modrinth if platform is ProjectPlatform.MODRINTH else curseforge
        url = api.project_url(project_id)
        try:
            payload = await self.client.get_json(platform, url)
        except APINotFoundError:
            logger.warning(f"[依赖] 依赖项目 {project_id} 不存在，已跳过")
            return None
        with payload_guard(platform, url):
            candidate = api.parse_project(payload)
        return ResolvedProject.from_candidate(candidate)
