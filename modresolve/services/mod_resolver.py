"""
项目解析服务

把依赖规格解析为具体平台上的项目：显式 ID 直接查询，
否则先搜索首选平台，置信度不足时再合并另一个平台的候选项目。
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from loguru import logger

from modresolve.api import curseforge, modrinth, payload_guard
from modresolve.exceptions import (
    APIError,
    MissingApiKeyError,
    NoConfidentMatchError,
    RateLimitExhaustedError,
)
from modresolve.models import (
    DependencySpec,
    ProjectPlatform,
    ResolvedProject,
    SearchCandidate,
)
from modresolve.services.api_client import PlatformClient
from modresolve.services.fuzzy import (
    calculate_confidence,
    has_extra_words,
    levenshtein_distance,
    popularity_confidence,
)
from modresolve.services.search_intent import SearchIntent


@dataclass
class ResolverSettings:
    """解析器参数"""

    preferred_platform: ProjectPlatform = ProjectPlatform.MODRINTH
    preferred_threshold: int = 90
    min_confidence: int = 85
    popular_download_threshold: int = 1000
    extra_words_max_ratio: int = 150
    search_limit: int = 20


@dataclass
class ScoredCandidate:
    """带评分的候选项目"""

    candidate: SearchCandidate
    confidence: int
    distance: int
    popularity: int
    matched_name: str

    @property
    def sort_key(self) -> Tuple[int, int, int]:
        return (-self.confidence, self.distance, -self.popularity)


def pick_best(scored: Iterable[ScoredCandidate]) -> Optional[ScoredCandidate]:
    """置信度优先，其次编辑距离更小，再次下载量更高"""
    ordered = sorted(scored, key=lambda s: s.sort_key)
    return ordered[0] if ordered else None


class ProjectResolver:
    """项目解析器"""

    def __init__(
        self, client: PlatformClient, settings: Optional[ResolverSettings] = None
    ):
        self.client = client
        self.settings = settings or ResolverSettings()

    async def resolve(self, spec: DependencySpec) -> ResolvedProject:
        """
        解析单个依赖规格

        Raises:
            NoConfidentMatchError: 两个平台都没有足够可信的候选项目
            APIError: 没有得到任何候选项目且至少一个平台请求失败
            RateLimitExhaustedError: 限流重试耗尽
        """
        if spec.explicit_project_id:
            return await self.resolve_explicit(spec.explicit_project_id)

        intent = SearchIntent.from_spec(spec)
        preferred = self.settings.preferred_platform
        errors: List[APIError] = []

        preferred_scored = await self._search_scored(preferred, intent, errors)
        best = pick_best(preferred_scored)
        if best is not None and best.confidence >= self.settings.preferred_threshold:
            return self._accept(spec, best)

        fallback = preferred.other()
        logger.debug(
            f"[解析] {spec.key}: {preferred.display_name} 置信度不足, "
            f"尝试 {fallback.display_name}"
        )
        fallback_scored = await self._search_scored(fallback, intent, errors)

        pool = [
            s
            for s in preferred_scored + fallback_scored
            if s.confidence >= self.settings.min_confidence
        ]
        best_pooled = pick_best(pool)
        if best_pooled is not None:
            return self._accept(spec, best_pooled)

        overall = pick_best(preferred_scored + fallback_scored)
        if overall is None and errors:
            raise errors[-1]
        raise NoConfidentMatchError(
            spec.key,
            intent.query_display,
            overall.confidence if overall is not None else None,
        )

    async def resolve_explicit(self, project_id: str) -> ResolvedProject:
        """按显式 ID 查询，纯数字 ID 视为 CurseForge 项目"""
        if project_id.isdigit():
            platform, api = ProjectPlatform.CURSEFORGE, curseforge
        else:
            platform, api = ProjectPlatform.MODRINTH, modrinth
        url = api.project_url(project_id)
        payload = await self.client.get_json(platform, url)
        with payload_guard(platform, url):
            candidate = api.parse_project(payload)
        logger.debug(
            f"[解析] 显式 ID {project_id} -> {candidate.title} "
            f"({candidate.platform.display_name})"
        )
        return ResolvedProject.from_candidate(candidate)

    async def search(
        self, platform: ProjectPlatform, intent: SearchIntent
    ) -> List[SearchCandidate]:
        """在指定平台搜索候选项目"""
        limit = self.settings.search_limit
        if platform is ProjectPlatform.MODRINTH:
            url = modrinth.search_url(
                intent.query_encoded,
                intent.project_type,
                intent.minecraft_version,
                intent.loader,
                limit=limit,
            )
            payload = await self.client.get_json(platform, url)
            with payload_guard(platform, url):
                return modrinth.parse_search(payload)

        url = curseforge.search_url(
            intent.query_encoded,
            intent.project_type,
            intent.minecraft_version,
            intent.loader,
            limit=limit,
        )
        payload = await self.client.get_json(platform, url)
        with payload_guard(platform, url):
            return curseforge.parse_search(payload)

    def score(
        self, query: str, candidates: Iterable[SearchCandidate]
    ) -> List[ScoredCandidate]:
        """为候选项目评分，名称中多余词过多的候选项目被剔除"""
        scored = []
        threshold = self.settings.popular_download_threshold
        for candidate in candidates:
            names = [candidate.title]
            if candidate.slug:
                names.append(candidate.slug)

            confidence, name = max(
                (
                    (calculate_confidence(query, n, candidate.downloads, threshold), n)
                    for n in names
                ),
                key=lambda pair: pair[0],
            )
            if has_extra_words(query, name, self.settings.extra_words_max_ratio):
                logger.trace(f"[解析] 忽略 '{candidate.title}': 名称包含多余词")
                continue

            scored.append(
                ScoredCandidate(
                    candidate=candidate,
                    confidence=confidence,
                    distance=levenshtein_distance(
                        query.strip().lower(), name.strip().lower()
                    ),
                    popularity=popularity_confidence(candidate.downloads),
                    matched_name=name,
                )
            )
        return scored

    async def _search_scored(
        self,
        platform: ProjectPlatform,
        intent: SearchIntent,
        errors: Optional[List[APIError]] = None,
    ) -> List[ScoredCandidate]:
        """搜索并评分，平台请求失败时记录到 errors 并返回空列表"""
        try:
            candidates = await self.search(platform, intent)
        except RateLimitExhaustedError:
            raise
        except MissingApiKeyError as e:
            logger.warning(f"[解析] 跳过 {platform.display_name}: {e.message}")
            return []
        except APIError as e:
            logger.warning(
                f"[解析] {platform.display_name} 搜索 '{intent}' 失败: {e.message}"
            )
            if errors is not None:
                errors.append(e)
            return []
        return self.score(intent.query_raw, candidates)

    @staticmethod
    def _accept(spec: DependencySpec, best: ScoredCandidate) -> ResolvedProject:
        project = ResolvedProject.from_candidate(best.candidate)
        logger.info(
            f"[解析] {spec.key} -> {project.name} "
            f"({project.platform.display_name}, 置信度 {best.confidence})"
        )
        return project
