"""
API 数据模型

定义平台、搜索结果、缓存响应、版本三元组以及依赖节点等数据类。
"""

import base64
import json
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set

from modresolve.exceptions import MissingApiKeyError
from modresolve.models.config import ModLoader


class ProjectPlatform(Enum):
    """
    内容平台

    每个成员携带固定属性：每分钟请求上限、突发额度、API 地址、默认超时、
    是否需要 API 密钥以及密钥对应的环境变量名。
    """

    MODRINTH = "modrinth"
    CURSEFORGE = "curseforge"

    @property
    def display_name(self) -> str:
        return _PLATFORM_ATTRS[self]["display_name"]

    @property
    def rate_limit(self) -> int:
        """每分钟请求上限"""
        return _PLATFORM_ATTRS[self]["rate_limit"]

    @property
    def burst(self) -> int:
        """突发额度，为请求上限的两倍"""
        return self.rate_limit * 2

    @property
    def base_url(self) -> str:
        return _PLATFORM_ATTRS[self]["base_url"]

    @property
    def timeout(self) -> float:
        return _PLATFORM_ATTRS[self]["timeout"]

    @property
    def requires_api_key(self) -> bool:
        return _PLATFORM_ATTRS[self]["requires_api_key"]

    @property
    def api_key_env_var(self) -> str:
        return _PLATFORM_ATTRS[self]["api_key_env_var"]

    def other(self) -> "ProjectPlatform":
        """返回另一个平台"""
        if self is ProjectPlatform.MODRINTH:
            return ProjectPlatform.CURSEFORGE
        return ProjectPlatform.MODRINTH

    def api_key(self, environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
        """
        从环境变量读取 API 密钥

        Raises:
            MissingApiKeyError: 平台需要密钥但未设置
        """
        environ = os.environ if environ is None else environ
        key = environ.get(self.api_key_env_var) or None
        if key is None and self.requires_api_key:
            raise MissingApiKeyError(self.display_name, self.api_key_env_var)
        return key

    def __str__(self) -> str:
        return self.value


_PLATFORM_ATTRS: Dict[ProjectPlatform, Dict[str, Any]] = {
    ProjectPlatform.MODRINTH: {
        "display_name": "Modrinth",
        "rate_limit": 300,
        "base_url": "https://api.modrinth.com",
        "timeout": 30.0,
        "requires_api_key": False,
        "api_key_env_var": "MODRESOLVE_KEY_MODRINTH",
    },
    ProjectPlatform.CURSEFORGE: {
        "display_name": "CurseForge",
        "rate_limit": 60,
        "base_url": "https://api.curseforge.com",
        "timeout": 60.0,
        "requires_api_key": True,
        "api_key_env_var": "MODRESOLVE_KEY_CURSEFORGE",
    },
}


def popularity_confidence(download_count: int) -> int:
    """按下载量分段计算流行度置信度"""
    if download_count <= 100:
        return 10
    if download_count <= 1_000:
        return 20
    if download_count <= 10_000:
        return 40
    if download_count <= 100_000:
        return 60
    if download_count <= 1_000_000:
        return 80
    return 95


@dataclass
class SearchCandidate:
    """平台搜索返回的单个候选项目"""

    project_id: str
    title: str
    downloads: int
    platform: ProjectPlatform
    slug: Optional[str] = None
    categories: List[str] = field(default_factory=list)


@dataclass
class ResolvedProject:
    """
    解析出的项目。
    """

    project_id: str
    name: str
    platform: ProjectPlatform
    download_count: int
    slug: Optional[str] = None

    def confidence_score(self) -> int:
        """基于下载量的流行度置信度"""
        return popularity_confidence(self.download_count)

    @classmethod
    def from_candidate(cls, candidate: SearchCandidate) -> "ResolvedProject":
        return cls(
            project_id=candidate.project_id,
            name=candidate.title,
            platform=candidate.platform,
            download_count=candidate.downloads,
            slug=candidate.slug,
        )


@dataclass
class CachedResponse:
    """
    带 ETag 的缓存响应
    """

    data: bytes
    etag: Optional[str]
    expires: float
    status: int

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now > self.expires

    def extend_ttl(self, ttl: float) -> None:
        """将过期时间延长到当前时间之后 ttl 秒"""
        self.expires = time.time() + ttl

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.data.decode("utf-8"))

    def text(self) -> str:
        return self.data.decode("utf-8")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": base64.b64encode(self.data).decode("ascii"),
            "etag": self.etag,
            "expires": self.expires,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedResponse":
        return cls(
            data=base64.b64decode(data["data"]),
            etag=data.get("etag"),
            expires=float(data["expires"]),
            status=int(data["status"]),
        )


@dataclass
class ResolvedVersions:
    """加载器 / Minecraft / 加载器版本三元组"""

    loader: ModLoader
    minecraft_version: str
    loader_version: Optional[str] = None
    compatibility_validated: bool = False

    def __post_init__(self):
        if self.loader is ModLoader.VANILLA:
            self.loader_version = None


@dataclass
class DependencyNode:
    """依赖图节点"""

    id: str
    direct_dependencies: Set[str] = field(default_factory=set)
    name: Optional[str] = None
    platform: Optional[ProjectPlatform] = None
    version: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


@dataclass
class ResolvedDependency:
    """最终输出给构建流程的依赖条目"""

    key: str
    project: ResolvedProject
    version_id: Optional[str] = None
