"""
CurseForge API 地址构造与响应解析
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

from modresolve.models import ModLoader, ModProjectType, ProjectPlatform, SearchCandidate

CURSEFORGE_BASE_URL = ProjectPlatform.CURSEFORGE.base_url
MINECRAFT_GAME_ID = 432
SORT_BY_DOWNLOADS = 6
REQUIRED_DEPENDENCY = 3

_CLASS_IDS = {
    "mod": 6,
    "resourcepack": 12,
    "datapack": 17,
}

_LOADER_IDS = {
    "forge": 1,
    "fabric": 4,
    "quilt": 5,
    "neoforge": 6,
}


def class_id(project_type: str) -> int:
    """项目类型对应的 classId，未知类型按 mod 处理"""
    return _CLASS_IDS.get(project_type.lower(), 6)


def loader_id(loader: str) -> Optional[int]:
    """加载器对应的 modLoaderType，未知加载器不过滤"""
    return _LOADER_IDS.get(loader.lower())


def search_url(
    query_encoded: str,
    project_type: ModProjectType,
    minecraft_version: Optional[str] = None,
    loader: Optional[ModLoader] = None,
    limit: int = 20,
    base_url: str = CURSEFORGE_BASE_URL,
) -> str:
    """构造搜索地址，query_encoded 必须已经过 URL 编码"""
    params = [
        f"gameId={MINECRAFT_GAME_ID}",
        f"classId={class_id(project_type.value)}",
        f"searchFilter={query_encoded}",
        f"sortField={SORT_BY_DOWNLOADS}",
        "sortOrder=desc",
        f"pageSize={limit}",
    ]
    if minecraft_version:
        params.append(f"gameVersion={quote(minecraft_version, safe='')}")
    if loader is not None and project_type is ModProjectType.MOD:
        loader_type = loader_id(loader.value)
        if loader_type is not None:
            params.append(f"modLoaderType={loader_type}")
    return f"{base_url}/v1/mods/search?" + "&".join(params)


def project_url(project_id: str, base_url: str = CURSEFORGE_BASE_URL) -> str:
    return f"{base_url}/v1/mods/{quote(project_id, safe='')}"


def files_url(
    project_id: str,
    minecraft_version: Optional[str] = None,
    loader: Optional[ModLoader] = None,
    base_url: str = CURSEFORGE_BASE_URL,
) -> str:
    params = []
    if minecraft_version:
        params.append(f"gameVersion={quote(minecraft_version, safe='')}")
    if loader is not None:
        loader_type = loader_id(loader.value)
        if loader_type is not None:
            params.append(f"modLoaderType={loader_type}")
    url = f"{base_url}/v1/mods/{quote(project_id, safe='')}/files"
    if params:
        url += "?" + "&".join(params)
    return url


def _candidate(item: Dict[str, Any]) -> SearchCandidate:
    return SearchCandidate(
        project_id=str(item["id"]),
        title=item.get("name", ""),
        downloads=int(item.get("downloadCount", 0)),
        platform=ProjectPlatform.CURSEFORGE,
        slug=item.get("slug"),
        categories=[c.get("name", "") for c in item.get("categories", [])],
    )


def parse_search(payload: Dict[str, Any]) -> List[SearchCandidate]:
    return [_candidate(item) for item in payload.get("data", [])]


def parse_project(payload: Dict[str, Any]) -> SearchCandidate:
    return _candidate(payload["data"])


def required_dependencies(file: Dict[str, Any]) -> List[str]:
    """文件中必需依赖的项目 ID"""
    return [
        str(dep["modId"])
        for dep in file.get("dependencies", [])
        if dep.get("relationType") == REQUIRED_DEPENDENCY and dep.get("modId")
    ]


def file_matches(file: Dict[str, Any], wanted: str) -> bool:
    return wanted in (str(file.get("id")), file.get("displayName"), file.get("fileName"))
