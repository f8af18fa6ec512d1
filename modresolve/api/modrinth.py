"""
Modrinth API 地址构造与响应解析
"""

import json
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from modresolve.models import ModLoader, ModProjectType, ProjectPlatform, SearchCandidate

MODRINTH_BASE_URL = ProjectPlatform.MODRINTH.base_url

_PROJECT_TYPES = {
    ModProjectType.MOD: "mod",
    ModProjectType.DATAPACK: "datapack",
    ModProjectType.RESOURCE_PACK: "resourcepack",
    ModProjectType.SHADER: "shader",
}


def search_url(
    query_encoded: str,
    project_type: ModProjectType,
    minecraft_version: Optional[str] = None,
    loader: Optional[ModLoader] = None,
    limit: int = 20,
    base_url: str = MODRINTH_BASE_URL,
) -> str:
    """构造搜索地址，query_encoded 必须已经过 URL 编码"""
    facets: List[List[str]] = [[f"project_type:{_PROJECT_TYPES[project_type]}"]]
    if minecraft_version:
        facets.append([f"versions:{minecraft_version}"])
    if (
        loader is not None
        and loader is not ModLoader.VANILLA
        and project_type is ModProjectType.MOD
    ):
        facets.append([f"categories:{loader.value}"])
    facets_param = quote(json.dumps(facets, separators=(",", ":")), safe="")
    return (
        f"{base_url}/v2/search?query={query_encoded}&limit={limit}&facets={facets_param}"
    )


def project_url(project_id: str, base_url: str = MODRINTH_BASE_URL) -> str:
    return f"{base_url}/v2/project/{quote(project_id, safe='')}"


def versions_url(
    project_id: str,
    minecraft_version: Optional[str] = None,
    loader: Optional[ModLoader] = None,
    base_url: str = MODRINTH_BASE_URL,
) -> str:
    params = []
    if minecraft_version:
        params.append(
            "game_versions=" + quote(json.dumps([minecraft_version]), safe="")
        )
    if loader is not None and loader is not ModLoader.VANILLA:
        params.append("loaders=" + quote(json.dumps([loader.value]), safe=""))
    url = f"{base_url}/v2/project/{quote(project_id, safe='')}/version"
    if params:
        url += "?" + "&".join(params)
    return url


def parse_search(payload: Dict[str, Any]) -> List[SearchCandidate]:
    """解析搜索响应中的 hits"""
    return [
        SearchCandidate(
            project_id=str(hit["project_id"]),
            title=hit.get("title", ""),
            downloads=int(hit.get("downloads", 0)),
            platform=ProjectPlatform.MODRINTH,
            slug=hit.get("slug"),
            categories=list(hit.get("categories", [])),
        )
        for hit in payload.get("hits", [])
    ]


def parse_project(payload: Dict[str, Any]) -> SearchCandidate:
    """解析项目详情"""
    return SearchCandidate(
        project_id=str(payload["id"]),
        title=payload.get("title", ""),
        downloads=int(payload.get("downloads", 0)),
        platform=ProjectPlatform.MODRINTH,
        slug=payload.get("slug"),
        categories=list(payload.get("categories", [])),
    )


def required_dependencies(version: Dict[str, Any]) -> List[str]:
    """版本中必需依赖的项目 ID"""
    return [
        dep["project_id"]
        for dep in version.get("dependencies", [])
        if dep.get("dependency_type") == "required" and dep.get("project_id")
    ]


def version_matches(version: Dict[str, Any], wanted: str) -> bool:
    return wanted in (version.get("id"), version.get("version_number"))
