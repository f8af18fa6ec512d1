"""
配置数据模型

定义模组加载器、项目类型、依赖规格以及项目计划。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from modresolve.exceptions import ConfigValidationError, SpecParseError


class ModLoader(Enum):
    """模组加载器"""

    NEOFORGE = "neoforge"
    FABRIC = "fabric"
    QUILT = "quilt"
    FORGE = "forge"
    VANILLA = "vanilla"

    @classmethod
    def parse(cls, value: str, spec: Optional[str] = None) -> "ModLoader":
        """大小写不敏感地解析加载器名称"""
        text = value.strip().lower()
        for loader in cls:
            if loader.value == text:
                return loader
        raise SpecParseError(
            f"无效的模组加载器: '{value}'，可选值: neoforge, fabric, quilt, forge, vanilla",
            spec=spec or value,
            field="loader",
        )


class ModProjectType(Enum):
    """项目类型"""

    MOD = "mod"
    DATAPACK = "datapack"
    RESOURCE_PACK = "resourcepack"
    SHADER = "shader"

    @classmethod
    def parse(cls, value: str, spec: Optional[str] = None) -> "ModProjectType":
        text = value.strip().lower()
        aliases = {
            "resource_pack": cls.RESOURCE_PACK,
            "texturepack": cls.RESOURCE_PACK,
            "texture-pack": cls.RESOURCE_PACK,
            "data-pack": cls.DATAPACK,
            "shaderpack": cls.SHADER,
        }
        if text in aliases:
            return aliases[text]
        for project_type in cls:
            if project_type.value == text:
                return project_type
        raise SpecParseError(
            f"无效的项目类型: '{value}'，可选值: mod, datapack, resourcepack, shader",
            spec=spec or value,
            field="project_type",
        )


VersionOverride = Union[str, List[str]]


@dataclass(frozen=True)
class DependencySpec:
    """
    单个依赖的解析结果，解析后不可变。
    """

    key: str
    search_query: str
    project_type: ModProjectType
    minecraft_version: str
    loader: ModLoader
    explicit_project_id: Optional[str] = None
    version_overrides: Tuple[str, ...] = ()


def _normalize_overrides(value: Optional[VersionOverride]) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def parse_dependency_spec(
    text: str,
    default_minecraft: str,
    default_loader: ModLoader,
    project_ids: Optional[Mapping[str, str]] = None,
    version_overrides: Optional[Mapping[str, VersionOverride]] = None,
) -> DependencySpec:
    """
    解析依赖规格字符串

    格式: ``key: "Display Name|type|mc_version|loader"``，
    省略或为空的字段使用项目默认值。

    Raises:
        SpecParseError: 格式错误或字段无法识别
    """
    clean = text.strip()
    if clean.startswith("-"):
        clean = clean[1:].strip()

    key, sep, value = clean.partition(":")
    key = key.strip().strip("\"'")
    if not sep or not key:
        raise SpecParseError(
            f"无效的依赖规格: '{text}'，应为 key: \"名称|类型|MC版本|加载器\"",
            spec=text,
        )

    components = [part.strip() for part in value.strip().strip("\"'").split("|")]
    search_query = components[0] if components else ""
    if not search_query:
        raise SpecParseError(
            f"依赖 '{key}' 缺少搜索名称: '{text}'", spec=text, field="search_query"
        )

    if len(components) > 1 and components[1]:
        project_type = ModProjectType.parse(components[1], spec=text)
    else:
        project_type = ModProjectType.MOD

    if len(components) > 2 and components[2]:
        minecraft_version = components[2]
    else:
        minecraft_version = default_minecraft

    if len(components) > 3 and components[3]:
        loader = ModLoader.parse(components[3], spec=text)
    else:
        loader = default_loader

    project_ids = project_ids or {}
    version_overrides = version_overrides or {}

    return DependencySpec(
        key=key,
        search_query=search_query,
        project_type=project_type,
        minecraft_version=minecraft_version,
        loader=loader,
        explicit_project_id=project_ids.get(key),
        version_overrides=_normalize_overrides(version_overrides.get(key)),
    )


@dataclass
class ProjectPlan:
    """
    项目计划：整合包名称、目标版本以及依赖规格列表。
    """

    name: str = "modpack"
    minecraft_version: Optional[str] = None
    loader: Optional[ModLoader] = None
    loader_version: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)
    project_ids: Dict[str, str] = field(default_factory=dict)
    version_overrides: Dict[str, VersionOverride] = field(default_factory=dict)
    author: Optional[str] = None
    version: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectPlan":
        """从配置字典创建项目计划，支持 empack / modresolve 根键"""
        if not isinstance(data, dict):
            raise ConfigValidationError("配置文件根节点必须是字典")

        section = data.get("modresolve") or data.get("empack") or data

        dependencies = section.get("dependencies") or []
        if not isinstance(dependencies, list):
            raise ConfigValidationError("dependencies 必须是列表")

        raw_deps: List[str] = []
        for entry in dependencies:
            # YAML 中 `- sodium: "Sodium|mod"` 会被解析成单键字典
            if isinstance(entry, dict):
                for key, value in entry.items():
                    raw_deps.append(f"{key}: {value}")
            else:
                raw_deps.append(str(entry))

        loader = section.get("loader")
        if loader is not None and not isinstance(loader, ModLoader):
            try:
                loader = ModLoader.parse(str(loader))
            except SpecParseError as e:
                raise ConfigValidationError(e.message, context=e.context)

        minecraft_version = section.get("minecraft_version")
        loader_version = section.get("loader_version")

        return cls(
            name=section.get("name", "modpack"),
            minecraft_version=str(minecraft_version) if minecraft_version else None,
            loader=loader,
            loader_version=str(loader_version) if loader_version else None,
            dependencies=raw_deps,
            project_ids={
                str(k): str(v) for k, v in (section.get("project_ids") or {}).items()
            },
            version_overrides=dict(section.get("version_overrides") or {}),
            author=section.get("author"),
            version=section.get("version"),
        )

    def specs(
        self, minecraft_version: str, loader: ModLoader
    ) -> List[Union[DependencySpec, SpecParseError]]:
        """
        使用给定的默认值解析所有依赖规格

        解析失败的条目以 SpecParseError 占位，不会中断其余条目。
        """
        results: List[Union[DependencySpec, SpecParseError]] = []
        for dep in self.dependencies:
            try:
                results.append(
                    parse_dependency_spec(
                        dep,
                        minecraft_version,
                        loader,
                        self.project_ids,
                        self.version_overrides,
                    )
                )
            except SpecParseError as e:
                results.append(e)
        return results
