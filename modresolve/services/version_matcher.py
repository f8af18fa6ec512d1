"""
版本解析服务

确定加载器、Minecraft 版本与加载器版本三元组：
缺失的部分从官方元数据补全，给定的组合会先验证兼容性。
"""

import re
import xml.etree.ElementTree as ET
from functools import cmp_to_key
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import toml
from loguru import logger

from modresolve.exceptions import (
    APIError,
    ConfigError,
    ConfigParseError,
    ConfigValidationError,
    RateLimitExhaustedError,
    VersionCompatibilityError,
    VersionResolutionError,
)
from modresolve.models import ModLoader, ProjectPlatform, ResolvedVersions
from modresolve.services.api_client import PlatformClient

MOJANG_MANIFEST_URL = "https://launchermeta.mojang.com/mc/game/version_manifest.json"
FABRIC_LOADER_URL = "https://meta.fabricmc.net/v2/versions/loader"
QUILT_LOADER_URL = "https://meta.quiltmc.org/v3/versions/loader"
NEOFORGE_MAVEN_URL = (
    "https://maven.neoforged.net/releases/net/neoforged/neoforge/maven-metadata.xml"
)
FORGE_MAVEN_URL = (
    "https://files.minecraftforge.net/net/minecraftforge/forge/maven-metadata.json"
)

# 元数据请求共用 Modrinth 的节流令牌
METADATA_PLATFORM = ProjectPlatform.MODRINTH

DEFAULT_MAPPING_FILE = Path(__file__).parent.parent / "data" / "neoforge_versions.toml"
SUPPORTED_SCHEMA_VERSION = 1

_PRERELEASE = re.compile(r"-(alpha|beta|rc|pre)", re.IGNORECASE)


def is_stable_minecraft_version(version: str) -> bool:
    """是否为正式版（如 1.20.1），快照和预发布版本返回 False"""
    if not version:
        return False
    lowered = version.lower()
    if "pre" in lowered or "rc" in lowered or "snapshot" in lowered:
        return False
    return all(part.isdigit() for part in version.split("."))


def is_stable_loader_version(version: str) -> bool:
    return _PRERELEASE.search(version) is None


def compare_versions(a: str, b: str) -> int:
    """按数字分段比较版本号，返回 -1 / 0 / 1，非数字分段被忽略"""
    a_parts = [int(p) for p in a.split(".") if p.isdigit()]
    b_parts = [int(p) for p in b.split(".") if p.isdigit()]
    length = max(len(a_parts), len(b_parts))
    a_parts += [0] * (length - len(a_parts))
    b_parts += [0] * (length - len(b_parts))
    if a_parts < b_parts:
        return -1
    if a_parts > b_parts:
        return 1
    return 0


def _newest_first(versions: List[str]) -> List[str]:
    return sorted(versions, key=cmp_to_key(compare_versions), reverse=True)


class NeoForgeMapping:
    """
    NeoForge 版本线到 Minecraft 版本的映射

    数据来自 ``data/neoforge_versions.toml``，未列出的版本线按规则推导。
    """

    def __init__(self, lines: Optional[Dict[str, str]] = None, schema_version: int = 1):
        self.lines = dict(lines or {})
        self.schema_version = schema_version

    @classmethod
    def from_file(cls, path: Union[str, Path, None] = None) -> "NeoForgeMapping":
        """
        从 TOML 文件加载映射

        Raises:
            ConfigError: 文件不存在
            ConfigParseError: TOML 格式错误
            ConfigValidationError: schema_version 不受支持或条目缺少字段
        """
        path = Path(path) if path is not None else DEFAULT_MAPPING_FILE
        if not path.exists():
            raise ConfigError(f"NeoForge 映射文件不存在: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = toml.load(f)
        except toml.TomlDecodeError as e:
            raise ConfigParseError(
                f"NeoForge 映射文件解析失败: {e}", context={"path": str(path)}
            ) from e

        schema_version = data.get("schema_version")
        if schema_version != SUPPORTED_SCHEMA_VERSION:
            raise ConfigValidationError(
                f"不支持的映射文件版本: {schema_version}", context={"path": str(path)}
            )

        lines = {}
        for entry in data.get("lines", []):
            if "neoforge" not in entry or "minecraft" not in entry:
                raise ConfigValidationError(
                    f"映射条目缺少 neoforge 或 minecraft 字段: {entry}",
                    context={"path": str(path)},
                )
            lines[str(entry["neoforge"])] = str(entry["minecraft"])
        return cls(lines, schema_version)

    @staticmethod
    def _line(neoforge_version: str) -> Optional[Tuple[int, int]]:
        parts = neoforge_version.split("-")[0].split(".")
        if len(parts) < 2 or not parts[0].isdigit() or not parts[1].isdigit():
            return None
        return int(parts[0]), int(parts[1])

    def minecraft_for(self, neoforge_version: str) -> Optional[str]:
        """NeoForge 版本对应的 Minecraft 版本，无法识别时返回 None"""
        line = self._line(neoforge_version)
        if line is None:
            return None
        major, minor = line
        listed = self.lines.get(f"{major}.{minor}")
        if listed:
            return listed
        return f"1.{major}" if minor == 0 else f"1.{major}.{minor}"

    def supports(self, neoforge_version: str, minecraft_version: str) -> bool:
        return self.minecraft_for(neoforge_version) == minecraft_version


class VersionResolver:
    """加载器与 Minecraft 版本解析器"""

    def __init__(self, client: PlatformClient, mapping: Optional[NeoForgeMapping] = None):
        self.client = client
        self.mapping = mapping or NeoForgeMapping.from_file()

    async def _json(self, url: str):
        return await self.client.get_json(METADATA_PLATFORM, url, authenticated=False)

    async def resolve(
        self,
        loader: Optional[ModLoader] = None,
        minecraft_version: Optional[str] = None,
        loader_version: Optional[str] = None,
    ) -> ResolvedVersions:
        """
        解析版本三元组

        Args:
            loader: 加载器，缺省为 NeoForge
            minecraft_version: Minecraft 版本，缺省为最新正式版
            loader_version: 加载器版本，缺省为最新兼容稳定版

        Raises:
            VersionCompatibilityError: 给定的加载器版本与 Minecraft 版本不兼容
            VersionResolutionError: 无法确定兼容的版本
        """
        loader = loader or ModLoader.NEOFORGE

        if loader is ModLoader.VANILLA:
            if loader_version:
                logger.warning(f"[版本] 原版不使用加载器版本，已忽略 '{loader_version}'")
            mc = minecraft_version or await self.latest_minecraft_version()
            return ResolvedVersions(loader=loader, minecraft_version=mc)

        if loader_version:
            if minecraft_version:
                mc = minecraft_version
            elif loader is ModLoader.NEOFORGE:
                mc = self.mapping.minecraft_for(loader_version)
                if mc is None:
                    raise VersionResolutionError(
                        f"无法识别的 NeoForge 版本: {loader_version}",
                        context={"loader_version": loader_version},
                    )
            else:
                mc = await self.latest_minecraft_version()

            if not await self.validate(loader, loader_version, mc):
                raise VersionCompatibilityError(loader.value, loader_version, mc)
            return self._done(loader, mc, loader_version)

        if minecraft_version:
            resolved = await self.latest_loader_version(loader, minecraft_version)
            if resolved is None:
                raise VersionResolutionError(
                    f"{loader.value} 没有支持 Minecraft {minecraft_version} 的稳定版本",
                    context={"loader": loader.value, "minecraft_version": minecraft_version},
                )
            return self._done(loader, minecraft_version, resolved)

        mc = await self.latest_minecraft_version()
        resolved = await self.latest_loader_version(loader, mc)
        if resolved is None and loader is ModLoader.NEOFORGE:
            newest = await self.newest_stable_neoforge()
            if newest is not None:
                fallback_mc = self.mapping.minecraft_for(newest)
                if fallback_mc is not None:
                    logger.warning(
                        f"[版本] NeoForge 暂不支持 Minecraft {mc}，改用 {fallback_mc}"
                    )
                    mc, resolved = fallback_mc, newest
        if resolved is None:
            raise VersionResolutionError(
                f"{loader.value} 没有支持 Minecraft {mc} 的稳定版本",
                context={"loader": loader.value, "minecraft_version": mc},
            )
        return self._done(loader, mc, resolved)

    @staticmethod
    def _done(loader: ModLoader, mc: str, loader_version: str) -> ResolvedVersions:
        logger.info(f"[版本] {loader.value} {loader_version} / Minecraft {mc}")
        return ResolvedVersions(
            loader=loader,
            minecraft_version=mc,
            loader_version=loader_version,
            compatibility_validated=True,
        )

    async def validate(
        self, loader: ModLoader, loader_version: str, minecraft_version: str
    ) -> bool:
        """验证加载器版本是否支持该 Minecraft 版本"""
        if loader is ModLoader.NEOFORGE:
            return self.mapping.supports(loader_version, minecraft_version)
        if loader is ModLoader.FORGE:
            builds = await self.fetch_loader_versions(loader, minecraft_version)
            return _strip_forge_prefix(loader_version, minecraft_version) in builds
        return True

    async def fetch_minecraft_versions(self) -> List[str]:
        """所有正式版 Minecraft 版本，最新的在前"""
        manifest = await self._json(MOJANG_MANIFEST_URL)
        return [
            v["id"]
            for v in manifest.get("versions", [])
            if v.get("type") == "release" and is_stable_minecraft_version(v.get("id", ""))
        ]

    async def latest_minecraft_version(self) -> str:
        manifest = await self._json(MOJANG_MANIFEST_URL)
        latest = (manifest.get("latest") or {}).get("release")
        if latest:
            return latest
        for v in manifest.get("versions", []):
            if v.get("type") == "release":
                return v["id"]
        raise VersionResolutionError("版本清单中没有 Minecraft 正式版")

    async def fetch_loader_versions(
        self, loader: ModLoader, minecraft_version: str
    ) -> List[str]:
        """支持该 Minecraft 版本的加载器版本，稳定版在前，各自最新的在前"""
        stable, unstable = await self._loader_versions(loader, minecraft_version)
        return stable + unstable

    async def latest_loader_version(
        self, loader: ModLoader, minecraft_version: str
    ) -> Optional[str]:
        stable, _ = await self._loader_versions(loader, minecraft_version)
        return stable[0] if stable else None

    async def _loader_versions(
        self, loader: ModLoader, minecraft_version: str
    ) -> Tuple[List[str], List[str]]:
        if loader is ModLoader.FABRIC:
            entries = await self._json(FABRIC_LOADER_URL)
            stable = [e["version"] for e in entries if e.get("stable")]
            unstable = [e["version"] for e in entries if not e.get("stable")]
            return stable, unstable

        if loader is ModLoader.QUILT:
            entries = await self._json(QUILT_LOADER_URL)
            versions = [e["version"] for e in entries]
            return (
                [v for v in versions if "beta" not in v],
                [v for v in versions if "beta" in v],
            )

        if loader is ModLoader.NEOFORGE:
            matching = [
                v
                for v in await self._neoforge_versions()
                if self.mapping.supports(v, minecraft_version)
            ]
            stable = [v for v in matching if is_stable_loader_version(v)]
            unstable = [v for v in matching if not is_stable_loader_version(v)]
            return list(reversed(stable)), list(reversed(unstable))

        if loader is ModLoader.FORGE:
            metadata = await self._json(FORGE_MAVEN_URL)
            builds = [
                _strip_forge_prefix(v, minecraft_version)
                for v in metadata.get(minecraft_version, [])
            ]
            return _newest_first(builds), []

        return [], []

    async def _neoforge_versions(self) -> List[str]:
        """maven 元数据中的全部 NeoForge 版本，按发布顺序（最新的在后）"""
        text = await self.client.get_text(
            METADATA_PLATFORM, NEOFORGE_MAVEN_URL, authenticated=False
        )
        try:
            root = ET.fromstring(text.encode("utf-8"))
        except ET.ParseError as e:
            raise APIError(
                f"NeoForge maven 元数据格式错误: {e}", url=NEOFORGE_MAVEN_URL
            ) from e
        return [
            node.text.strip()
            for node in root.iter("version")
            if node.text and node.text.strip()
        ]

    async def newest_stable_neoforge(self) -> Optional[str]:
        for version in reversed(await self._neoforge_versions()):
            if is_stable_loader_version(version):
                return version
        return None

    async def compatible_loaders(self, minecraft_version: str) -> List[ModLoader]:
        """
        支持该 Minecraft 版本的加载器

        查询失败时 Fabric、Forge、Quilt 对正式版视为兼容，NeoForge 视为不兼容。
        """
        compatible = []
        for loader in (ModLoader.NEOFORGE, ModLoader.FABRIC, ModLoader.FORGE, ModLoader.QUILT):
            try:
                versions = await self.fetch_loader_versions(loader, minecraft_version)
                supported = bool(versions)
                if loader in (ModLoader.FABRIC, ModLoader.QUILT):
                    supported = supported and is_stable_minecraft_version(minecraft_version)
            except RateLimitExhaustedError:
                raise
            except APIError as e:
                logger.debug(f"[版本] 查询 {loader.value} 版本失败: {e.message}")
                supported = (
                    loader is not ModLoader.NEOFORGE
                    and is_stable_minecraft_version(minecraft_version)
                )
            if supported:
                compatible.append(loader)
        return compatible


def _strip_forge_prefix(version: str, minecraft_version: str) -> str:
    """Forge maven 条目形如 ``1.20.1-47.2.0``，去掉 Minecraft 前缀"""
    prefix = f"{minecraft_version}-"
    return version[len(prefix):] if version.startswith(prefix) else version
