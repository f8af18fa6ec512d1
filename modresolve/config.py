"""
配置加载

读取 TOML / JSON / YAML 格式的项目计划文件。
"""

import json
from pathlib import Path
from typing import Any, Dict, Union

import aiofiles
import toml
import yaml

from modresolve.exceptions import ConfigError, ConfigParseError
from modresolve.models import ProjectPlan

SUPPORTED_SUFFIXES = (".toml", ".json", ".yaml", ".yml")


def _check_path(path: Path) -> str:
    if not path.exists():
        raise ConfigError(f"配置文件不存在: {path}", context={"path": str(path)})
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ConfigError(
            f"不支持的配置文件格式: {suffix or '(无后缀)'}",
            context={"path": str(path)},
        )
    return suffix


def parse_config_text(text: str, suffix: str, source: str = "<string>") -> Dict[str, Any]:
    """
    按格式解析配置文本

    Raises:
        ConfigParseError: 文本不是合法的 TOML / JSON / YAML
    """
    try:
        if suffix == ".toml":
            data = toml.loads(text)
        elif suffix == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (toml.TomlDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigParseError(
            f"配置文件解析失败: {source}: {e}", context={"path": source}
        ) from e
    return data if data is not None else {}


def load_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """加载配置文件为字典"""
    path = Path(config_path)
    suffix = _check_path(path)
    return parse_config_text(path.read_text(encoding="utf-8"), suffix, str(path))


async def load_config_async(config_path: Union[str, Path]) -> Dict[str, Any]:
    """异步加载配置文件为字典"""
    path = Path(config_path)
    suffix = _check_path(path)
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        text = await f.read()
    return parse_config_text(text, suffix, str(path))


def load_project_plan(config_path: Union[str, Path]) -> ProjectPlan:
    """
    加载项目计划

    Raises:
        ConfigError: 文件不存在或格式不受支持
        ConfigParseError: 文件内容无法解析
        ConfigValidationError: 内容结构不正确
    """
    return ProjectPlan.from_dict(load_config(config_path))


async def load_project_plan_async(config_path: Union[str, Path]) -> ProjectPlan:
    """异步加载项目计划，异常同 load_project_plan"""
    return ProjectPlan.from_dict(await load_config_async(config_path))
