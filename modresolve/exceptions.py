"""
ModResolve 统一异常体系

提供分层的异常结构，支持错误代码、上下文信息和 JSON 序列化。
"""

from typing import Any, Dict, List, Optional


class ModResolveError(Exception):
    """ModResolve 基础异常类"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self._get_default_code()
        self.context = context or {}

    def _get_default_code(self) -> str:
        """获取默认错误代码"""
        return "E000"

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigError(ModResolveError):
    """配置相关错误"""

    def _get_default_code(self) -> str:
        return "E100"


class ConfigParseError(ConfigError):
    """配置解析错误"""

    def _get_default_code(self) -> str:
        return "E101"


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def _get_default_code(self) -> str:
        return "E102"


class SpecParseError(ConfigParseError):
    """依赖规格字符串无法解析（ResolutionFormat）"""

    def __init__(self, message: str, spec: str, field: Optional[str] = None):
        context: Dict[str, Any] = {"spec": spec}
        if field:
            context["field"] = field
        super().__init__(message, context=context)
        self.spec = spec
        self.field = field


class APIError(ModResolveError):
    """API 相关错误"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        status: Optional[int] = None,
        url: Optional[str] = None,
    ):
        super().__init__(message, code, context)
        self.status = status
        self.url = url
        if status is not None:
            self.context["status_code"] = status
        if url:
            self.context["url"] = url

    def _get_default_code(self) -> str:
        return "E200"


class MissingApiKeyError(APIError):
    """平台需要 API 密钥但环境中不存在"""

    def __init__(self, platform: str, env_var: str):
        super().__init__(
            f"平台 {platform} 需要 API 密钥，请设置环境变量 {env_var}",
            context={"platform": platform, "env_var": env_var},
        )
        self.platform = platform
        self.env_var = env_var

    def _get_default_code(self) -> str:
        return "E201"


class NetworkError(APIError):
    """网络传输错误或请求超时"""

    def _get_default_code(self) -> str:
        return "E202"


class APINotFoundError(APIError):
    """API 资源不存在"""

    def _get_default_code(self) -> str:
        return "E404"


class RateLimitExhaustedError(APIError):
    """API 速率限制重试次数耗尽"""

    def __init__(self, platform: str, attempts: int, url: Optional[str] = None):
        super().__init__(
            f"平台 {platform} 速率限制重试已耗尽 (rate limit exhausted)，"
            f"共重试 {attempts} 次，请稍后再试",
            context={"platform": platform, "attempts": attempts},
            status=429,
            url=url,
        )
        self.platform = platform
        self.attempts = attempts

    def _get_default_code(self) -> str:
        return "E429"


class CacheError(ModResolveError):
    """缓存读写错误（非致命）"""

    def _get_default_code(self) -> str:
        return "E300"


class ResolutionError(ModResolveError):
    """解析调度相关错误"""

    def _get_default_code(self) -> str:
        return "E400"


class InvalidJobCountError(ResolutionError):
    """计算出的并发数无效"""

    def __init__(self, count: int):
        super().__init__(
            f"无效的并发任务数: {count} (必须大于 0)", context={"count": count}
        )
        self.count = count

    def _get_default_code(self) -> str:
        return "E401"


class NoModsProvidedError(ResolutionError):
    """批量解析时没有提供任何模组"""

    def __init__(self):
        super().__init__("没有提供需要解析的模组")

    def _get_default_code(self) -> str:
        return "E402"


class BatchExecutionError(ResolutionError):
    """批量任务调度失败（非单个任务错误）"""

    def _get_default_code(self) -> str:
        return "E403"


class NoConfidentMatchError(ResolutionError):
    """所有平台都没有足够可信的匹配结果"""

    def __init__(self, key: str, query: str, best_confidence: Optional[int] = None):
        detail = (
            f"最高置信度 {best_confidence}%"
            if best_confidence is not None
            else "没有任何候选结果"
        )
        super().__init__(
            f"模组 '{key}' 无法找到可信匹配 (查询: '{query}', {detail})",
            context={
                "key": key,
                "query": query,
                "best_confidence": best_confidence,
            },
        )
        self.key = key
        self.query = query
        self.best_confidence = best_confidence

    def _get_default_code(self) -> str:
        return "E410"


class VersionResolutionError(ModResolveError):
    """加载器/Minecraft 版本无法确定"""

    def _get_default_code(self) -> str:
        return "E500"


class VersionCompatibilityError(VersionResolutionError):
    """加载器版本与 Minecraft 版本不兼容"""

    def __init__(self, loader: str, loader_version: str, minecraft_version: str):
        super().__init__(
            f"{loader} {loader_version} 不支持 Minecraft {minecraft_version}",
            context={
                "loader": loader,
                "loader_version": loader_version,
                "minecraft_version": minecraft_version,
            },
        )
        self.loader = loader
        self.loader_version = loader_version
        self.minecraft_version = minecraft_version

    def _get_default_code(self) -> str:
        return "E501"


class DependencyGraphError(ModResolveError):
    """依赖图相关错误"""

    def _get_default_code(self) -> str:
        return "E600"


class CycleDetectedError(DependencyGraphError):
    """检测到循环依赖"""

    def __init__(self, cycle: List[str]):
        super().__init__(
            f"检测到循环依赖: {' -> '.join(cycle)}，请修改依赖配置",
            context={"cycle": list(cycle)},
        )
        self.cycle = list(cycle)

    def _get_default_code(self) -> str:
        return "E601"


class NodeNotFoundError(DependencyGraphError):
    """依赖图中不存在该节点"""

    def __init__(self, node_id: str, required_by: Optional[str] = None):
        if required_by:
            message = f"依赖 '{node_id}' (被 '{required_by}' 需要) 不在依赖图中"
        else:
            message = f"依赖图中不存在节点 '{node_id}'"
        super().__init__(
            message, context={"node": node_id, "required_by": required_by}
        )
        self.node_id = node_id
        self.required_by = required_by

    def _get_default_code(self) -> str:
        return "E602"


__all__ = [
    # 基础异常
    "ModResolveError",
    # 配置异常
    "ConfigError",
    "ConfigParseError",
    "ConfigValidationError",
    "SpecParseError",
    # API 异常
    "APIError",
    "MissingApiKeyError",
    "NetworkError",
    "APINotFoundError",
    "RateLimitExhaustedError",
    # 缓存异常
    "CacheError",
    # 调度异常
    "ResolutionError",
    "InvalidJobCountError",
    "NoModsProvidedError",
    "BatchExecutionError",
    "NoConfidentMatchError",
    # 版本异常
    "VersionResolutionError",
    "VersionCompatibilityError",
    # 依赖图异常
    "DependencyGraphError",
    "CycleDetectedError",
    "NodeNotFoundError",
]
