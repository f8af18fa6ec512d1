"""
搜索意图

同一查询文本的三种表示：原始、URL 编码、HTML 转义。
原始文本只用于比较，不直接发送到网络也不直接输出。
"""

import html
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from modresolve.models import DependencySpec, ModLoader, ModProjectType


@dataclass(frozen=True)
class SearchIntent:
    query_raw: str
    project_type: ModProjectType = ModProjectType.MOD
    minecraft_version: Optional[str] = None
    loader: Optional[ModLoader] = None

    @property
    def query_encoded(self) -> str:
        """URL 编码形式，所有非字母数字字节均被转义"""
        return quote(self.query_raw, safe="")

    @property
    def query_display(self) -> str:
        """HTML 转义形式，用于展示"""
        return html.escape(self.query_raw)

    @classmethod
    def from_spec(cls, spec: DependencySpec) -> "SearchIntent":
        return cls(
            query_raw=spec.search_query,
            project_type=spec.project_type,
            minecraft_version=spec.minecraft_version,
            loader=spec.loader,
        )

    def __str__(self) -> str:
        return self.query_display

    def __repr__(self) -> str:
        return f"SearchIntent(query={self.query_display!r}, type={self.project_type.value})"
