"""
解析调度器

按主机资源限制并发，批量执行相互独立的解析任务。
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

from loguru import logger

from modresolve.exceptions import (
    BatchExecutionError,
    InvalidJobCountError,
    NoModsProvidedError,
)
from modresolve.platform import SystemResources

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class BatchResult(Generic[T, R]):
    """单个任务的结果，成功时 value 有效，失败时 error 有效"""

    identifier: T
    value: Optional[R] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> R:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


class ResolutionManager:
    """资源感知的并发解析调度器"""

    def __init__(self, resources: SystemResources, max_jobs: Optional[int] = None):
        self.resources = resources
        self._optimal_jobs = resources.calculate_optimal_jobs(max_jobs)
        if self._optimal_jobs <= 0:
            raise InvalidJobCountError(self._optimal_jobs)
        logger.debug(f"[调度] 并发上限: {self._optimal_jobs}")

    @property
    def optimal_jobs(self) -> int:
        return self._optimal_jobs

    async def resolve_all(
        self,
        identifiers: Sequence[T],
        resolver: Callable[[T], Awaitable[R]],
    ) -> List[BatchResult]:
        """
        并发解析一批标识

        Args:
            identifiers: 待解析的标识列表
            resolver: 单个标识的异步解析函数

        Returns:
            与输入顺序一致的结果列表，单个任务失败记录在对应位置

        Raises:
            NoModsProvidedError: 输入为空
            BatchExecutionError: 任务调度本身失败
        """
        if not identifiers:
            raise NoModsProvidedError()

        semaphore = asyncio.Semaphore(self._optimal_jobs)
        logger.info(
            f"[调度] 开始解析 {len(identifiers)} 个项目 (并发: {self._optimal_jobs})"
        )

        async def run(identifier: T) -> BatchResult:
            async with semaphore:
                try:
                    value = await resolver(identifier)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.debug(f"[调度] 任务 {identifier!r} 失败: {e}")
                    return BatchResult(identifier=identifier, error=e)
                return BatchResult(identifier=identifier, value=value)

        tasks = [
            asyncio.create_task(run(identifier), name=f"resolve-{i}")
            for i, identifier in enumerate(identifiers)
        ]

        try:
            results: List[Any] = await asyncio.gather(*tasks)
        except BaseException as e:
            for task in tasks:
                task.cancel()
            if isinstance(e, Exception):
                raise BatchExecutionError(
                    f"批量解析任务调度失败: {e}", context={"error": str(e)}
                ) from e
            raise

        failed = sum(1 for result in results if not result.ok)
        logger.info(f"[调度] 解析完成: {len(results) - failed} 成功, {failed} 失败")
        return results
