"""
主机资源检测

检测 CPU 核心数与内存压力，并据此计算并发任务数。
在进程启动时检测一次，之后作为不可变值传入调度器。
"""

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from loguru import logger

MIN_MEMORY_PRESSURE = 0.01


def _read_meminfo(path: str = "/proc/meminfo") -> Optional[Tuple[int, int]]:
    """从 /proc/meminfo 读取 (总内存, 可用内存)，单位字节"""
    try:
        with open(path, "r", encoding="utf-8") as f:
            values = {}
            for line in f:
                name, _, rest = line.partition(":")
                parts = rest.split()
                if parts:
                    values[name.strip()] = int(parts[0]) * 1024
    except (OSError, ValueError):
        return None

    total = values.get("MemTotal")
    available = values.get("MemAvailable", values.get("MemFree"))
    if not total or available is None:
        return None
    return total, available


def _sysconf_memory() -> Optional[Tuple[int, int]]:
    try:
        page_size = os.sysconf("SC_PAGE_SIZE")
        total_pages = os.sysconf("SC_PHYS_PAGES")
        avail_pages = os.sysconf("SC_AVPHYS_PAGES")
    except (AttributeError, ValueError, OSError):
        return None
    if page_size <= 0 or total_pages <= 0 or avail_pages < 0:
        return None
    return page_size * total_pages, page_size * avail_pages


@dataclass(frozen=True)
class SystemResources:
    """主机资源快照"""

    cpu_cores: int
    total_memory: int = 0
    available_memory: int = 0

    @property
    def memory_pressure(self) -> float:
        """内存压力 (0.0 - 1.0)，无法检测时为 0"""
        if self.total_memory <= 0:
            return 0.0
        return 1.0 - (self.available_memory / self.total_memory)

    @classmethod
    def detect(cls) -> "SystemResources":
        """检测当前主机资源，检测失败时内存压力按 0 处理"""
        cpu_cores = os.cpu_count() or 1
        memory = _read_meminfo() or _sysconf_memory()
        if memory is None:
            logger.debug("[资源] 无法检测内存信息，按无内存压力处理")
            return cls(cpu_cores=cpu_cores)

        total, available = memory
        resources = cls(
            cpu_cores=cpu_cores, total_memory=total, available_memory=available
        )
        logger.debug(
            f"[资源] CPU 核心: {cpu_cores}, 内存压力: {resources.memory_pressure:.2f}"
        )
        return resources

    @classmethod
    def from_pressure(cls, cpu_cores: int, memory_pressure: float) -> "SystemResources":
        """按给定内存压力构造（主要用于测试和手动覆盖）"""
        total = 1_000_000
        available = int(round(total * (1.0 - memory_pressure)))
        return cls(cpu_cores=cpu_cores, total_memory=total, available_memory=available)

    def calculate_optimal_jobs(self, max_jobs: Optional[int] = None) -> int:
        """
        根据资源计算最优并发任务数

        内存压力越大，并发越少: jobs = 1 + scaled_cores / pressure，
        结果限制在 [1, cpu_cores]，再受用户上限约束。
        """
        pressure = max(self.memory_pressure, MIN_MEMORY_PRESSURE)

        if pressure > 0.7:
            scaled = self.cpu_cores * 0.5
        elif pressure > 0.4:
            scaled = self.cpu_cores * 0.75
        else:
            scaled = float(self.cpu_cores)

        raw = round(1 + scaled / pressure)
        jobs = min(max(raw, 1), self.cpu_cores)

        if max_jobs is not None:
            jobs = min(jobs, max_jobs)

        logger.trace(
            f"[资源] {self.cpu_cores} 核心, 压力 {pressure:.3f}: "
            f"1 + {scaled:.1f}/{pressure:.3f} -> {raw} -> {jobs} 个任务"
        )
        return jobs
