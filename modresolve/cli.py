"""
CLI 模块

命令行接口实现。
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Optional

import click
from loguru import logger

from modresolve.config import load_project_plan_async
from modresolve.exceptions import ModResolveError
from modresolve.logger import setup_logger
from modresolve.orchestrator import ResolutionOrchestrator, ResolutionReport
from modresolve.platform import SystemResources
from modresolve.services import HttpCache, PlatformClient

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "modresolve"


def default_cache_dir() -> Path:
    """缓存目录，MODRESOLVE_CACHE_DIR 优先"""
    override = os.environ.get("MODRESOLVE_CACHE_DIR")
    return Path(override) if override else DEFAULT_CACHE_DIR


def print_report(report: ResolutionReport, as_json: bool = False):
    """输出解析结果到 stdout"""
    if as_json:
        click.echo(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
        return

    versions = report.versions
    click.echo(f"加载器: {versions.loader.value}")
    click.echo(f"Minecraft 版本: {versions.minecraft_version}")
    if versions.loader_version:
        click.echo(f"加载器版本: {versions.loader_version}")
    click.echo(f"依赖 ({len(report.ordered)}):")
    for dep in report.ordered:
        version = f" @ {dep.version_id}" if dep.version_id else ""
        click.echo(
            f"  {dep.key}: {dep.project.name} "
            f"[{dep.project.platform.display_name} {dep.project.project_id}]{version}"
        )


async def run_async(
    config_path: str,
    max_jobs: Optional[int],
    cache_dir: Optional[str],
    no_cache: bool,
) -> ResolutionReport:
    """异步运行"""
    plan = await load_project_plan_async(config_path)
    resources = SystemResources.detect()

    cache = HttpCache(Path(cache_dir) if cache_dir else default_cache_dir())
    if no_cache:
        await cache.clear()

    client = PlatformClient(cache=cache)
    if not no_cache:
        await client.open()
    try:
        orchestrator = ResolutionOrchestrator(plan, client, resources, max_jobs)
        return await orchestrator.run()
    finally:
        if no_cache:
            await client.transport.close()
        else:
            await client.close()


@click.command()
@click.argument("config", type=click.Path(exists=True), default="empack.yml")
@click.option("-j", "--max-jobs", type=click.IntRange(min=1), help="最大并发解析数")
@click.option("--cache-dir", type=click.Path(file_okay=False), help="HTTP 缓存目录")
@click.option("--no-cache", is_flag=True, help="不读取也不保存磁盘缓存")
@click.option("--json", "as_json", is_flag=True, help="以 JSON 格式输出结果")
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.version_option(version="0.1.0")
def main(
    config: str,
    max_jobs: Optional[int],
    cache_dir: Optional[str],
    no_cache: bool,
    as_json: bool,
    debug: bool,
):
    """ModResolve - Minecraft 整合包依赖解析工具"""
    setup_logger(level="DEBUG" if debug else None)

    try:
        report = asyncio.run(run_async(config, max_jobs, cache_dir, no_cache))
    except ModResolveError as e:
        logger.error(f"解析失败: {e}")
        raise click.ClickException(str(e))

    for key, error in report.failures.items():
        logger.warning(f"未能解析 {key}: {error}")
    print_report(report, as_json)


if __name__ == "__main__":
    main()
