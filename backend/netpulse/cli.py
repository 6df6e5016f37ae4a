"""
NetPulse 命令行入口模块。

提供 CLI 命令：serve（启动 API 与调度器）、run-now（立即执行全部测试）、
aggregate（立即执行一次数据汇总）。
"""
import asyncio
import logging
import sys

import click

from netpulse import __version__
from netpulse.core.config import settings
from netpulse.core.logging_config import configure_logging


async def _prepare_store():
    """建表并写入缺失的默认设置。"""
    from netpulse.core.database import Base, async_session, engine
    from netpulse.services.settings_store import SettingsService
    import netpulse.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with async_session() as db:
        await SettingsService(db).ensure_defaults()


async def _run_now():
    from netpulse.core.database import engine
    from netpulse.main import build_scheduler

    try:
        await _prepare_store()
        return await build_scheduler().run_all_now()
    finally:
        await engine.dispose()


async def _aggregate():
    from netpulse.core.database import engine
    from netpulse.main import build_scheduler

    try:
        await _prepare_store()
        return await build_scheduler().run_aggregation_now()
    finally:
        await engine.dispose()


@click.group(invoke_without_command=True)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, verbose):
    """NetPulse - 网络可达性与延迟监测。"""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    configure_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_dir=settings.log_dir,
        rotation_period=settings.log_rotation_period,
        retention_count=settings.log_retention_count,
    )

    if ctx.invoked_subcommand is None:
        click.echo(f"NetPulse v{__version__}")
        click.echo("Use --help for available commands")


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
def serve(host, port):
    """启动 API 服务，调度器随应用生命周期启动。"""
    import uvicorn

    uvicorn.run("netpulse.main:app", host=host, port=port, log_config=None)


@cli.command("run-now")
def run_now():
    """立即执行所有启用的测试并输出结果。"""
    logger = logging.getLogger("netpulse")
    try:
        results = asyncio.run(_run_now())
    except Exception:
        logger.exception("Manual run failed")
        sys.exit(1)

    for r in results:
        click.echo(f"{r.host_name} [{r.label}]: {r.outcome.summary()}")
    click.echo(f"Tested {len(results)} tests")


@cli.command()
def aggregate():
    """立即执行一次数据汇总并输出各步统计。"""
    logger = logging.getLogger("netpulse")
    try:
        report = asyncio.run(_aggregate())
    except Exception:
        logger.exception("Aggregation failed")
        sys.exit(1)

    for key, value in report.model_dump(exclude={"failed_steps"}).items():
        click.echo(f"{key}: {value}")
    if report.failed_steps:
        click.echo(f"Failed steps: {', '.join(report.failed_steps)}", err=True)
        sys.exit(1)


def main():
    """CLI 入口函数。"""
    cli()


if __name__ == "__main__":
    main()
