"""
调度器触发接口 (Scheduler Trigger API)

对外暴露调度器的启停与立即执行操作：
- 查看运行状态
- 启动 / 停止调度器
- 立即执行全部测试或单台主机的测试
- 立即执行一次数据汇总
"""
from typing import List

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from netpulse.probes.models import TestRunResult
from netpulse.services.aggregator import AggregationReport
from netpulse.tasks.scheduler import ProbeScheduler

router = APIRouter(prefix="/api/v1/scheduler", tags=["scheduler"])


class SchedulerStatusResponse(BaseModel):
    """调度器状态响应模型"""
    running: bool
    check_interval_seconds: int = Field(description="到期检查间隔（秒）")
    aggregation_hour: int = Field(description="每日汇总时间（本地小时）")


class RunResponse(BaseModel):
    """立即执行结果"""
    count: int
    results: List[TestRunResult]


def _scheduler(request: Request) -> ProbeScheduler:
    return request.app.state.scheduler


def _status(scheduler: ProbeScheduler) -> SchedulerStatusResponse:
    return SchedulerStatusResponse(
        running=scheduler.is_running(),
        check_interval_seconds=scheduler.check_interval,
        aggregation_hour=scheduler.aggregation_hour,
    )


@router.get("", response_model=SchedulerStatusResponse)
async def get_status(request: Request):
    return _status(_scheduler(request))


@router.post("/start", response_model=SchedulerStatusResponse)
async def start_scheduler(request: Request):
    """启动调度器，已运行时不做任何事。"""
    scheduler = _scheduler(request)
    await scheduler.start()
    return _status(scheduler)


@router.post("/stop", response_model=SchedulerStatusResponse)
async def stop_scheduler(request: Request):
    """停止调度器，等待当前这一轮探测完成。"""
    scheduler = _scheduler(request)
    await scheduler.stop()
    return _status(scheduler)


@router.post("/run", response_model=RunResponse)
async def run_all_now(request: Request):
    results = await _scheduler(request).run_all_now()
    return RunResponse(count=len(results), results=results)


@router.post("/hosts/{host_id}/run", response_model=RunResponse)
async def run_host_now(host_id: int, request: Request):
    """立即执行单台主机的全部启用测试。主机不存在返回 404，已停用返回空结果。"""
    results = await _scheduler(request).run_tests_for_host(host_id)
    return RunResponse(count=len(results), results=results)


@router.post("/aggregate", response_model=AggregationReport)
async def run_aggregation_now(request: Request):
    return await _scheduler(request).run_aggregation_now()
