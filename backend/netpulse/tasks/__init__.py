"""后台任务：探测调度器。"""
