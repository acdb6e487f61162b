"""构建服务 - 单次内核构建的顶层入口

资源生命周期:
  CleanupGuard（信号处理 + 保证清理）→ 创建工作目录并登记到守卫
    → RunLog（控制台 + build.log）→ 按需挂载 tmpfs
      → Orchestrator 执行 7 步流水线

CleanupGuard 由本入口构造并持有，任何退出路径（正常返回、异常、
SIGINT/SIGTERM）都经由它的 __exit__ 完成卸载、日志保留与目录删除。
"""

from __future__ import annotations

import logging

from kbuilder.core.config import Config
from kbuilder.core.models import BuildRequest
from kbuilder.services.cleanup import CleanupGuard
from kbuilder.services.container import ServiceContainer
from kbuilder.services.pipeline import Orchestrator, PipelineReport
from kbuilder.services.workdir import WorkDirManager
from kbuilder.utils.logger import RunLog
from kbuilder.utils.shell import CommandExecutor, CommandRunner

logger = logging.getLogger(__name__)


class BuildService:
    """内核构建服务"""

    def __init__(
        self,
        config: Config,
        executor: CommandExecutor | None = None,
        *,
        json_logs: bool = False,
    ) -> None:
        self.config = config
        self.executor = executor
        self.json_logs = json_logs
        self.workdirs = WorkDirManager(config.tmp_dir)

    def run(self, request: BuildRequest) -> PipelineReport:
        """执行一次完整构建，失败时抛出 KernelBuilderError"""
        report = PipelineReport(request=request)

        with CleanupGuard(
            self.workdirs, keep_work_dir=request.keep_work_dir,
        ) as guard:
            workdir = self.workdirs.create(request.work_dir)
            runner = CommandRunner(
                workdir.root, self.executor, env={"TMPDIR": str(workdir.tmp)},
            )
            guard.attach(workdir, runner)
            with RunLog(workdir.log_path, json_output=self.json_logs):
                logger.info("工作目录: %s", workdir.root)
                self.workdirs.mount_scratch(workdir, runner, request.tmpfs)
                container = ServiceContainer(self.config, workdir, runner)
                Orchestrator(container).run(request, report)
        return report
