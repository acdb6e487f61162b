"""构建编排器 - 严格顺序执行 7 步流水线

状态迁移:
  init → dependencies_installed → acquired → extracted → configured
       → compiled → log_saved → archived → done
任一步骤失败即进入 failed，记录失败步骤后向上抛出；不重试、不产生部分归档。
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from kbuilder.core.exceptions import StorageError
from kbuilder.core.models import BuildRequest, BuildState
from kbuilder.services.container import ServiceContainer
from kbuilder.services.pipeline.models import PipelineReport
from kbuilder.services.pipeline.steps import PipelineSteps

logger = logging.getLogger(__name__)

Step = Callable[[BuildRequest, PipelineReport], None]


class Orchestrator:
    """构建流水线编排器"""

    def __init__(self, container: ServiceContainer) -> None:
        self.c = container
        self.steps = PipelineSteps(container)

    def stages(self) -> list[tuple[str, Step, BuildState]]:
        s = self.steps
        return [
            ("install_dependencies", s.install_dependencies, BuildState.DEPENDENCIES_INSTALLED),
            ("acquire", s.acquire, BuildState.ACQUIRED),
            ("extract", s.extract, BuildState.EXTRACTED),
            ("configure", s.configure, BuildState.CONFIGURED),
            ("compile", s.compile, BuildState.COMPILED),
            ("save_log", s.save_log, BuildState.LOG_SAVED),
            ("archive", s.archive, BuildState.ARCHIVED),
        ]

    def run(
        self, request: BuildRequest, report: PipelineReport | None = None,
    ) -> PipelineReport:
        """执行流水线，失败时将 report 置为 failed 并抛出异常（OSError 转为 StorageError）"""
        if report is None:
            report = PipelineReport(request=request)
        logger.info("构建内核 %s", request.kernel_version)

        for index, (name, step, reached) in enumerate(self.stages(), start=1):
            try:
                self._call(name, step, request, report)
            except Exception as e:
                report.state = BuildState.FAILED
                report.error = str(e)
                report.record(name, "failed", error=str(e))
                logger.error("[Step %d] %s 失败: %s", index, name, e)
                raise
            report.state = reached
            logger.debug("[Step %d] %s 完成", index, name)

        report.state = BuildState.DONE
        logger.info(
            "构建完成: %s → %s (%d 个包)",
            request.kernel_version, report.built_version, len(report.packages),
        )
        return report

    @staticmethod
    def _call(
        name: str, step: Step, request: BuildRequest, report: PipelineReport,
    ) -> None:
        """执行单个步骤，进程内文件系统错误统一转为 StorageError"""
        try:
            step(request, report)
        except OSError as e:
            raise StorageError(f"{name} 文件操作失败", e) from e
