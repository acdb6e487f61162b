"""退出/信号清理 - 构建入口显式持有的作用域守卫

构建期间的信号处理与工作目录清理:
  - __enter__ 安装 SIGINT/SIGTERM 处理器，收到信号即抛出 BuildInterrupted，
    与普通异常走同一条展开路径
  - __exit__ 恢复原信号处理器，并按固定顺序清理一次:
      1. 指定 keep_work_dir 时跳过全部清理
      2. 卸载已记录的 tmpfs
      3. 构建未成功时，把 build.log 移到 <workdir>.log 供事后排查
      4. 递归删除工作目录
  - 工作目录在处理器安装之后创建，经 attach 登记；未登记时不做任何清理
"""

from __future__ import annotations

import logging
import os
import signal
from types import FrameType, TracebackType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from kbuilder.services.workdir import WorkDirectory, WorkDirManager
    from kbuilder.utils.shell import CommandRunner

from kbuilder.core.exceptions import BuildInterrupted, ExecutionError

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _raise_interrupted(signum: int, frame: FrameType | None) -> None:
    raise BuildInterrupted(signum)


class CleanupGuard:
    """工作目录清理守卫"""

    def __init__(
        self,
        manager: WorkDirManager,
        workdir: WorkDirectory | None = None,
        runner: CommandRunner | None = None,
        *,
        keep_work_dir: bool = False,
    ) -> None:
        self.manager = manager
        self.workdir = workdir
        self.runner = runner
        self.keep_work_dir = keep_work_dir
        self._previous: dict[int, Any] = {}
        self._released = False

    def __enter__(self) -> CleanupGuard:
        for signum in HANDLED_SIGNALS:
            self._previous[signum] = signal.signal(signum, _raise_interrupted)
        return self

    def attach(self, workdir: WorkDirectory, runner: CommandRunner) -> None:
        """登记需要清理的工作目录（信号处理器已安装后再创建目录）"""
        self.workdir = workdir
        self.runner = runner

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        # 清理期间再收到信号直接忽略，保证清理完整执行
        for signum in HANDLED_SIGNALS:
            signal.signal(signum, signal.SIG_IGN)
        try:
            self.release(succeeded=exc_type is None)
        finally:
            for signum, handler in self._previous.items():
                signal.signal(signum, handler)
            self._previous.clear()

    @property
    def released(self) -> bool:
        return self._released

    def release(self, *, succeeded: bool) -> None:
        """执行清理（多次调用只生效一次）"""
        if self._released:
            return
        self._released = True

        if self.workdir is None or self.runner is None:
            return
        if self.keep_work_dir:
            logger.info("保留工作目录: %s", self.workdir.root)
            return
        if not self.workdir.exists():
            return

        try:
            self.manager.unmount_scratch(self.workdir, self.runner)
        except ExecutionError:
            logger.error("卸载失败: %s", self.workdir.mount)

        logger.info("清理中...")
        log_path = self.workdir.log_path
        if not succeeded and log_path.is_file():
            target = self.workdir.preserved_log_path
            logger.info("保留 build.log 为 %s", target)
            try:
                os.replace(log_path, target)
            except OSError as e:
                logger.error("保留 build.log 失败 %s: %s", target, e)

        try:
            self.manager.remove(self.workdir)
        except OSError as e:
            logger.error("删除工作目录失败 %s: %s", self.workdir.root, e)
