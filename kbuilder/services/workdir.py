"""工作目录管理 - 单次构建独占的临时目录

目录结构:
  <tmp_dir>/kernel-builder.XXXXXXXX/
    ├── tmp/            子进程的 TMPDIR
    ├── build/linux/    源码解压目录（可选 tmpfs 挂载点）
    ├── build.log       本次构建的聚合日志
    └── *.output.*      每条外部命令的临时输出

职责:
- 创建（权限仅属主/属组可访问）
- 可选 tmpfs 挂载，记录挂载句柄供卸载使用
- 卸载、递归删除（顺序由 CleanupGuard 保证）
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kbuilder.utils.shell import CommandRunner

from kbuilder.core.exceptions import ExecutionError, StorageError, ValidationError

logger = logging.getLogger(__name__)

WORK_DIR_PREFIX = "kernel-builder."
WORK_DIR_MODE = 0o770
BUILD_DIR_MODE = 0o750
SCRATCH_MODE = 0o1777


@dataclass(frozen=True)
class MountHandle:
    """tmpfs 挂载记录，卸载时直接使用，不再扫描挂载表"""

    path: Path
    fstype: str = "tmpfs"


@dataclass
class WorkDirectory:
    """单次构建的工作目录"""

    root: Path
    mount: MountHandle | None = None

    @property
    def tmp(self) -> Path:
        return self.root / "tmp"

    @property
    def build_dir(self) -> Path:
        return self.root / "build" / "linux"

    @property
    def log_path(self) -> Path:
        return self.root / "build.log"

    @property
    def preserved_log_path(self) -> Path:
        """异常结束时日志的保留位置: <workdir>.log"""
        return self.root.with_name(self.root.name + ".log")

    def exists(self) -> bool:
        return self.root.is_dir()


class WorkDirManager:
    """工作目录生命周期管理器"""

    def __init__(self, scratch_root: str | Path) -> None:
        self.scratch_root = Path(scratch_root)

    def create(self, override: str | Path = "") -> WorkDirectory:
        """创建工作目录；指定 override 时目标路径必须不存在"""
        if override and Path(override).exists():
            raise ValidationError(f"工作目录已存在，拒绝覆盖: {override}")
        try:
            if override:
                root = Path(override)
                root.mkdir(parents=True, mode=WORK_DIR_MODE)
            else:
                self.scratch_root.mkdir(parents=True, exist_ok=True)
                root = Path(tempfile.mkdtemp(
                    prefix=WORK_DIR_PREFIX, dir=str(self.scratch_root),
                ))
            os.chmod(root, WORK_DIR_MODE)

            workdir = WorkDirectory(root=root)
            workdir.tmp.mkdir()
            os.chmod(workdir.tmp, SCRATCH_MODE)
        except OSError as e:
            raise StorageError("创建工作目录失败", e) from e
        logger.info("工作目录已创建: %s", root)
        return workdir

    def ensure_build_dir(self, workdir: WorkDirectory) -> Path:
        bd = workdir.build_dir
        if not bd.is_dir():
            bd.mkdir(parents=True, mode=BUILD_DIR_MODE)
        return bd

    def mount_scratch(
        self, workdir: WorkDirectory, runner: CommandRunner, use_tmpfs: bool,
    ) -> MountHandle | None:
        """按需在 build/linux 上挂载占满可用内存的 tmpfs

        句柄在执行 mount 之前登记，mount 返回后若收到信号，清理时仍会卸载；
        mount 失败则撤销登记。
        """
        if not use_tmpfs:
            return None
        try:
            bd = self.ensure_build_dir(workdir)
        except OSError as e:
            raise StorageError("创建构建目录失败", e) from e
        workdir.mount = MountHandle(path=bd)
        try:
            runner.run("mount", "-t", "tmpfs", "-o", "size=100%", "none", str(bd))
        except ExecutionError:
            workdir.mount = None
            raise
        logger.info("已挂载 tmpfs: %s", bd)
        return workdir.mount

    def unmount_scratch(self, workdir: WorkDirectory, runner: CommandRunner) -> None:
        if workdir.mount is None:
            return
        logger.info("卸载 %s", workdir.mount.path)
        runner.run("umount", "-f", str(workdir.mount.path))
        workdir.mount = None

    def remove(self, workdir: WorkDirectory) -> None:
        """递归删除工作目录（须先卸载）"""
        if workdir.exists():
            logger.info("删除工作目录 %s", workdir.root)
            shutil.rmtree(workdir.root)
