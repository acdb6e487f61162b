"""产物归档与构建日志保存

归档:
  - 目标目录 <deb_dir>/<built_version>，键为 vmlinux 中提取的实际版本，
    而非命令行传入的版本（两者可能因本地后缀不同而不一致）
  - 目录已存在即失败，不合并、不覆盖同版本的重复构建
  - 仅移动构建输出根目录下第一层的包文件

日志:
  - 成功的构建日志保存为 <log_dir>/build-<YYYYMMDD>-<NNN>
  - NNN 为当天第一个未被占用的三位计数，从 000 开始
"""

from __future__ import annotations

import logging
import os
import shutil
from datetime import date
from pathlib import Path

from kbuilder.core.exceptions import ArchiveError

logger = logging.getLogger(__name__)

STORE_DIR_MODE = 0o750
LOG_FILE_MODE = 0o640
LOG_PREFIX = "build-"


def _ensure_dir(path: Path) -> None:
    if not path.is_dir():
        path.mkdir(parents=True, mode=STORE_DIR_MODE)


class ArtifactArchive:
    """内核包归档"""

    def __init__(self, deb_dir: str | Path, package_glob: str = "*.deb") -> None:
        self.deb_dir = Path(deb_dir)
        self.package_glob = package_glob

    def archive(self, built_version: str, build_root: str | Path) -> list[Path]:
        """把 build_root 下的包文件移动到 <deb_dir>/<built_version>/"""
        if not built_version or "/" in built_version:
            raise ArchiveError(f"非法的构建版本: {built_version!r}")
        _ensure_dir(self.deb_dir)
        target = self.deb_dir / built_version
        try:
            target.mkdir()
        except FileExistsError as e:
            raise ArchiveError(f"归档目录已存在: {target}") from e

        logger.info(">> 归档内核包 %s 到 %s", built_version, target)
        moved: list[Path] = []
        try:
            for pkg in sorted(Path(build_root).glob(self.package_glob)):
                if not pkg.is_file():
                    continue
                dest = target / pkg.name
                shutil.move(str(pkg), str(dest))
                moved.append(dest)
                logger.info("  %s", pkg.name)
        except OSError as e:
            self._rollback(target, moved, Path(build_root))
            raise ArchiveError(f"归档失败 {target}: {e}") from e
        if not moved:
            logger.warning("未找到内核包: %s/%s", build_root, self.package_glob)
        return moved

    @staticmethod
    def _rollback(target: Path, moved: list[Path], build_root: Path) -> None:
        """移回已归档的文件并删除目标目录，失败的构建不留下归档目录"""
        for dest in moved:
            shutil.move(str(dest), str(build_root / dest.name))
        shutil.rmtree(target)
        logger.error("归档已回滚: %s", target)

    def list_versions(self) -> list[str]:
        if not self.deb_dir.is_dir():
            return []
        return sorted(p.name for p in self.deb_dir.iterdir() if p.is_dir())


class LogStore:
    """持久化构建日志存储"""

    def __init__(self, log_dir: str | Path) -> None:
        self.log_dir = Path(log_dir)

    def next_log_id(self, day: date | None = None) -> str:
        """当天第一个未占用的日志编号"""
        stamp = (day or date.today()).strftime("%Y%m%d")
        counter = 0
        while (self.log_dir / f"{LOG_PREFIX}{stamp}-{counter:03d}").exists():
            counter += 1
        return f"{stamp}-{counter:03d}"

    def save(self, run_log: str | Path, day: date | None = None) -> Path:
        """复制本次构建日志到日志目录，权限 0640"""
        _ensure_dir(self.log_dir)
        dest = self.log_dir / f"{LOG_PREFIX}{self.next_log_id(day)}"
        logger.info(">> 保存构建日志到 %s", dest)
        shutil.copyfile(run_log, dest)
        os.chmod(dest, LOG_FILE_MODE)
        return dest

    def list_logs(self) -> list[Path]:
        if not self.log_dir.is_dir():
            return []
        return sorted(
            p for p in self.log_dir.iterdir()
            if p.is_file() and p.name.startswith(LOG_PREFIX)
        )
