"""源码包获取与缓存

职责:
- 源码包缓存（linux-<version>.tar.xz + linux-<version>.tar.sign）
- 下载（私有临时名 → 原子 rename，避免半截文件被误认为完整）
- 解压 xz 后校验 gpg 分离签名
- 从缓存解压源码到工作目录

缓存策略:
  - 两个文件同时存在即视为已缓存，直接跳过网络访问与校验
  - 命中缓存时不重新校验内容或签名
  - 签名校验失败时缓存中不落任何文件
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kbuilder.core.config import Config
    from kbuilder.utils.shell import CommandRunner

from kbuilder.core.exceptions import DistfileError, ExecutionError
from kbuilder.core.models import DistfilePair
from kbuilder.services.workdir import BUILD_DIR_MODE
from kbuilder.utils.net import mirror_url

logger = logging.getLogger(__name__)

DISTFILE_DIR_MODE = 0o750


def tarball_name(version: str) -> str:
    return f"linux-{version}.tar.xz"


def signature_name(version: str) -> str:
    return f"linux-{version}.tar.sign"


class DistfileCache:
    """持久化源码包缓存"""

    def __init__(self, cache_dir: str | Path) -> None:
        self.cache_dir = Path(cache_dir)

    def ensure_dir(self) -> None:
        if not self.cache_dir.is_dir():
            self.cache_dir.mkdir(parents=True, mode=DISTFILE_DIR_MODE)

    def paths(self, version: str) -> DistfilePair:
        return DistfilePair(
            version=version,
            tarball=self.cache_dir / tarball_name(version),
            signature=self.cache_dir / signature_name(version),
        )

    def is_cached(self, version: str) -> bool:
        """源码包与签名都存在才算命中"""
        return self.paths(version).exists()

    def store(self, version: str, tarball: Path, signature: Path) -> DistfilePair:
        """把已校验的文件移入缓存

        先复制到缓存目录内的临时名再 os.replace，跨文件系统时也不会留下半截文件。
        """
        self.ensure_dir()
        pair = self.paths(version)
        for src, dest in ((signature, pair.signature), (tarball, pair.tarball)):
            fd, tmp = tempfile.mkstemp(dir=str(self.cache_dir), prefix=".incoming.")
            os.close(fd)
            try:
                shutil.move(str(src), tmp)
                os.replace(tmp, dest)
            except Exception:
                Path(tmp).unlink(missing_ok=True)
                raise
        logger.info("已缓存: %s", pair.tarball.name)
        return pair

    def list_versions(self) -> list[str]:
        """列出已完整缓存的版本"""
        if not self.cache_dir.is_dir():
            return []
        versions = []
        for p in sorted(self.cache_dir.glob("linux-*.tar.xz")):
            version = p.name[len("linux-"):-len(".tar.xz")]
            if self.is_cached(version):
                versions.append(version)
        return versions

    def remove(self, version: str) -> bool:
        """删除指定版本的缓存文件，返回是否删除了任何文件"""
        pair = self.paths(version)
        removed = False
        for p in (pair.tarball, pair.signature):
            if p.exists():
                p.unlink()
                removed = True
        if removed:
            logger.info("已删除缓存: linux-%s", version)
        return removed


class TarballFetcher:
    """源码包下载、校验与解压"""

    def __init__(
        self,
        config: Config,
        cache: DistfileCache,
        runner: CommandRunner,
        work_root: str | Path,
    ) -> None:
        self.config = config
        self.cache = cache
        self.runner = runner
        self.work_root = Path(work_root)

    def url_for(self, version: str, filename: str) -> str:
        """<mirror>/v<major>.x/<filename>"""
        major = version.split(".", 1)[0]
        return mirror_url(
            self.config.korg_url, f"v{major}.x", filename, context="korg_url",
        )

    def acquire(self, version: str) -> bool:
        """确保缓存中有已校验的源码包，返回是否实际执行了下载"""
        if self.cache.is_cached(version):
            logger.info("缓存命中，跳过下载: linux-%s", version)
            return False

        for filename in (signature_name(version), tarball_name(version)):
            self._download(self.url_for(version, filename), self.work_root / filename)

        tz = self.work_root / tarball_name(version)
        tb = tz.with_suffix("")
        ts = self.work_root / signature_name(version)

        logger.info(">> 解压 %s", tz)
        self.runner.run("unxz", "-d", "-k", str(tz), cwd=self.work_root)

        if self.config.gpg_recv_keys:
            self._recv_keys()

        logger.info(">> 校验 gpg2 签名: %s", tb)
        self.runner.run("gpg2", "--verify", str(ts), str(tb), cwd=self.work_root)

        logger.info(">> 移动已下载文件到 %s", self.cache.cache_dir)
        self.cache.store(version, tz, ts)
        tb.unlink(missing_ok=True)
        return True

    def _download(self, url: str, dest: Path) -> None:
        fd, tmp = tempfile.mkstemp(dir=str(self.work_root), prefix="download.")
        os.close(fd)
        logger.info(">> 下载 %s", url)
        try:
            self.runner.run(
                "wget", "--quiet", "--output-document", tmp, url,
                cwd=self.work_root,
            )
        except ExecutionError:
            Path(tmp).unlink(missing_ok=True)
            raise
        os.replace(tmp, dest)

    def _recv_keys(self) -> None:
        """从 keyserver 导入公钥（尽力而为，失败只告警）"""
        for key in self.config.gpg_recv_keys:
            try:
                self.runner.run(
                    "gpg2", "--keyserver", self.config.gpg_keyserver,
                    "--recv-keys", key,
                )
            except ExecutionError as e:
                logger.warning("导入公钥失败 %s (rc=%d)", key, e.returncode)

    def extract(self, version: str, build_dir: str | Path) -> Path:
        """从缓存解压源码到 build_dir，返回源码树路径"""
        pair = self.cache.paths(version)
        for p in (pair.signature, pair.tarball):
            if not p.is_file():
                raise DistfileError(f"源码包缓存不存在: {p}")

        logger.info(">> 解压缓存 %s", pair.tarball)
        bd = Path(build_dir)
        if not bd.is_dir():
            bd.mkdir(parents=True, mode=BUILD_DIR_MODE)
        self.runner.run("tar", "Jxf", str(pair.tarball), "-C", str(bd))
        return bd / f"linux-{version}"
