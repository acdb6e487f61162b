"""服务容器 - 单次构建内各阶段服务的统一装配

依赖关系图（→ 表示依赖）:
  fetcher  → cache, runner, workdir
  kernel   → runner
  archive / logs 为独立实例

容器持有本次构建的 Config、WorkDirectory 与 CommandRunner，
各服务懒加载并在容器内共享；测试时可整体替换为 MagicMock。
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kbuilder.core.config import Config
    from kbuilder.services.archive import ArtifactArchive, LogStore
    from kbuilder.services.distfiles import DistfileCache, TarballFetcher
    from kbuilder.services.kernel import KernelBuilder
    from kbuilder.services.workdir import WorkDirectory
    from kbuilder.utils.shell import CommandRunner


class ServiceContainer:
    """懒加载服务容器"""

    def __init__(
        self, config: Config, workdir: WorkDirectory, runner: CommandRunner,
    ) -> None:
        self.config = config
        self.workdir = workdir
        self.runner = runner
        self._instances: dict[str, object] = {}

    @property
    def cache(self) -> DistfileCache:
        if "cache" not in self._instances:
            from kbuilder.services.distfiles import DistfileCache
            self._instances["cache"] = DistfileCache(self.config.distfile_dir)
        return self._instances["cache"]  # type: ignore[return-value]

    @property
    def fetcher(self) -> TarballFetcher:
        if "fetcher" not in self._instances:
            from kbuilder.services.distfiles import TarballFetcher
            self._instances["fetcher"] = TarballFetcher(
                self.config, self.cache, self.runner, self.workdir.root,
            )
        return self._instances["fetcher"]  # type: ignore[return-value]

    @property
    def kernel(self) -> KernelBuilder:
        if "kernel" not in self._instances:
            from kbuilder.services.kernel import KernelBuilder
            self._instances["kernel"] = KernelBuilder(self.config, self.runner)
        return self._instances["kernel"]  # type: ignore[return-value]

    @property
    def archive(self) -> ArtifactArchive:
        if "archive" not in self._instances:
            from kbuilder.services.archive import ArtifactArchive
            self._instances["archive"] = ArtifactArchive(
                self.config.deb_dir, self.config.package_glob,
            )
        return self._instances["archive"]  # type: ignore[return-value]

    @property
    def logs(self) -> LogStore:
        if "logs" not in self._instances:
            from kbuilder.services.archive import LogStore
            self._instances["logs"] = LogStore(self.config.log_dir)
        return self._instances["logs"]  # type: ignore[return-value]
