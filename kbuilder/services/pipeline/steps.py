"""流水线步骤实现

步骤顺序:
1. install_dependencies - 安装构建依赖
2. acquire - 下载并校验源码包（已缓存则跳过）
3. extract - 从缓存解压源码
4. configure - 应用基础配置
5. compile - 编译打包并提取实际版本
6. save_log - 保存构建日志
7. archive - 归档内核包
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from kbuilder.core.models import BuildRequest
    from kbuilder.services.container import ServiceContainer
    from kbuilder.services.pipeline.models import PipelineReport

from kbuilder.core.exceptions import KernelBuilderError


class PipelineSteps:
    """构建步骤集合"""

    def __init__(self, container: ServiceContainer) -> None:
        self.c = container

    def install_dependencies(
        self, request: BuildRequest, report: PipelineReport,
    ) -> None:
        """步骤1: 安装构建依赖"""
        done = self.c.kernel.install_dependencies()
        report.record("install_dependencies", "done" if done else "skipped")

    def acquire(self, request: BuildRequest, report: PipelineReport) -> None:
        """步骤2: 获取源码包"""
        self.c.cache.ensure_dir()
        downloaded = self.c.fetcher.acquire(request.kernel_version)
        report.record(
            "acquire", "done" if downloaded else "cached",
            version=request.kernel_version,
        )

    def extract(self, request: BuildRequest, report: PipelineReport) -> None:
        """步骤3: 解压源码到工作目录"""
        tree = self.c.fetcher.extract(
            request.kernel_version, self.c.workdir.build_dir,
        )
        report.source_tree = tree
        report.record("extract", "done", source_tree=str(tree))

    def configure(self, request: BuildRequest, report: PipelineReport) -> None:
        """步骤4: 应用基础配置"""
        kconfig = self.c.kernel.configure(request, self._tree(report))
        report.record("configure", "done", kconfig=str(kconfig))

    def compile(self, request: BuildRequest, report: PipelineReport) -> None:
        """步骤5: 编译并提取实际构建版本"""
        built = self.c.kernel.compile(request, self._tree(report))
        report.built_version = built
        report.record("compile", "done", built_version=built)

    def save_log(self, request: BuildRequest, report: PipelineReport) -> None:
        """步骤6: 保存构建日志"""
        saved = self.c.logs.save(self.c.workdir.log_path)
        report.saved_log = saved
        report.record("save_log", "done", path=str(saved))

    def archive(self, request: BuildRequest, report: PipelineReport) -> None:
        """步骤7: 按实际版本归档内核包"""
        packages = self.c.archive.archive(
            report.built_version, self.c.workdir.build_dir,
        )
        report.packages = packages
        report.record("archive", "done", packages=len(packages))

    @staticmethod
    def _tree(report: PipelineReport) -> Path:
        if report.source_tree is None:
            raise KernelBuilderError("源码尚未解压")
        return report.source_tree
