"""内核配置与编译

职责:
- 安装构建依赖 (apt-get)
- 解析基础 .config（显式路径，或当前运行内核的 /boot/config-<release>）
- make olddefconfig: 新增配置项一律取默认值
- make -j<N> bindeb-pkg，可选 ccache / distcc 路径与交叉编译变量
- 从 vmlinux 的版本横幅中提取实际构建版本（归档以此为键）
"""

from __future__ import annotations

import logging
import os
import platform
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kbuilder.core.config import Config
    from kbuilder.utils.shell import CommandRunner

from kbuilder.core.exceptions import ConfigError, VersionError
from kbuilder.core.models import BuildRequest

logger = logging.getLogger(__name__)

VERSION_BANNER = "Linux version "


def resolve_kconfig(request: BuildRequest, running_release: str = "") -> Path:
    """解析基础配置文件路径，不存在则报错"""
    if request.kconfig:
        path = Path(request.kconfig)
    else:
        path = Path("/boot") / f"config-{running_release or platform.release()}"
    if not path.is_file():
        raise ConfigError(f"内核 .config 文件不存在: {path}")
    return path


def resolve_jobs(request: BuildRequest, cpu_count: int | None = None) -> int:
    """并行度: 显式指定，否则为 2 × CPU 数"""
    if request.jobs:
        return request.jobs
    ncpu = cpu_count or os.cpu_count() or 1
    return ncpu * 2


def parse_version_banner(text: str) -> str:
    """从 strings(1) 输出中取 'Linux version <X> ...' 的 X"""
    for line in text.splitlines():
        if line.startswith(VERSION_BANNER):
            fields = line.split()
            if len(fields) >= 3:
                return fields[2]
    return ""


class KernelBuilder:
    """内核配置与编译执行器"""

    def __init__(self, config: Config, runner: CommandRunner) -> None:
        self.config = config
        self.runner = runner

    def install_dependencies(self) -> bool:
        """安装构建依赖，返回是否执行了安装"""
        packages = self.config.build_dependencies
        if not self.config.install_dependencies or not packages:
            logger.info("跳过构建依赖安装")
            return False
        logger.info(">> 安装构建依赖")
        self.runner.run(
            "apt-get", "install", "-y", *packages,
            env={"DEBIAN_FRONTEND": "noninteractive"},
        )
        return True

    def configure(self, request: BuildRequest, source_tree: str | Path) -> Path:
        """复制基础配置到源码树并补齐新增配置项"""
        kconfig = resolve_kconfig(request)
        tree = Path(source_tree)
        logger.info(">> 配置内核 %s (基础配置 %s)", request.kernel_version, kconfig)
        shutil.copyfile(kconfig, tree / ".config")
        self.runner.run("make", "olddefconfig", *request.make_opts(), cwd=tree)
        return kconfig

    def build_env(self, request: BuildRequest) -> dict[str, str]:
        """编译环境: PATH 前置 ccache，再前置 distcc"""
        path = [self.config.ccache_bin_dir] if self.config.ccache_bin_dir else []
        if request.distcc_bin_dir:
            path.insert(0, request.distcc_bin_dir)
        path.append(os.environ.get("PATH", os.defpath))
        return {"PATH": os.pathsep.join(path)}

    def compile(
        self, request: BuildRequest, source_tree: str | Path,
        cpu_count: int | None = None,
    ) -> str:
        """编译并打包，返回从 vmlinux 提取的实际版本"""
        tree = Path(source_tree)
        jobs = resolve_jobs(request, cpu_count)
        logger.info(">> 编译内核 %s (-j%d)", request.kernel_version, jobs)
        self.runner.run(
            "make", f"-j{jobs}", *request.make_opts(), self.config.make_target,
            cwd=tree, env=self.build_env(request),
        )
        built = self.extract_version(request, tree)
        logger.info("构建版本: %s", built)
        return built

    def extract_version(self, request: BuildRequest, source_tree: str | Path) -> str:
        tree = Path(source_tree)
        strings = "strings"
        if request.cross_compiling:
            strings = f"{request.cross_toolchain}-strings"
        text = self.runner.capture(strings, "vmlinux", cwd=tree)
        built = parse_version_banner(text)
        if not built:
            raise VersionError(f"无法从构建产物中提取版本: {tree / 'vmlinux'}")
        return built
