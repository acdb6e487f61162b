"""核心数据模型

构建请求、构建状态与源码包缓存条目集中定义，
CLI、流水线与各阶段服务统一从此处导入。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from kbuilder.core.exceptions import ValidationError

# 已验证可用的交叉编译组合
SUPPORTED_CROSS_ARCHES = ("arm64",)
SUPPORTED_CROSS_TOOLCHAINS = ("aarch64-linux-gnu",)


class BuildState(str, Enum):
    """流水线状态"""

    INIT = "init"
    DEPENDENCIES_INSTALLED = "dependencies_installed"
    ACQUIRED = "acquired"
    EXTRACTED = "extracted"
    CONFIGURED = "configured"
    COMPILED = "compiled"
    LOG_SAVED = "log_saved"
    ARCHIVED = "archived"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class BuildRequest:
    """一次构建请求（解析后不可变）

    jobs 为 None 时由编译阶段按 2 × CPU 数推导；
    cross_arch / cross_toolchain 必须同时给出或同时省略。
    """

    kernel_version: str
    kconfig: str = ""
    jobs: int | None = None
    tmpfs: bool = False
    keep_work_dir: bool = False
    work_dir: str = ""
    distcc_bin_dir: str = ""
    cross_arch: str = ""
    cross_toolchain: str = ""

    def __post_init__(self) -> None:
        errors = self.validate()
        if errors:
            raise ValidationError(errors[0], details=errors)

    def validate(self) -> list[str]:
        """返回全部校验错误（空列表表示合法）"""
        errors: list[str] = []
        if not self.kernel_version or not self.kernel_version.strip():
            errors.append("内核版本不能为空")
        elif "/" in self.kernel_version:
            errors.append(f"内核版本包含非法字符: {self.kernel_version}")
        if self.jobs is not None and self.jobs < 1:
            errors.append(f"并行任务数必须为正整数: {self.jobs}")
        if self.cross_arch and not self.cross_toolchain:
            errors.append("选项 '--cross-arch' 需要同时指定 '--cross-toolchain'")
        if self.cross_toolchain and not self.cross_arch:
            errors.append("选项 '--cross-toolchain' 需要同时指定 '--cross-arch'")
        if self.cross_arch and self.cross_arch not in SUPPORTED_CROSS_ARCHES:
            errors.append(f"不支持的交叉编译目标架构: {self.cross_arch}")
        if self.cross_toolchain and self.cross_toolchain not in SUPPORTED_CROSS_TOOLCHAINS:
            errors.append(f"不支持的交叉编译工具链: {self.cross_toolchain}")
        if self.distcc_bin_dir and not Path(self.distcc_bin_dir).is_dir():
            errors.append(f"目录不存在: {self.distcc_bin_dir}")
        return errors

    @property
    def cross_compiling(self) -> bool:
        return bool(self.cross_arch)

    def make_opts(self) -> list[str]:
        """传递给 make(1) 的交叉编译变量"""
        if not self.cross_compiling:
            return []
        return [f"ARCH={self.cross_arch}", f"CROSS_COMPILE={self.cross_toolchain}-"]


@dataclass(frozen=True)
class DistfilePair:
    """同一内核版本的源码包与分离签名"""

    version: str
    tarball: Path
    signature: Path

    def exists(self) -> bool:
        return self.tarball.is_file() and self.signature.is_file()
