"""统一异常体系

所有业务异常继承 KernelBuilderError，CLI 层据此输出友好提示并以状态码 1 退出。

两级错误:
  - 前置条件错误: 配置缺失、缓存文件缺失、参数组合非法等，不执行任何后续工作
  - 执行错误: 外部命令返回非零，附带该命令的完整输出，从不自动重试
"""

from __future__ import annotations

from pathlib import Path


class KernelBuilderError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(KernelBuilderError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(KernelBuilderError):
    """构建请求校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class DistfileError(KernelBuilderError):
    """源码包缓存缺失"""

    code = "DISTFILE_ERROR"


class ArchiveError(KernelBuilderError):
    """产物归档目录冲突或不可写"""

    code = "ARCHIVE_ERROR"


class StorageError(KernelBuilderError):
    """进程内文件系统操作失败（创建目录、复制、移动、改权限）"""

    code = "STORAGE_ERROR"

    def __init__(self, action: str, error: OSError) -> None:
        super().__init__(f"{action}: {error}")
        self.action = action
        self.errno = error.errno


class VersionError(KernelBuilderError):
    """无法从编译产物中解析内核版本"""

    code = "VERSION_ERROR"


class ExecutionError(KernelBuilderError):
    """外部命令执行失败"""

    code = "EXECUTION_ERROR"

    def __init__(
        self,
        program: str,
        args: list[str],
        returncode: int,
        output: str = "",
        output_file: Path | None = None,
    ) -> None:
        super().__init__(f"{program} 执行失败 (rc={returncode})")
        self.program = program
        self.argv = args
        self.returncode = returncode
        self.output = output
        self.output_file = output_file


class BuildInterrupted(KernelBuilderError):
    """收到中断/终止信号"""

    code = "INTERRUPTED"

    def __init__(self, signum: int) -> None:
        super().__init__(f"收到信号 {signum}，构建中止")
        self.signum = signum
