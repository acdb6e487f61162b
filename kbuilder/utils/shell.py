"""外部命令执行 - 统一的 fail-fast 子进程调用

下载、签名校验、解压、编译、挂载等所有外部程序都经由 CommandRunner 执行:
  - 标准输出与标准错误合并写入工作目录下的临时文件
  - 返回 0: 删除临时文件，不保留输出
  - 返回非 0: 打印命令行、退出码与缩进后的输出，抛出 ExecutionError

通过 CommandExecutor 协议抽象子进程执行，测试时可注入假实现，无需 patch subprocess。
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import tempfile
import textwrap
from pathlib import Path
from typing import IO, Protocol

from kbuilder.core.exceptions import ExecutionError

logger = logging.getLogger(__name__)

# 命令无法启动时使用的退出码（与 shell 的 "command not found" 一致）
EXIT_NOT_FOUND = 127


# =========================================================================
# 命令执行器协议
# =========================================================================

class CommandExecutor(Protocol):
    """命令执行器协议 - 抽象子进程调用"""

    def execute(
        self,
        args: list[str],
        *,
        cwd: str | None,
        env: dict[str, str] | None,
        output: IO[bytes],
    ) -> int:
        """执行命令，合并输出写入 output，返回退出码"""
        ...


class LocalExecutor:
    """本地子进程执行器（默认实现）"""

    def execute(
        self,
        args: list[str],
        *,
        cwd: str | None,
        env: dict[str, str] | None,
        output: IO[bytes],
    ) -> int:
        r = subprocess.run(
            args, stdin=subprocess.DEVNULL, stdout=output,
            stderr=subprocess.STDOUT, cwd=cwd, env=env, check=False,
        )
        return r.returncode


# =========================================================================
# fail-fast 包装
# =========================================================================

class CommandRunner:
    """外部命令包装器

    参数:
        output_dir: 临时输出文件所在目录（即本次构建的工作目录）
        executor: 命令执行器，默认 LocalExecutor
        env: 追加到子进程环境的变量（如 TMPDIR），不修改当前进程环境
    """

    def __init__(
        self,
        output_dir: str | Path,
        executor: CommandExecutor | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.executor = executor or LocalExecutor()
        self.env = dict(env or {})

    def run(
        self, program: str, *args: str,
        cwd: str | Path | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        """执行命令，成功时丢弃输出"""
        log_file = self._invoke(program, list(args), cwd, env)
        log_file.unlink(missing_ok=True)

    def capture(
        self, program: str, *args: str,
        cwd: str | Path | None = None,
        env: dict[str, str] | None = None,
    ) -> str:
        """执行命令并返回合并后的输出文本"""
        log_file = self._invoke(program, list(args), cwd, env)
        try:
            return log_file.read_text(encoding="utf-8", errors="replace")
        finally:
            log_file.unlink(missing_ok=True)

    def child_env(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        """子进程环境: 当前进程环境 + 包装器变量 + 调用方变量"""
        return {**os.environ, **self.env, **(extra or {})}

    def _invoke(
        self, program: str, args: list[str],
        cwd: str | Path | None, env: dict[str, str] | None,
    ) -> Path:
        name = Path(program).name or "cmd"
        fd, tmp = tempfile.mkstemp(
            dir=str(self.output_dir), prefix=f"{name}.output.",
        )
        log_file = Path(tmp)
        argv = [program, *args]
        cmdline = shlex.join(argv)
        logger.debug("执行: %s (cwd=%s)", cmdline, cwd or os.getcwd())

        with os.fdopen(fd, "wb") as out:
            try:
                rc = self.executor.execute(
                    argv, cwd=str(cwd) if cwd is not None else None,
                    env=self.child_env(env), output=out,
                )
            except OSError as e:
                out.write(f"{e}\n".encode())
                rc = EXIT_NOT_FOUND

        if rc == 0:
            return log_file

        output = log_file.read_text(encoding="utf-8", errors="replace")
        logger.error("executed: %s", cmdline)
        logger.error("%s returned non-zero exit status %d", program, rc)
        logger.error("%s output:\n%s", program, textwrap.indent(output, "  "))
        raise ExecutionError(program, args, rc, output=output, output_file=log_file)
