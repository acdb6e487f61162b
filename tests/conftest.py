"""共享 fixture - 假命令执行器 + 模拟内核工具链

整体思路:
  CommandRunner 通过 CommandExecutor 协议调用外部程序，
  测试注入 FakeExecutor，按程序名分派到模拟处理函数，
  无需网络、root、gpg、make 或 tmpfs。

模拟的工具链:
  wget     → 向 --output-document 写入占位内容
  unxz     → 在同目录生成去掉 .xz 后缀的 tar 文件
  gpg2     → 成功（可替换为失败）
  tar      → 在 -C 目录下创建 linux-<version>/ 源码树
  make     → bindeb-pkg 时在源码树上级目录生成 .deb
  strings  → 输出带 "Linux version" 横幅的文本
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from kbuilder.core.config import Config

Handler = Callable[..., Any]

BUILT_VERSION = "6.1.0-kb1"
PACKAGES = (
    f"linux-image-{BUILT_VERSION}_6.1.0-kb1-1_amd64.deb",
    f"linux-headers-{BUILT_VERSION}_6.1.0-kb1-1_amd64.deb",
)


class FakeExecutor:
    """记录调用并按程序名分派的假执行器"""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.cwds: list[str | None] = []
        self.envs: list[dict[str, str] | None] = []
        self.handlers: dict[str, Handler] = {}

    def on(self, program: str, handler: Handler) -> None:
        self.handlers[program] = handler

    def fail(self, program: str, rc: int = 1, output: str = "") -> None:
        def _handler(args, cwd, out):
            out.write(output.encode())
            return rc
        self.on(program, _handler)

    def execute(self, args, *, cwd, env, output) -> int:
        self.calls.append(list(args))
        self.cwds.append(cwd)
        self.envs.append(env)
        handler = self.handlers.get(Path(args[0]).name)
        if handler is None:
            return 0
        rc = handler(list(args), cwd, output)
        return 0 if rc is None else rc

    def programs(self) -> list[str]:
        return [c[0] for c in self.calls]

    def calls_to(self, program: str) -> list[list[str]]:
        return [c for c in self.calls if c[0] == program]


def _wget(args, cwd, out):
    dest = Path(args[args.index("--output-document") + 1])
    dest.write_bytes(f"payload of {args[-1]}\n".encode())


def _unxz(args, cwd, out):
    src = Path(args[-1])
    src.with_suffix("").write_bytes(src.read_bytes())


def _tar(args, cwd, out):
    tarball = Path(args[2])
    version = tarball.name[len("linux-"):-len(".tar.xz")]
    tree = Path(args[args.index("-C") + 1]) / f"linux-{version}"
    tree.mkdir(parents=True)
    (tree / "Makefile").write_text("# kernel\n")


def _make(args, cwd, out):
    out.write(b"  CC      init/main.o\n")
    if "bindeb-pkg" in args:
        tree = Path(cwd)
        (tree / "vmlinux").write_bytes(b"\x7fELF")
        for name in PACKAGES:
            (tree.parent / name).write_bytes(b"!<arch>\n")
        (tree.parent / "linux-upstream_6.1.0-kb1-1_amd64.buildinfo").write_text("")


def _strings(args, cwd, out):
    out.write(
        b"GCC: (Debian 12.2.0-14) 12.2.0\n"
        b"Linux version " + BUILT_VERSION.encode()
        + b" (builder@host) (gcc (Debian 12.2.0-14) 12.2.0) #1 SMP\n"
    )


@pytest.fixture()
def fake_executor() -> FakeExecutor:
    """空的假执行器 - 所有命令返回 0"""
    return FakeExecutor()


@pytest.fixture()
def toolchain(fake_executor: FakeExecutor) -> FakeExecutor:
    """装配了模拟内核工具链的假执行器"""
    fake_executor.on("wget", _wget)
    fake_executor.on("unxz", _unxz)
    fake_executor.on("tar", _tar)
    fake_executor.on("make", _make)
    fake_executor.on("strings", _strings)
    fake_executor.on("aarch64-linux-gnu-strings", _strings)
    return fake_executor


@pytest.fixture()
def config(tmp_path: Path) -> Config:
    """指向 tmp_path 的配置，默认不安装依赖"""
    return Config(
        korg_url="https://mirror.example.org/pub/linux/kernel",
        tmp_dir=str(tmp_path / "scratch"),
        log_dir=str(tmp_path / "logs"),
        distfile_dir=str(tmp_path / "distfiles"),
        deb_dir=str(tmp_path / "debs"),
        install_dependencies=False,
    )


@pytest.fixture()
def kconfig(tmp_path: Path) -> Path:
    p = tmp_path / "config-6.1.0-base"
    p.write_text("CONFIG_64BIT=y\n")
    return p
