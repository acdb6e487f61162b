"""kernel-builder 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import os
from typing import NoReturn

import click

from kbuilder import __version__
from kbuilder.core.config import DEFAULT_CONFIG_FILE, Config
from kbuilder.core.exceptions import ConfigError, KernelBuilderError
from kbuilder.utils.logger import setup_logging

PROG = "kernel-builder"


def fail(e: KernelBuilderError) -> NoReturn:
    """输出错误并以状态码 1 退出"""
    click.echo(f"{PROG}: error: {e}", err=True)
    for detail in getattr(e, "details", [])[1:]:
        click.echo(f"{PROG}: error: {detail}", err=True)
    raise SystemExit(1)


def get_config(ctx: click.Context) -> Config:
    return ctx.obj["config"]


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config-file",
    envvar="KBUILDER_CONFIG",
    default=None,
    help=f"配置文件路径（默认 {DEFAULT_CONFIG_FILE}，不存在时使用内置缺省值）",
)
@click.pass_context
def main(ctx: click.Context, config_file: str | None) -> None:
    """kernel-builder - 从上游源码构建 Debian 内核包"""
    json_logs = os.getenv("KBUILDER_LOG_JSON", "") == "1"
    setup_logging(
        level=os.getenv("KBUILDER_LOG_LEVEL", "INFO"),
        json_output=json_logs,
    )
    ctx.ensure_object(dict)
    try:
        if config_file and not os.path.isfile(config_file):
            raise ConfigError(f"配置文件不存在: {config_file}")
        ctx.obj["config"] = Config.from_file(config_file or DEFAULT_CONFIG_FILE)
    except KernelBuilderError as e:
        fail(e)
    ctx.obj["json_logs"] = json_logs


# 注册各领域子命令
from kbuilder.cli.build import register_commands as _reg_build  # noqa: E402
from kbuilder.cli.store import register_commands as _reg_store  # noqa: E402

_reg_build(main)
_reg_store(main)
