"""构建命令"""

import click

from kbuilder.core.exceptions import KernelBuilderError
from kbuilder.core.models import BuildRequest
from kbuilder.services.build_service import BuildService


def register_commands(main: click.Group) -> None:
    """注册构建相关命令"""
    main.add_command(build)


@click.command()
@click.argument("kernel_version")
@click.option("--kconfig", default="", help="基础 .config 路径（默认 /boot/config-$(uname -r)）")
@click.option("--work-dir", default="", help="工作目录路径（必须不存在）")
@click.option("--tmpfs", is_flag=True, help="在 tmpfs 中编译")
@click.option("--keep-work-dir", is_flag=True, help="结束后保留工作目录")
@click.option("-j", "--jobs", type=click.IntRange(min=1), default=None,
              help="make 并行任务数（默认 2 × CPU 数）")
@click.option("--distcc-bin-dir", default="", help="distcc 编译器目录（如 /usr/lib/distcc）")
@click.option("--cross-arch", default="", help="交叉编译目标架构（如 arm64）")
@click.option("--cross-toolchain", default="", help="交叉编译工具链（如 aarch64-linux-gnu）")
@click.pass_context
def build(
    ctx: click.Context, kernel_version: str, kconfig: str, work_dir: str,
    tmpfs: bool, keep_work_dir: bool, jobs: int | None, distcc_bin_dir: str,
    cross_arch: str, cross_toolchain: str,
) -> None:
    """下载、校验、编译并归档指定版本的内核"""
    from kbuilder.cli import fail, get_config

    try:
        request = BuildRequest(
            kernel_version=kernel_version, kconfig=kconfig, jobs=jobs,
            tmpfs=tmpfs, keep_work_dir=keep_work_dir, work_dir=work_dir,
            distcc_bin_dir=distcc_bin_dir, cross_arch=cross_arch,
            cross_toolchain=cross_toolchain,
        )
        svc = BuildService(get_config(ctx), json_logs=ctx.obj["json_logs"])
        report = svc.run(request)
    except KernelBuilderError as e:
        fail(e)

    click.echo(f"构建成功: {kernel_version} -> {report.built_version}")
    for pkg in report.packages:
        click.echo(f"  {pkg}")
    if report.saved_log:
        click.echo(f"构建日志: {report.saved_log}")
