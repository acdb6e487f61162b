"""持久化存储查看命令：源码包缓存、构建日志、已归档内核包"""

import click

from kbuilder.services.archive import ArtifactArchive, LogStore
from kbuilder.services.distfiles import DistfileCache


def register_commands(main: click.Group) -> None:
    """注册存储相关命令"""
    main.add_command(distfiles_group)
    main.add_command(logs_group)
    main.add_command(debs_group)


# =========================================================================
# 源码包缓存
# =========================================================================


@click.group(name="distfiles")
def distfiles_group() -> None:
    """源码包缓存管理"""


@distfiles_group.command(name="list")
@click.pass_context
def distfiles_list(ctx: click.Context) -> None:
    """列出已完整缓存的内核版本"""
    from kbuilder.cli import get_config

    cache = DistfileCache(get_config(ctx).distfile_dir)
    versions = cache.list_versions()
    if not versions:
        click.echo("没有已缓存的源码包。")
        return
    for v in versions:
        click.echo(f"  {v:20s} {cache.paths(v).tarball}")


@distfiles_group.command(name="remove")
@click.argument("version")
@click.pass_context
def distfiles_remove(ctx: click.Context, version: str) -> None:
    """删除指定版本的缓存源码包"""
    from kbuilder.cli import get_config

    cache = DistfileCache(get_config(ctx).distfile_dir)
    if cache.remove(version):
        click.echo(f"缓存已删除: linux-{version}")
    else:
        click.echo(f"缓存不存在: linux-{version}")


# =========================================================================
# 构建日志
# =========================================================================


@click.group(name="logs")
def logs_group() -> None:
    """构建日志查看"""


@logs_group.command(name="list")
@click.pass_context
def logs_list(ctx: click.Context) -> None:
    """按编号顺序列出已保存的构建日志"""
    from kbuilder.cli import get_config

    logs = LogStore(get_config(ctx).log_dir).list_logs()
    if not logs:
        click.echo("没有已保存的构建日志。")
        return
    for p in logs:
        click.echo(f"  {p.name}")


# =========================================================================
# 已归档内核包
# =========================================================================


@click.group(name="debs")
def debs_group() -> None:
    """已归档内核包查看"""


@debs_group.command(name="list")
@click.pass_context
def debs_list(ctx: click.Context) -> None:
    """列出已归档的内核版本"""
    from kbuilder.cli import get_config

    cfg = get_config(ctx)
    versions = ArtifactArchive(cfg.deb_dir, cfg.package_glob).list_versions()
    if not versions:
        click.echo("没有已归档的内核包。")
        return
    for v in versions:
        click.echo(f"  {v}")
