"""集中配置管理

所有目录、镜像地址与签名设置从 YAML 文件加载，缺省值适用于 Debian 构建机。
Config 由入口显式构造并传递给各组件，不使用进程级全局状态。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from kbuilder.core.exceptions import ConfigError
from kbuilder.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "/etc/default/kernel-builder.yml"

DEFAULT_BUILD_DEPENDENCIES = [
    "bc", "bison", "build-essential", "ccache", "dirmngr", "dpkg-dev",
    "fakeroot", "flex", "gnupg2", "ncurses-dev", "libssl-dev", "libelf-dev",
    "pkg-config", "zlib1g-dev", "xz-utils",
]


@dataclass
class Config:
    """构建工具全局配置"""

    # 上游镜像
    korg_url: str = "https://cdn.kernel.org/pub/linux/kernel"

    # 目录
    tmp_dir: str = "/scratch"
    log_dir: str = "/var/log/kernel-builder"
    distfile_dir: str = "/var/tmp/distfiles"
    deb_dir: str = "/var/lib/kernel-builder/debs"

    # 签名校验
    gpg_keyserver: str = "hkps://keyserver.ubuntu.com"
    gpg_recv_keys: list[str] = field(default_factory=list)

    # 编译
    ccache_bin_dir: str = "/usr/lib/ccache"
    make_target: str = "bindeb-pkg"
    package_glob: str = "*.deb"

    # 依赖安装
    install_dependencies: bool = True
    build_dependencies: list[str] = field(
        default_factory=lambda: list(DEFAULT_BUILD_DEPENDENCIES),
    )

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str | Path = DEFAULT_CONFIG_FILE) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        try:
            data = load_yaml(path)
        except (yaml.YAMLError, ValueError) as e:
            raise ConfigError(f"配置文件无效: {path}: {e}") from e
        if not data:
            return cls()
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        if extra:
            logger.warning("忽略未知配置项: %s", ", ".join(sorted(extra)))
        for key in ("gpg_recv_keys", "build_dependencies"):
            value = matched.get(key)
            if isinstance(value, str):
                # 兼容空格分隔的字符串写法
                matched[key] = value.split()
            elif value is not None and not isinstance(value, list):
                raise ConfigError(f"配置项 {key} 必须是列表: {path}")
        for f in fields(cls):
            if f.name not in matched:
                continue
            value = matched[f.name]
            # YAML 空值 (None) 同样视为类型错误
            if isinstance(f.default, bool) and not isinstance(value, bool):
                raise ConfigError(f"配置项 {f.name} 必须是布尔值: {path}")
            if isinstance(f.default, str) and not isinstance(value, str):
                raise ConfigError(f"配置项 {f.name} 必须是字符串: {path}")
        cfg = cls(**matched)
        cfg.extra = extra
        logger.debug("配置已加载: %s", path)
        return cfg
