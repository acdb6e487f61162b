"""kernel-builder - 上游内核源码 → Debian 内核包 自动构建工具"""

__version__ = "0.3.0"
