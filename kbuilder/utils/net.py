"""镜像 URL 拼接与协议校验"""

from __future__ import annotations

from urllib.parse import urlparse

from kbuilder.core.exceptions import ConfigError

ALLOWED_SCHEMES = frozenset(("http", "https"))


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """只接受 http/https，拒绝 file:// 等本地或未知协议

    Raises:
        ConfigError: 协议不被接受，或缺少主机名
    """
    parsed = urlparse(url)
    label = f" ({context})" if context else ""
    if parsed.scheme not in ALLOWED_SCHEMES:
        raise ConfigError(
            f"不允许的 URL 协议 '{parsed.scheme}'{label}，仅支持 http/https: {url}"
        )
    if not parsed.netloc:
        raise ConfigError(f"URL 缺少主机名{label}: {url}")


def mirror_url(base: str, *segments: str, context: str = "") -> str:
    """把路径段拼接到镜像根地址后并校验，多余的 '/' 会被折叠"""
    parts = [base.rstrip("/")] + [s.strip("/") for s in segments if s.strip("/")]
    url = "/".join(parts)
    validate_url_scheme(url, context=context)
    return url
