"""
解析器基类模块

包含解析器的抽象基类：
- BaseParser: 解析器基类
"""
from abc import ABC, abstractmethod
from typing import Optional, Union
from urllib.parse import urljoin, urlparse
from bs4 import BeautifulSoup

from core.models import DEFAULT_PORTS
from exceptions import InvalidSeedError

# 可以跟随/下载的协议
FETCHABLE_SCHEMES = ("http", "https")


def host_of(url: str) -> str:
    """
    取 URL 的主机（小写，非默认端口时带端口）

    https://example.com:443/ 与 https://example.com/ 的主机相同。

    Raises:
        ValueError: URL 无法解析
    """
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    port = parsed.port
    if port and port != DEFAULT_PORTS.get(parsed.scheme.lower()):
        host = f"{host}:{port}"
    return host


def parse_seed(seed: str) -> str:
    """
    校验种子URL并返回其主机

    Raises:
        InvalidSeedError: 不是绝对 http(s) URL
    """
    if not seed or not isinstance(seed, str):
        raise InvalidSeedError(str(seed), "empty URL")
    try:
        parsed = urlparse(seed.strip())
        host = host_of(seed.strip())
    except ValueError as e:
        raise InvalidSeedError(seed, str(e)) from e
    if parsed.scheme.lower() not in FETCHABLE_SCHEMES:
        raise InvalidSeedError(seed, "scheme must be http or https")
    if not host:
        raise InvalidSeedError(seed, "missing host")
    return host


class BaseParser(ABC):
    """
    解析器基类

    所有解析器的公共基类，提供：
    - HTML 解析（接受 HTML 字符串或已解析的 BeautifulSoup）
    - 相对地址解析

    子类需要实现:
    - extract(): 从页面提取目标
    """

    @staticmethod
    def make_soup(page: Union[str, bytes, BeautifulSoup]) -> BeautifulSoup:
        """HTML 字符串转 BeautifulSoup；已解析的直接返回"""
        if isinstance(page, BeautifulSoup):
            return page
        return BeautifulSoup(page or "", "lxml")

    @staticmethod
    def _resolve_url(href: str, base_url: str) -> Optional[str]:
        """
        相对 base_url 解析地址

        处理相对路径、协议相对（//host/x）、根相对（/x）。

        Returns:
            绝对地址；无法解析返回 None
        """
        if not href:
            return None
        href = href.strip()
        if not href:
            return None
        try:
            return urljoin(base_url, href)
        except ValueError:
            return None

    @abstractmethod
    def extract(self, page, page_url: str, *args, **kwargs):
        """从页面提取目标"""
