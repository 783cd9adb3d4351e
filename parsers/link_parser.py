"""
页面链接提取器

只保留与种子同主机、扩展名不在跳过列表中的 http(s) 链接。
"""
import posixpath
from typing import Iterable, List, Optional, Set
from urllib.parse import urldefrag, urlparse

from loguru import logger

from config import config
from parsers.base import BaseParser, FETCHABLE_SCHEMES, host_of


class PageLinkExtractor(BaseParser):
    """
    页面链接提取器

    Example:
        extractor = PageLinkExtractor()
        links = extractor.extract(html, "https://example.com/a/", "example.com")
    """

    def __init__(self, skip_extensions: Optional[Iterable[str]] = None):
        extensions = skip_extensions if skip_extensions is not None else config.crawler.skip_extensions
        self.skip_extensions: Set[str] = {ext.lower().lstrip(".") for ext in extensions}

    def has_skip_extension(self, url: str) -> bool:
        """路径扩展名是否在跳过列表中"""
        path = urlparse(url).path
        ext = posixpath.splitext(path)[1].lower().lstrip(".")
        return bool(ext) and ext in self.skip_extensions

    def accept(self, url: str, seed_host: str) -> bool:
        """同主机、http(s)、扩展名不在跳过列表"""
        try:
            parsed = urlparse(url)
            if parsed.scheme.lower() not in FETCHABLE_SCHEMES:
                return False
            if host_of(url) != seed_host.lower():
                return False
        except ValueError:
            return False
        return not self.has_skip_extension(url)

    def extract(self, page, page_url: str, seed_host: str) -> List[str]:
        """
        提取可入队的链接

        Args:
            page: HTML 字符串或 BeautifulSoup
            page_url: 当前页面地址
            seed_host: 种子主机（含端口）

        Returns:
            绝对地址列表（DOM 顺序，页面内去重，已去掉片段）
        """
        soup = self.make_soup(page)
        links: List[str] = []
        seen: Set[str] = set()

        for anchor in soup.find_all("a"):
            href = anchor.get("href")
            if not href or not href.strip() or href.strip().startswith("#"):
                continue
            resolved = self._resolve_url(href, page_url)
            if not resolved:
                continue
            url, _ = urldefrag(resolved)
            if url in seen or not self.accept(url, seed_host):
                continue
            seen.add(url)
            links.append(url)

        logger.debug(f"🔗 {page_url}: 发现 {len(links)} 个可跟随链接")
        return links
