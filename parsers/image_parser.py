"""
候选图片提取器

从页面中找出所有可能包含二维码的图片：
- <img> 的 src 与懒加载属性（data-src / data-original / data-lazy / data-lazy-src）
- 行内 style 中 background-image 的 url(...)
"""
import re
from typing import List, Optional, Set

from loguru import logger

from core.heuristics import is_likely_qr
from core.models import ImageCandidate
from parsers.base import BaseParser

# 懒加载属性，按优先级
LAZY_ATTRIBUTES = ("data-src", "data-original", "data-lazy", "data-lazy-src")

# 占位图标记
PLACEHOLDER_MARKERS = ("tpjz", "loading", "placeholder", "noimage")

BACKGROUND_URL_PATTERN = re.compile(r"""url\(\s*['"]?([^'")]+?)['"]?\s*\)""", re.IGNORECASE)

BACKGROUND_ALT = "背景图片"


def is_placeholder(src: Optional[str]) -> bool:
    """src 是否是懒加载占位图"""
    if not src:
        return False
    lowered = src.lower()
    return any(marker in lowered for marker in PLACEHOLDER_MARKERS)


class ImageCandidateExtractor(BaseParser):
    """
    候选图片提取器

    输出顺序：先 <img>（DOM 顺序），后 background-image 元素（DOM 顺序）；
    同一页面内按解析后的绝对地址去重。

    Example:
        extractor = ImageCandidateExtractor()
        candidates = extractor.extract(html, "https://example.com/page")
    """

    def extract(self, page, page_url: str) -> List[ImageCandidate]:
        """
        提取候选图片

        Args:
            page: HTML 字符串或 BeautifulSoup
            page_url: 页面地址（解析相对路径用）

        Returns:
            ImageCandidate 列表
        """
        soup = self.make_soup(page)
        candidates: List[ImageCandidate] = []
        seen: Set[str] = set()

        images = soup.find_all("img")
        for img in images:
            src = (img.get("src") or "").strip()
            lazy_src = self._get_lazy_src(img)
            alt = img.get("alt") or ""
            title = img.get("title") or ""

            # 占位图优先使用懒加载地址
            primary = lazy_src if (is_placeholder(src) and lazy_src) else src
            self._add(candidates, seen, primary, alt, title, page_url)

            # 懒加载地址与 src 不同，也加入
            if lazy_src and lazy_src != src:
                self._add(candidates, seen, lazy_src, alt, title, page_url)

        background_count = 0
        for element in soup.find_all(style=True):
            style = element.get("style") or ""
            if "background-image" not in style.lower():
                continue
            match = BACKGROUND_URL_PATTERN.search(style)
            if match and self._add(candidates, seen, match.group(1), BACKGROUND_ALT, "", page_url):
                background_count += 1

        logger.debug(f"🖼️  {page_url}: {len(images)} 个 <img>，"
                     f"{background_count} 个背景图，共 {len(candidates)} 个候选")
        return candidates

    @staticmethod
    def _get_lazy_src(img) -> Optional[str]:
        for attr in LAZY_ATTRIBUTES:
            value = img.get(attr)
            if value and value.strip():
                return value.strip()
        return None

    def _add(
        self,
        candidates: List[ImageCandidate],
        seen: Set[str],
        source: Optional[str],
        alt: str,
        title: str,
        page_url: str,
    ) -> bool:
        """解析并去重后追加候选，返回是否新增"""
        if not source:
            return False
        source = source.strip()
        if source.lower().startswith("javascript:"):
            return False
        if source.lower().startswith("data:"):
            resolved = source
        else:
            resolved = self._resolve_url(source, page_url)
        if not resolved or resolved in seen:
            return False
        seen.add(resolved)
        candidates.append(ImageCandidate(
            source_url=source,
            resolved_url=resolved,
            alt_text=alt,
            title_text=title,
            discovery_index=len(candidates),
            likely_qr=is_likely_qr(alt, title, source),
        ))
        return True
