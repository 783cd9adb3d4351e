"""
页面扫描模块

对单个页面：提取候选图片 → 并发下载 + 识别 → 按候选顺序输出二维码记录
"""
import asyncio
from typing import List, Optional

from loguru import logger

from config import config
from core.decoder import DecodePipeline
from core.downloader import ImageDownloader
from core.models import ImageCandidate, QrFinding
from exceptions import DecodeExhausted, FetchError
from parsers.image_parser import ImageCandidateExtractor


class PageScanner:
    """
    页面二维码扫描器

    同一页面内的图片并发处理（上限 max_workers），结果按候选发现顺序返回。
    单张图片失败不影响其他图片；疑似二维码的图片失败时记录日志。

    Example:
        scanner = PageScanner(downloader)
        findings = await scanner.scan(html, "https://example.com/", depth=0)
    """

    def __init__(
        self,
        downloader: ImageDownloader,
        pipeline: Optional[DecodePipeline] = None,
        extractor: Optional[ImageCandidateExtractor] = None,
        max_workers: Optional[int] = None,
    ):
        self.downloader = downloader
        self.pipeline = pipeline or DecodePipeline()
        self.extractor = extractor or ImageCandidateExtractor()
        self.max_workers = max_workers or config.crawler.max_concurrent_images
        self.stats = {
            "images_checked": 0,
            "images_failed": 0,
            "qr_found": 0,
        }

    async def scan(self, page, page_url: str, depth: int = 0) -> List[QrFinding]:
        """
        扫描页面中的二维码

        Args:
            page: HTML 字符串或 BeautifulSoup
            page_url: 页面地址
            depth: 页面深度（写入记录）

        Returns:
            QrFinding 列表（候选发现顺序）
        """
        candidates = self.extractor.extract(page, page_url)
        if not candidates:
            return []

        logger.info(f"🖼️  收集到 {len(candidates)} 个待检查的图片: {page_url}")
        semaphore = asyncio.Semaphore(self.max_workers)

        async def check_with_semaphore(candidate: ImageCandidate):
            async with semaphore:
                return await self.check_image(candidate, page_url, depth)

        # gather 按传入顺序返回，保证与候选顺序一致
        results = await asyncio.gather(*[check_with_semaphore(c) for c in candidates])
        findings = [f for f in results if f is not None]
        if findings:
            logger.success(f"✅ 在页面 {page_url} 找到 {len(findings)} 个二维码")
        return findings

    async def check_image(self, candidate: ImageCandidate, page_url: str, depth: int = 0) -> Optional[QrFinding]:
        """下载并识别单张图片，失败返回 None"""
        self.stats["images_checked"] += 1
        try:
            image_bytes = await self.downloader.download(candidate.resolved_url, referer=page_url)
            result = await asyncio.to_thread(self.pipeline.decode, image_bytes)
            payload = result.unwrap()
        except (FetchError, DecodeExhausted) as e:
            self.stats["images_failed"] += 1
            if candidate.likely_qr:
                logger.info(f"✗ 疑似二维码图片处理失败 {candidate.resolved_url[:100]}: {e}")
            return None

        self.stats["qr_found"] += 1
        logger.info(f"✓ 发现二维码 ({result.strategy_used}): {payload[:50]}")
        return QrFinding.create(
            source_url=page_url,
            image_url=candidate.resolved_url,
            payload=payload,
            depth=depth,
            discovery_index=candidate.discovery_index,
            strategy_used=result.strategy_used,
        )

    def get_stats(self) -> dict:
        return self.stats.copy()
