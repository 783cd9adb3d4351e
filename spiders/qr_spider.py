"""
二维码爬虫

两种模式：
- 批量模式 scan_urls(): 每个URL独立扫描（不跟随链接），每个URL一条结果
- 爬取模式 crawl() / crawl_stream(): 从种子URL广度优先爬取整站
"""
import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from loguru import logger
from tqdm import tqdm

from config import Config, ensure_spider_config
from core.decoder import DecodePipeline
from core.events import Event, EventChannel, EventSink
from core.frontier import CrawlFrontier
from core.models import BatchResult, CrawlResult, QrFinding
from core.scanner import PageScanner
from exceptions import ConfigurationError, InvalidSeedError
from parsers.base import parse_seed
from parsers.link_parser import PageLinkExtractor
from spiders.base import BaseSpider

NO_QR_FOUND = "no QR code found on page"


def select_finding(findings: Sequence[QrFinding]) -> Optional[QrFinding]:
    """多个二维码时优先返回微信二维码，否则返回第一个"""
    for finding in findings:
        if finding.is_wechat_variant:
            return finding
    return findings[0] if findings else None


class QRSpider(BaseSpider):
    """
    二维码爬虫

    Example:
        async with QRSpider() as spider:
            results = await spider.scan_urls(["https://example.com/a"])
            result = await spider.crawl("https://example.com/", {"max_depth": 2})
            async for event in spider.crawl_stream("https://example.com/"):
                print(event.type)
    """

    def __init__(self, config: Optional[Config] = None, pipeline: Optional[DecodePipeline] = None):
        super().__init__(config)
        self.pipeline = pipeline or DecodePipeline()
        self.scanner = PageScanner(
            self.downloader,
            pipeline=self.pipeline,
            max_workers=self.config.crawler.max_concurrent_images,
        )
        self.link_extractor = PageLinkExtractor(self.config.crawler.skip_extensions)
        self.stats = {
            "pages_scanned": 0,
            "pages_failed": 0,
            "qr_found": 0,
            "wechat_qr_found": 0,
        }

    # ------------------------------------------------------------------
    # 批量模式
    # ------------------------------------------------------------------

    async def scan_page(self, url: str) -> List[QrFinding]:
        """
        扫描单个页面（不跟随链接）

        Raises:
            FetchError: 页面获取失败
        """
        html = await self.fetch_page(url)
        return await self.scanner.scan(html, url, depth=0)

    async def scan_urls(self, urls: Sequence[str], show_progress: bool = False) -> List[BatchResult]:
        """
        批量扫描URL列表

        Args:
            urls: 页面URL列表（1 ~ batch.max_urls 个）
            show_progress: 是否显示进度条

        Returns:
            与输入顺序一致的 BatchResult 列表

        Raises:
            ConfigurationError: URL列表为空或超过上限
        """
        if not isinstance(urls, (list, tuple)):
            raise ConfigurationError("urls must be a list")
        if not urls:
            raise ConfigurationError("URL list must not be empty")
        if len(urls) > self.config.batch.max_urls:
            raise ConfigurationError(f"at most {self.config.batch.max_urls} URLs are supported, got {len(urls)}")

        logger.info(f"📋 开始批量扫描 {len(urls)} 个URL")
        semaphore = asyncio.Semaphore(self.config.crawler.max_concurrent_pages)

        with tqdm(total=len(urls), desc="扫描进度", disable=not show_progress) as progress:
            async def scan_with_semaphore(index: int, url: str) -> BatchResult:
                async with semaphore:
                    result = await self._scan_one(index, url)
                progress.update(1)
                return result

            results = await asyncio.gather(
                *[scan_with_semaphore(i, str(u).strip()) for i, u in enumerate(urls, 1)]
            )

        recognized = sum(1 for r in results if r.content and not r.error)
        logger.success(f"✅ 完成处理，成功识别: {recognized}/{len(urls)}")
        return list(results)

    async def _scan_one(self, index: int, url: str) -> BatchResult:
        """扫描单个URL，所有错误写入 error 字段"""
        logger.info(f"🔍 正在处理第{index}个网页URL: {url}")
        try:
            parse_seed(url)
            findings = await self.scan_page(url)
        except InvalidSeedError as e:
            self.stats["pages_failed"] += 1
            return BatchResult(index=index, url=url, error=str(e))
        except Exception as e:
            self.stats["pages_failed"] += 1
            logger.error(f"❌ 处理第{index}个网页URL失败: {e}")
            return BatchResult(index=index, url=url, error=str(e))

        self.stats["pages_scanned"] += 1
        self._count_findings(findings)
        selected = select_finding(findings)
        if selected is None:
            return BatchResult(index=index, url=url, error=NO_QR_FOUND)

        return BatchResult(
            index=index,
            url=url,
            content=selected.payload,
            is_wechat_variant=selected.is_wechat_variant,
            image_url=selected.image_url,
            total_qr_found=len(findings),
            all_qr_codes=list(findings),
        )

    # ------------------------------------------------------------------
    # 爬取模式
    # ------------------------------------------------------------------

    def _make_frontier(self) -> CrawlFrontier:
        return CrawlFrontier(self.fetch_page, self.scanner, self.link_extractor)

    async def crawl(
        self,
        seed: str,
        spider_config=None,
        sink: Optional[EventSink] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CrawlResult:
        """
        整站爬取，返回汇总结果

        Raises:
            ConfigurationError / InvalidSeedError: 开始前校验失败
        """
        spider_config = ensure_spider_config(
            spider_config if spider_config is not None else self.config.spider
        )
        state = await self._make_frontier().crawl(seed, spider_config, sink=sink, cancel_event=cancel_event)
        self.stats["pages_scanned"] += state.processed_count
        self._count_findings(state.findings)
        return state.to_result()

    async def crawl_stream(self, seed: str, spider_config=None) -> AsyncIterator[Event]:
        """
        整站爬取，实时产出事件

        消费方停止迭代（break / aclose）时发出取消信号：正在处理的页面照常完成，
        之后不再开始新页面。

        Raises:
            ConfigurationError / InvalidSeedError: 在产出任何事件之前抛出
        """
        spider_config = ensure_spider_config(
            spider_config if spider_config is not None else self.config.spider
        )
        parse_seed(seed)

        channel = EventChannel(maxsize=spider_config.event_buffer)
        cancel_event = asyncio.Event()

        async def produce():
            try:
                await self.crawl(seed, spider_config, sink=channel, cancel_event=cancel_event)
            finally:
                if cancel_event.is_set():
                    channel.close_nowait()
                else:
                    await channel.close()

        producer = asyncio.create_task(produce())
        try:
            async for event in channel:
                yield event
            await producer
        finally:
            if not producer.done():
                logger.info("⏹️  消费方已断开，取消爬取")
                cancel_event.set()
                channel.detach()
                try:
                    await producer
                except asyncio.CancelledError:
                    producer.cancel()
                    raise

    def _count_findings(self, findings: Sequence[QrFinding]):
        self.stats["qr_found"] += len(findings)
        self.stats["wechat_qr_found"] += sum(1 for f in findings if f.is_wechat_variant)

    def get_statistics(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "images": self.scanner.get_stats(),
            "decoder": self.pipeline.get_stats(),
        }
