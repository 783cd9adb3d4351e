"""
整站爬取（BFS）模块

CrawlFrontier 负责：
- FIFO 队列 + visited 集合（每次运行独立）
- 深度 / 页面数上限
- 抓取 → 扫描二维码 → 发送事件 → 提取链接入队
- 页面间礼貌延时
- 外部取消信号（每轮循环开始时检查）
"""
import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger

from config import SpiderConfig, ensure_spider_config
from core.events import EventSink, EventStream
from core.models import CrawlRunState, FrontierEntry
from core.scanner import PageScanner
from exceptions import FetchError
from parsers.base import BaseParser, parse_seed
from parsers.link_parser import PageLinkExtractor

PageFetch = Callable[[str], Awaitable[str]]


class CrawlFrontier:
    """
    BFS 爬取器

    Example:
        frontier = CrawlFrontier(fetcher.fetch, scanner)
        state = await frontier.crawl("https://example.com/", {"max_depth": 2, "max_pages": 20, "delay_ms": 1000})
    """

    def __init__(
        self,
        fetch_page: PageFetch,
        scanner: PageScanner,
        link_extractor: Optional[PageLinkExtractor] = None,
    ):
        """
        Args:
            fetch_page: 获取页面HTML的协程函数，失败抛 FetchError
            scanner: 页面二维码扫描器
            link_extractor: 链接提取器
        """
        self.fetch_page = fetch_page
        self.scanner = scanner
        self.link_extractor = link_extractor or PageLinkExtractor()

    async def crawl(
        self,
        seed: str,
        spider_config=None,
        sink: Optional[EventSink] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CrawlRunState:
        """
        从种子开始广度优先爬取

        Args:
            seed: 种子URL
            spider_config: SpiderConfig / dict / None（默认参数）
            sink: 事件消费方；None 时不推送事件
            cancel_event: 外部取消信号

        Returns:
            本次运行的 CrawlRunState

        Raises:
            ConfigurationError: 参数越界（任何网络请求之前）
            InvalidSeedError: 种子URL无法解析（任何网络请求之前）
        """
        spider_config = ensure_spider_config(spider_config)
        seed = seed.strip() if isinstance(seed, str) else seed
        seed_host = parse_seed(seed)

        state = CrawlRunState(seed)
        state.enqueue(seed, 0)
        events = EventStream(sink)
        cancel_event = cancel_event or asyncio.Event()

        logger.info(f"🕷️  开始爬取网站: {seed}")
        logger.info(f"参数: 最大深度={spider_config.max_depth}, "
                    f"最大页面={spider_config.max_pages}, 延时={spider_config.delay_ms}ms")

        while state.queue and state.processed_count < spider_config.max_pages:
            if cancel_event.is_set():
                state.cancelled = True
                logger.warning("⏹️  爬取已取消")
                break

            entry = state.pop()
            if state.is_visited(entry.url) or entry.depth > spider_config.max_depth:
                continue

            state.mark_visited(entry.url)
            await self._process_page(entry, state, spider_config, seed_host, events)

            if self._has_next(state, spider_config) and not cancel_event.is_set():
                await self._wait_politely(spider_config.delay_ms, cancel_event)

        if cancel_event.is_set():
            state.cancelled = True

        logger.success(f"🎉 爬取完成，共处理 {state.processed_count} 个页面，"
                       f"找到 {len(state.findings)} 个二维码（微信 {state.variant_count} 个）")
        await events.summary(
            total_pages=state.processed_count,
            total_qr_codes=len(state.findings),
            variant_count=state.variant_count,
            cancelled=state.cancelled,
        )
        return state

    async def _process_page(
        self,
        entry: FrontierEntry,
        state: CrawlRunState,
        spider_config: SpiderConfig,
        seed_host: str,
        events: EventStream,
    ):
        """处理单个页面；任何失败都转为 error 事件，不中断循环"""
        url, depth = entry.url, entry.depth
        logger.info(f"📄 处理页面 {state.processed_count}/{spider_config.max_pages} (深度{depth}): {url}")
        await events.page(
            processed_count=state.processed_count,
            max_pages=spider_config.max_pages,
            url=url,
            depth=depth,
            total_qr_codes=len(state.findings),
        )

        try:
            html = await self.fetch_page(url)
            soup = BaseParser.make_soup(html)
            findings = await self.scanner.scan(soup, url, depth)
        except FetchError as e:
            logger.error(f"❌ 页面获取失败 {url}: {e.reason}")
            await events.error(e, url=url)
            return
        except Exception as e:
            logger.error(f"❌ 页面处理失败 {url}: {e}")
            await events.error(e, url=url)
            return

        for finding in findings:
            state.add_finding(finding)
            await events.qr_found(finding, total_qr_codes=len(state.findings))

        if depth < spider_config.max_depth:
            added = 0
            for link in self.link_extractor.extract(soup, url, seed_host):
                if state.enqueue(link, depth + 1):
                    added += 1
            logger.debug(f"   ➕ 新增 {added} 个待爬取链接，队列长度 {len(state.queue)}")

    @staticmethod
    def _has_next(state: CrawlRunState, spider_config: SpiderConfig) -> bool:
        """是否还会处理下一页（最后一页之后不延时）"""
        return bool(state.queue) and state.processed_count < spider_config.max_pages

    async def _wait_politely(self, delay_ms: int, cancel_event: asyncio.Event):
        """页面间延时，取消信号可提前结束等待"""
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay_ms / 1000)
        except asyncio.TimeoutError:
            pass
