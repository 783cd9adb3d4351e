"""
爬虫基类模块

包含爬虫的抽象基类：
- BaseSpider: 爬虫基类
"""
import aiohttp
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
from loguru import logger

from config import Config, config as default_config
from core.downloader import ImageDownloader, PageFetcher


class BaseSpider(ABC):
    """
    爬虫基类

    所有爬虫的公共基类，提供：
    - HTTP Session 管理（页面获取器与图片下载器共享）
    - 页面获取
    - 统计信息
    - 异步上下文管理

    子类需要实现:
    - get_statistics(): 获取统计信息
    """

    def __init__(self, config: Optional[Config] = None):
        """
        初始化爬虫

        Args:
            config: 配置对象，默认使用全局配置
        """
        self.config = config or default_config
        self.session: Optional[aiohttp.ClientSession] = None
        self.page_fetcher = PageFetcher(crawler_config=self.config.crawler)
        self.downloader = ImageDownloader(crawler_config=self.config.crawler)

    async def __aenter__(self):
        """异步上下文管理器入口"""
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()

    async def init(self):
        """
        初始化爬虫

        子类应该调用 super().init() 并添加特定初始化逻辑
        """
        logger.info("⚙️  初始化爬虫组件...")

        # 初始化HTTP会话（超时在每个请求上单独设置）
        self.session = aiohttp.ClientSession()
        self.page_fetcher.session = self.session
        self.downloader.session = self.session

    async def close(self):
        """
        关闭爬虫

        子类应该先执行特定清理逻辑，再调用 super().close()
        """
        logger.info("🔒 关闭爬虫...")

        if self.session:
            await self.session.close()
            self.session = None
        self.page_fetcher.session = None
        self.downloader.session = None

        logger.info(f"📊 爬虫统计: {self.get_statistics()}")

    async def fetch_page(self, url: str) -> str:
        """
        获取页面内容

        Raises:
            FetchError: 获取失败
        """
        return await self.page_fetcher.fetch(url)

    @abstractmethod
    def get_statistics(self) -> Dict[str, Any]:
        """
        获取统计信息

        子类必须实现此方法
        """
        pass
