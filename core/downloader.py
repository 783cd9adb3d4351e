"""
HTTP 获取模块

- ImageDownloader: 下载单张图片到内存（支持 data: 内联图片）
- PageFetcher: 获取页面HTML

两者共享同一个 aiohttp 会话（也可以各自创建），超时、大小限制独立配置；
单次失败抛出 FetchError，是否重试由 CrawlerConfig.max_retries 决定（默认不重试）。
"""
import asyncio
import base64
import binascii
from typing import Dict, Optional, Union
from urllib.parse import unquote_to_bytes

import aiohttp
from fake_useragent import UserAgent
from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import CrawlerConfig, config
from exceptions import FetchError

IMAGE_ACCEPT = "image/png, image/jpeg, image/jpg, image/gif, image/webp, */*"
PAGE_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"

READ_CHUNK_SIZE = 64 * 1024


def decode_data_uri(uri: str) -> bytes:
    """
    解码 data: URI

    Args:
        uri: 形如 data:image/png;base64,xxxx 的地址

    Returns:
        原始字节

    Raises:
        FetchError: 格式错误
    """
    header, sep, payload = uri.partition(",")
    if not sep or not header.lower().startswith("data:"):
        raise FetchError(uri[:60], "malformed data URI")
    try:
        if header.lower().endswith(";base64"):
            return base64.b64decode(payload, validate=False)
        return unquote_to_bytes(payload)
    except (binascii.Error, ValueError) as e:
        raise FetchError(uri[:60], f"malformed data URI: {e}") from e


class _HttpClient:
    """会话与请求头管理"""

    accept = "*/*"

    def __init__(self, session: Optional[aiohttp.ClientSession] = None, crawler_config: Optional[CrawlerConfig] = None):
        self.crawler_config = crawler_config or config.crawler
        self.ua = UserAgent()
        self.session = session
        self._owns_session = session is None
        self.stats = {
            "total": 0,
            "success": 0,
            "failed": 0,
        }

    async def __aenter__(self):
        """异步上下文管理器入口"""
        await self.init_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()

    async def init_session(self):
        """初始化HTTP会话（外部传入会话时不重复创建）"""
        if self.session is None:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
            logger.info(f"{type(self).__name__} initialized")

    async def close(self):
        """关闭自己创建的会话"""
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None
        logger.info(f"{type(self).__name__} stats: {self.stats}")

    def get_headers(self, referer: Optional[str] = None) -> Dict[str, str]:
        """获取请求头"""
        headers = {
            "User-Agent": self.ua.random if self.crawler_config.rotate_user_agent else self.ua.chrome,
            "Accept": self.accept,
            "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
        }
        if referer:
            headers["Referer"] = referer
        return headers

    async def _retrying(self, func, *args):
        """按 max_retries 重试；只重试网络/超时类错误"""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.crawler_config.max_retries + 1),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(FetchError),
            reraise=True,
        ):
            with attempt:
                return await func(*args)

    async def _get(
        self,
        url: str,
        timeout: float,
        max_size: int,
        referer: Optional[str] = None,
        as_text: bool = False,
    ) -> Union[bytes, str]:
        if self.session is None:
            raise RuntimeError("session is not initialized, use 'async with' or call init_session()")
        try:
            async with self.session.get(
                url,
                headers=self.get_headers(referer),
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                if response.status != 200:
                    raise FetchError(url, f"HTTP {response.status}", status=response.status)
                if response.content_length is not None and response.content_length > max_size:
                    raise FetchError(url, f"response too large ({response.content_length} bytes)")
                data = await self._read_limited(response, url, max_size)
                if as_text:
                    return self._decode_text(data, response.charset)
                return data
        except asyncio.TimeoutError as e:
            raise FetchError(url, "timeout") from e
        except aiohttp.ClientError as e:
            raise FetchError(url, f"request failed: {e}") from e

    @staticmethod
    async def _read_limited(response: aiohttp.ClientResponse, url: str, max_size: int) -> bytes:
        """分块读取响应体，累计超过 max_size 立即放弃（没有 Content-Length 时同样生效）"""
        chunks = []
        total = 0
        async for chunk in response.content.iter_chunked(READ_CHUNK_SIZE):
            total += len(chunk)
            if total > max_size:
                raise FetchError(url, f"response too large (over {max_size} bytes)")
            chunks.append(chunk)
        return b"".join(chunks)

    @staticmethod
    def _decode_text(data: bytes, charset: Optional[str]) -> str:
        try:
            return data.decode(charset or "utf-8", errors="replace")
        except LookupError:
            return data.decode("utf-8", errors="replace")

    def get_stats(self) -> Dict[str, int]:
        return self.stats.copy()


class ImageDownloader(_HttpClient):
    """图片下载器"""

    accept = IMAGE_ACCEPT

    async def download(self, url: str, referer: Optional[str] = None) -> bytes:
        """
        下载单张图片

        Args:
            url: 图片绝对地址或 data: URI
            referer: 所在页面（作为 Referer 发送）

        Returns:
            图片字节

        Raises:
            FetchError: 网络错误、超时、非200、超过大小限制或内容为空
        """
        self.stats["total"] += 1
        try:
            if url.startswith("data:"):
                data = decode_data_uri(url)
            else:
                logger.debug(f"Downloading image: {url[:100]}")
                data = await self._retrying(
                    self._get, url, self.crawler_config.image_timeout, self.crawler_config.max_image_size, referer
                )
            if not data:
                raise FetchError(url[:100], "empty image")
        except FetchError:
            self.stats["failed"] += 1
            raise
        self.stats["success"] += 1
        return data


class PageFetcher(_HttpClient):
    """页面获取器"""

    accept = PAGE_ACCEPT

    async def fetch(self, url: str) -> str:
        """
        获取页面HTML

        Raises:
            FetchError: 网络错误、超时、非200或超过大小限制
        """
        self.stats["total"] += 1
        logger.debug(f"📄 获取页面: {url}")
        try:
            html = await self._retrying(
                self._get, url, self.crawler_config.page_timeout, self.crawler_config.max_page_size, None, True
            )
        except FetchError as e:
            self.stats["failed"] += 1
            logger.warning(f"⚠️  获取失败 {url}: {e.reason}")
            raise
        self.stats["success"] += 1
        return html

