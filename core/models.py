"""
数据模型

- FrontierEntry: 待爬取队列中的一项
- ImageCandidate: 页面中的候选图片
- DecodeResult: 单张图片的识别结果
- QrFinding: 一条二维码发现记录
- CrawlRunState: 单次整站爬取的运行状态（visited / 队列 / 计数 / 结果）
- CrawlResult / BatchResult: 返回给调用方的结果
"""
from collections import deque
from typing import Deque, List, Optional, Set
from urllib.parse import urldefrag, urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field

from exceptions import DecodeExhausted
from core.heuristics import is_wechat_variant


# 协议默认端口，显式写出时视为同一主机
DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(url: str) -> str:
    """
    规范化绝对URL，用作 visited / 队列去重的键

    协议与主机小写，去掉默认端口和片段，空路径补为 "/"。
    """
    url, _ = urldefrag(url.strip())
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    netloc = parts.netloc.lower()
    try:
        port = parts.port
    except ValueError:
        port = None
    if port is not None and port == DEFAULT_PORTS.get(scheme):
        netloc = netloc.rsplit(":", 1)[0]
    path = parts.path or "/"
    return urlunsplit((scheme, netloc, path, parts.query, ""))


class FrontierEntry(BaseModel):
    """待爬取条目"""
    model_config = ConfigDict(frozen=True)

    url: str
    depth: int = Field(default=0, ge=0)


class ImageCandidate(BaseModel):
    """候选图片"""
    source_url: str = Field(description="属性中的原始地址（可能是相对路径）")
    resolved_url: str = Field(description="相对页面解析后的绝对地址")
    alt_text: str = ""
    title_text: str = ""
    discovery_index: int = 0
    likely_qr: bool = False


class DecodeResult(BaseModel):
    """图片识别结果"""
    payload: Optional[str] = None
    strategy_used: str
    succeeded: bool = False
    tried: List[str] = Field(default_factory=list)

    def unwrap(self) -> str:
        """返回识别内容，失败时抛出 DecodeExhausted"""
        if not self.succeeded or self.payload is None:
            raise DecodeExhausted(self.tried)
        return self.payload


class QrFinding(BaseModel):
    """二维码发现记录（创建后不可变）"""
    model_config = ConfigDict(frozen=True)

    source_url: str
    image_url: str
    payload: str
    is_wechat_variant: bool = False
    depth: int = 0
    discovery_index: int = 0
    strategy_used: str = ""

    @classmethod
    def create(
        cls,
        source_url: str,
        image_url: str,
        payload: str,
        depth: int = 0,
        discovery_index: int = 0,
        strategy_used: str = "",
    ) -> "QrFinding":
        """创建记录，同时判定是否为微信二维码"""
        return cls(
            source_url=source_url,
            image_url=image_url,
            payload=payload,
            is_wechat_variant=is_wechat_variant(payload),
            depth=depth,
            discovery_index=discovery_index,
            strategy_used=strategy_used,
        )


class CrawlResult(BaseModel):
    """整站爬取的汇总结果"""
    seed_url: str
    total_pages: int = 0
    total_qr_codes: int = 0
    variant_count: int = 0
    cancelled: bool = False
    findings: List[QrFinding] = Field(default_factory=list)


class BatchResult(BaseModel):
    """批量模式下单个URL的结果"""
    index: int
    url: str
    content: str = ""
    is_wechat_variant: bool = False
    image_url: Optional[str] = None
    total_qr_found: int = 0
    all_qr_codes: List[QrFinding] = Field(default_factory=list)
    error: Optional[str] = None


class CrawlRunState:
    """
    单次爬取的运行状态

    由一次 CrawlFrontier.crawl() 独占，不跨运行共享。
    visited 只增不减；每个规范化URL最多出队抓取一次。
    """

    def __init__(self, seed_url: str):
        self.seed_url = seed_url
        self.visited: Set[str] = set()
        self.queue: Deque[FrontierEntry] = deque()
        self.queued: Set[str] = set()
        self.processed_count = 0
        self.findings: List[QrFinding] = []
        self.cancelled = False

    def enqueue(self, url: str, depth: int) -> bool:
        """入队；已访问或已在队列中则拒绝"""
        key = normalize_url(url)
        if key in self.visited or key in self.queued:
            return False
        self.queue.append(FrontierEntry(url=url, depth=depth))
        self.queued.add(key)
        return True

    def pop(self) -> FrontierEntry:
        """取出队首（FIFO）"""
        entry = self.queue.popleft()
        self.queued.discard(normalize_url(entry.url))
        return entry

    def is_visited(self, url: str) -> bool:
        return normalize_url(url) in self.visited

    def mark_visited(self, url: str):
        self.visited.add(normalize_url(url))
        self.processed_count += 1

    def add_finding(self, finding: QrFinding):
        self.findings.append(finding)

    @property
    def variant_count(self) -> int:
        return sum(1 for f in self.findings if f.is_wechat_variant)

    def to_result(self) -> CrawlResult:
        return CrawlResult(
            seed_url=self.seed_url,
            total_pages=self.processed_count,
            total_qr_codes=len(self.findings),
            variant_count=self.variant_count,
            cancelled=self.cancelled,
            findings=list(self.findings),
        )
