"""
核心模块

包含基础组件：
- downloader: 图片下载器 / 页面获取器
- decoder: 二维码识别流水线
- events: 事件流
- models: 数据模型
- scanner: 页面扫描器（依赖 parsers，按需导入 core.scanner）
- frontier: 整站 BFS 爬取（依赖 parsers，按需导入 core.frontier）
"""
from .downloader import ImageDownloader, PageFetcher
from .decoder import DecodePipeline, DecodeStrategy
from .events import CallbackSink, CollectingSink, EventChannel, EventStream
from .models import BatchResult, CrawlResult, DecodeResult, ImageCandidate, QrFinding

__all__ = [
    'ImageDownloader',
    'PageFetcher',
    'DecodePipeline',
    'DecodeStrategy',
    'CallbackSink',
    'CollectingSink',
    'EventChannel',
    'EventStream',
    'BatchResult',
    'CrawlResult',
    'DecodeResult',
    'ImageCandidate',
    'QrFinding',
]
