"""
爬虫模块

包含各种爬虫类：
- BaseSpider: 爬虫基类
- QRSpider: 二维码爬虫（批量模式 / 整站爬取模式）
"""
from spiders.base import BaseSpider
from spiders.qr_spider import QRSpider

__all__ = [
    'BaseSpider',
    'QRSpider',
]
