"""
解析器模块

包含各种页面解析器：
- BaseParser: 解析器基类
- ImageCandidateExtractor: 候选图片提取器
- PageLinkExtractor: 页面链接提取器
"""
from parsers.base import BaseParser
from parsers.image_parser import ImageCandidateExtractor
from parsers.link_parser import PageLinkExtractor

__all__ = ['BaseParser', 'ImageCandidateExtractor', 'PageLinkExtractor']
