"""
异常定义

- ConfigurationError: 运行参数非法（致命，开始前抛出）
- InvalidSeedError: 种子URL无法解析（致命，仅影响本次运行）
- FetchError: 页面/图片网络失败（可恢复）
- DecodeExhausted: 所有识别策略都失败（可恢复）
"""
from typing import Optional


class QRSpiderError(Exception):
    """所有爬虫异常的基类"""


class ConfigurationError(QRSpiderError):
    """运行参数非法"""


class InvalidSeedError(QRSpiderError):
    """种子URL无法解析为绝对 http(s) URI"""

    def __init__(self, seed: str, reason: str = "invalid URL"):
        self.seed = seed
        self.reason = reason
        super().__init__(f"Invalid seed URL {seed!r}: {reason}")


class FetchError(QRSpiderError):
    """页面或图片获取失败（网络、超时、HTTP状态、大小超限）"""

    def __init__(self, url: str, reason: str, status: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status = status
        super().__init__(f"{reason}: {url}")


class DecodeExhausted(QRSpiderError):
    """图片中未识别出二维码"""

    def __init__(self, tried: Optional[list] = None):
        self.tried = tried or []
        super().__init__(f"No QR payload recognized (tried: {', '.join(self.tried) or 'none'})")
