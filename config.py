"""
配置管理模块 - 二维码网页爬虫
统一配置管理，支持从环境变量 / .env 加载
"""
from pydantic import BaseModel, Field, ValidationError
from typing import List, Dict, Any
import os
from pathlib import Path
from dotenv import load_dotenv
from loguru import logger

from exceptions import ConfigurationError

load_dotenv()

# 项目根目录
BASE_DIR = Path(__file__).parent


class CrawlerConfig(BaseModel):
    """HTTP 与并发配置"""
    # 超时（秒）
    page_timeout: float = Field(default=15.0, description="页面请求超时时间")
    image_timeout: float = Field(default=15.0, description="图片请求超时时间")

    # 大小限制（字节）
    max_page_size: int = Field(default=5 * 1024 * 1024, description="页面最大字节数")
    max_image_size: int = Field(default=10 * 1024 * 1024, description="图片最大字节数")

    # 并发控制
    max_concurrent_images: int = Field(default=4, ge=1, description="单页面图片并发下载/识别数")
    max_concurrent_pages: int = Field(default=5, ge=1, description="批量模式页面并发数")

    # 重试（0 = 单次失败即放弃）
    max_retries: int = Field(default=0, ge=0, description="网络请求重试次数")

    # User-Agent配置
    rotate_user_agent: bool = Field(default=True, description="是否轮换UA")

    # 链接过滤：路径扩展名命中则不入队
    skip_extensions: List[str] = Field(
        default_factory=lambda: [
            "pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx",
            "zip", "rar", "7z", "tar", "gz",
            "jpg", "jpeg", "png", "gif", "bmp", "svg", "ico", "webp",
            "css", "js", "xml", "json", "csv", "txt",
        ],
        description="跳过的链接扩展名"
    )


class SpiderConfig(BaseModel):
    """整站爬取参数（启动前校验）"""
    max_depth: int = Field(default=3, ge=1, le=5, description="最大爬取深度")
    max_pages: int = Field(default=50, ge=1, le=200, description="最大页面数")
    delay_ms: int = Field(default=1000, ge=500, le=10000, description="页面间延时（毫秒）")
    event_buffer: int = Field(default=100, ge=1, description="流式事件通道容量")


class BatchConfig(BaseModel):
    """批量扫描配置"""
    max_urls: int = Field(default=100, ge=1, description="单次最多URL数")


class LogConfig(BaseModel):
    """日志配置"""
    log_level: str = Field(default="INFO", description="日志级别")
    log_dir: Path = Field(default=BASE_DIR / "logs", description="日志目录")
    log_file: str = Field(default="qr_spider.log", description="日志文件名")
    rotation: str = Field(default="100 MB", description="日志轮转大小")
    retention: str = Field(default="30 days", description="日志保留时间")


class Config(BaseModel):
    """全局配置"""
    crawler: CrawlerConfig = Field(default_factory=CrawlerConfig)
    spider: SpiderConfig = Field(default_factory=SpiderConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    log: LogConfig = Field(default_factory=LogConfig)


def _format_validation_error(error: ValidationError) -> str:
    """把 pydantic 校验错误压成一行"""
    parts = []
    for item in error.errors():
        field = ".".join(str(loc) for loc in item.get("loc", ()))
        parts.append(f"{field}: {item.get('msg')}")
    return "; ".join(parts)


def build_spider_config(**overrides: Any) -> SpiderConfig:
    """
    构建并校验爬取参数

    Args:
        **overrides: max_depth / max_pages / delay_ms 等，None 值表示使用默认

    Returns:
        SpiderConfig实例

    Raises:
        ConfigurationError: 参数越界或类型错误
    """
    data = {k: v for k, v in overrides.items() if v is not None}
    try:
        return SpiderConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid crawl parameters: {_format_validation_error(e)}") from e


def ensure_spider_config(value: Any) -> SpiderConfig:
    """接受 SpiderConfig / dict / None，统一返回已校验的 SpiderConfig"""
    if value is None:
        return SpiderConfig()
    if isinstance(value, SpiderConfig):
        # 通过 model_construct 等绕过校验的实例也要重新校验
        return build_spider_config(**value.model_dump())
    if isinstance(value, dict):
        return build_spider_config(**value)
    raise ConfigurationError(f"Unsupported crawl config type: {type(value).__name__}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"⚠️  环境变量 {name}={raw!r} 不是整数，使用默认值 {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"⚠️  环境变量 {name}={raw!r} 不是数字，使用默认值 {default}")
        return default


# 从环境变量加载配置
def load_config_from_env() -> Config:
    """从环境变量加载配置"""
    config_data: Dict[str, Any] = {
        "crawler": {
            "page_timeout": _env_float("PAGE_TIMEOUT", 15.0),
            "image_timeout": _env_float("IMAGE_TIMEOUT", 15.0),
            "max_page_size": _env_int("MAX_PAGE_SIZE", 5 * 1024 * 1024),
            "max_image_size": _env_int("MAX_IMAGE_SIZE", 10 * 1024 * 1024),
            "max_concurrent_images": _env_int("MAX_CONCURRENT_IMAGES", 4),
            "max_concurrent_pages": _env_int("MAX_CONCURRENT_PAGES", 5),
            "max_retries": _env_int("MAX_RETRIES", 0),
            "rotate_user_agent": os.getenv("ROTATE_USER_AGENT", "true").lower() == "true",
        },
        "spider": {
            "max_depth": _env_int("MAX_DEPTH", 3),
            "max_pages": _env_int("MAX_PAGES", 50),
            "delay_ms": _env_int("DELAY_MS", 1000),
        },
        "batch": {
            "max_urls": _env_int("MAX_BATCH_URLS", 100),
        },
        "log": {
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
        }
    }
    try:
        return Config(**config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid environment configuration: {_format_validation_error(e)}") from e


# 全局配置实例（默认从环境变量加载）
config = load_config_from_env()
