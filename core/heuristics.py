"""
二维码相关的纯字符串判断

- is_likely_qr: 根据 alt/title/URL 推测图片"像不像"二维码（仅用于诊断日志，不决定是否识别）
- is_wechat_variant: 判断识别出的内容是否为微信二维码
"""
import re
from typing import Optional

# alt/title 关键词（中英文）
QR_TEXT_PATTERN = re.compile(r"qr|code|二维码|扫码|微信|wechat|weixin", re.IGNORECASE)

# 图片URL关键词
QR_URL_PATTERN = re.compile(r"qr|code|weixin|wechat", re.IGNORECASE)

WECHAT_PATTERNS = [
    re.compile(r"^https?://u\.wechat\.com", re.IGNORECASE),
    re.compile(r"^https?://weixin\.qq\.com", re.IGNORECASE),
    re.compile(r"^https?://mp\.weixin\.qq\.com", re.IGNORECASE),
    re.compile(r"^weixin://", re.IGNORECASE),
    re.compile(r"^wxp://", re.IGNORECASE),
]


def is_likely_qr(alt: Optional[str] = "", title: Optional[str] = "", url: Optional[str] = "") -> bool:
    """
    推测图片是否可能是二维码

    只影响识别失败时是否打印诊断日志。

    Args:
        alt: img 的 alt 文本
        title: img 的 title 文本
        url: 图片地址

    Returns:
        是否疑似二维码
    """
    text = f"{alt or ''}{title or ''}"
    if text and QR_TEXT_PATTERN.search(text):
        return True
    return bool(url) and QR_URL_PATTERN.search(url) is not None


def is_wechat_variant(payload: Optional[str]) -> bool:
    """识别内容是否匹配微信二维码的已知前缀"""
    if not payload:
        return False
    return any(pattern.search(payload) for pattern in WECHAT_PATTERNS)
