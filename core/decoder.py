"""
二维码识别模块

按固定顺序尝试多种识别策略，第一个成功的结果胜出：
1. zxing-bitmap: Pillow 解码为位图，zxing-cpp 逐行扫描识别
2. opencv-raw: 转 sRGB + 强制 alpha，取原始 RGBA 像素，OpenCV QRCodeDetector 识别
3. opencv-raw-masked: 同 2，但先把图片中心（边长 = min(宽,高) 的 15%）涂成不透明白色，
   去掉遮挡中心的 LOGO 后再识别
"""
import io
from abc import ABC, abstractmethod
from typing import List, NamedTuple, Optional, Sequence

import cv2
import numpy as np
import zxingcpp
from loguru import logger
from PIL import Image, ImageCms

from core.models import DecodeResult

EMPTY = "empty"
EXHAUSTED = "exhausted"

# 中心遮罩边长占 min(宽,高) 的比例
MASK_RATIO = 0.15

# zxing-cpp 只接受二维码类格式
_QR_FORMATS = {
    getattr(zxingcpp.BarcodeFormat, name)
    for name in ("QRCode", "MicroQRCode", "RMQRCode")
    if hasattr(zxingcpp.BarcodeFormat, name)
}

_SRGB_PROFILE = ImageCms.ImageCmsProfile(ImageCms.createProfile("sRGB"))


class RawImage(NamedTuple):
    """原始 RGBA 像素缓冲区"""
    data: bytes
    width: int
    height: int


def open_image(image_bytes: bytes) -> Image.Image:
    """把字节解码为 Pillow 图片（强制加载像素）"""
    image = Image.open(io.BytesIO(image_bytes))
    image.load()
    return image


def to_srgb(image: Image.Image) -> Image.Image:
    """带 ICC 配置文件的图片转换到 sRGB；没有配置文件时原样返回"""
    icc = image.info.get("icc_profile")
    if not icc:
        return image
    has_alpha = image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info
    try:
        source = ImageCms.ImageCmsProfile(io.BytesIO(icc))
        if image.mode not in ("RGB", "RGBA", "CMYK", "L"):
            image = image.convert("RGBA" if has_alpha else "RGB")
        return ImageCms.profileToProfile(
            image, source, _SRGB_PROFILE,
            outputMode="RGBA" if image.mode == "RGBA" else "RGB",
        )
    except (ImageCms.PyCMSError, OSError, ValueError) as e:
        logger.debug(f"ICC 转换失败，按原色彩空间处理: {e}")
        return image


def load_raw_rgba(image_bytes: bytes) -> RawImage:
    """解码图片 → sRGB → 强制 alpha → 原始 RGBA 字节"""
    image = to_srgb(open_image(image_bytes)).convert("RGBA")
    return RawImage(image.tobytes(), image.width, image.height)


def mask_center(raw: RawImage, ratio: float = MASK_RATIO) -> RawImage:
    """
    把图片中心的正方形区域涂成不透明白色

    正方形边长为 min(宽,高) * ratio，中心与图片中心重合。
    """
    side = int(min(raw.width, raw.height) * ratio)
    if side <= 0:
        return raw
    pixels = np.frombuffer(raw.data, dtype=np.uint8).reshape(raw.height, raw.width, 4).copy()
    top = raw.height // 2 - side // 2
    left = raw.width // 2 - side // 2
    pixels[max(top, 0):top + side, max(left, 0):left + side] = 255
    return RawImage(pixels.tobytes(), raw.width, raw.height)


def flatten_rgba(pixels: np.ndarray) -> np.ndarray:
    """RGBA 合成到白底后转灰度（透明背景的二维码才不会变成全黑）"""
    rgb = pixels[..., :3].astype(np.float32)
    alpha = pixels[..., 3:4].astype(np.float32) / 255.0
    composed = rgb * alpha + 255.0 * (1.0 - alpha)
    return cv2.cvtColor(composed.astype(np.uint8), cv2.COLOR_RGB2GRAY)


def decode_rgba_buffer(data: bytes, width: int, height: int) -> Optional[str]:
    """用 OpenCV 识别原始 RGBA 缓冲区，失败返回 None"""
    if len(data) != width * height * 4:
        raise ValueError(f"buffer size {len(data)} does not match {width}x{height}x4")
    pixels = np.frombuffer(data, dtype=np.uint8).reshape(height, width, 4)
    gray = flatten_rgba(pixels)
    text, _, _ = cv2.QRCodeDetector().detectAndDecode(gray)
    return text or None


class DecodeStrategy(ABC):
    """识别策略基类"""

    name = "base"

    @abstractmethod
    def try_decode(self, image_bytes: bytes) -> Optional[str]:
        """
        尝试识别

        Returns:
            识别内容；未识别返回 None（也可以直接抛异常，由流水线捕获）
        """


class NativeBitmapStrategy(DecodeStrategy):
    """Pillow 位图 + zxing-cpp"""

    name = "zxing-bitmap"

    def try_decode(self, image_bytes: bytes) -> Optional[str]:
        image = open_image(image_bytes)
        if image.mode in ("RGBA", "LA", "PA", "P"):
            rgba = image.convert("RGBA")
            background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
            image = Image.alpha_composite(background, rgba)
        bitmap = np.asarray(image.convert("L"))
        for result in zxingcpp.read_barcodes(bitmap):
            if result.format in _QR_FORMATS and result.text:
                return result.text
        return None


class RawBufferStrategy(DecodeStrategy):
    """sRGB 原始 RGBA 缓冲区 + OpenCV"""

    name = "opencv-raw"

    def prepare(self, raw: RawImage) -> RawImage:
        return raw

    def try_decode(self, image_bytes: bytes) -> Optional[str]:
        raw = self.prepare(load_raw_rgba(image_bytes))
        return decode_rgba_buffer(raw.data, raw.width, raw.height)


class CenterMaskedStrategy(RawBufferStrategy):
    """先遮盖中心 LOGO 再识别"""

    name = "opencv-raw-masked"

    def __init__(self, ratio: float = MASK_RATIO):
        self.ratio = ratio

    def prepare(self, raw: RawImage) -> RawImage:
        return mask_center(raw, self.ratio)


def default_strategies() -> List[DecodeStrategy]:
    return [NativeBitmapStrategy(), RawBufferStrategy(), CenterMaskedStrategy()]


class DecodePipeline:
    """
    识别流水线

    Example:
        pipeline = DecodePipeline()
        result = pipeline.decode(image_bytes)
        if result.succeeded:
            print(result.strategy_used, result.payload)
    """

    def __init__(self, strategies: Optional[Sequence[DecodeStrategy]] = None):
        self.strategies: List[DecodeStrategy] = list(strategies) if strategies is not None else default_strategies()
        self.stats = {name: 0 for name in [s.name for s in self.strategies] + [EXHAUSTED]}

    def decode(self, image_bytes: bytes) -> DecodeResult:
        """
        依次尝试各策略

        Args:
            image_bytes: 图片原始字节

        Returns:
            DecodeResult；全部失败时 strategy_used 为 "exhausted"
        """
        if not image_bytes:
            return DecodeResult(strategy_used=EMPTY, succeeded=False)

        tried = []
        for strategy in self.strategies:
            tried.append(strategy.name)
            try:
                payload = strategy.try_decode(image_bytes)
            except Exception as e:
                logger.debug(f"   {strategy.name} 失败: {e}")
                continue
            if payload:
                self.stats[strategy.name] = self.stats.get(strategy.name, 0) + 1
                logger.debug(f"   ✓ {strategy.name} 识别成功: {payload[:50]}")
                return DecodeResult(payload=payload, strategy_used=strategy.name, succeeded=True, tried=tried)
            logger.debug(f"   {strategy.name} 未识别到二维码")

        self.stats[EXHAUSTED] += 1
        return DecodeResult(strategy_used=EXHAUSTED, succeeded=False, tried=tried)

    def get_stats(self) -> dict:
        return self.stats.copy()
