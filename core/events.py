"""
事件流模块

爬取过程中产生的有序事件，以及消费事件的几种 sink：
- CollectingSink: 收集到列表（批量/一次性返回）
- CallbackSink: 逐个转发给回调（实时推送）
- EventChannel: 有界 asyncio.Queue，一个生产者一个消费者，可 async for 迭代
"""
import asyncio
import contextlib
import inspect
from typing import Any, Awaitable, Callable, List, Literal, Optional, Protocol, Union

from loguru import logger
from pydantic import BaseModel

from core.models import QrFinding


class BaseEvent(BaseModel):
    sequence: int = 0
    message: str = ""


class PageEvent(BaseEvent):
    type: Literal["page"] = "page"
    processed_count: int
    url: str
    depth: int
    total_qr_codes: int


class QrFoundEvent(BaseEvent):
    type: Literal["qr_found"] = "qr_found"
    finding: QrFinding
    total_qr_codes: int


class ErrorEvent(BaseEvent):
    type: Literal["error"] = "error"
    error: str
    url: Optional[str] = None


class SummaryEvent(BaseEvent):
    type: Literal["summary"] = "summary"
    total_pages: int
    total_qr_codes: int
    variant_count: int
    cancelled: bool = False


Event = Union[PageEvent, QrFoundEvent, ErrorEvent, SummaryEvent]


class EventSink(Protocol):
    """事件消费方"""

    async def emit(self, event: Event) -> None:
        ...


class CollectingSink:
    """把事件按顺序收集到列表"""

    def __init__(self):
        self.events: List[Event] = []

    async def emit(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> List[Event]:
        return [e for e in self.events if e.type == event_type]


class CallbackSink:
    """把事件转发给回调，回调可以是同步或异步函数"""

    def __init__(self, callback: Callable[[Event], Union[None, Awaitable[None]]]):
        self.callback = callback

    async def emit(self, event: Event) -> None:
        result = self.callback(event)
        if inspect.isawaitable(result):
            await result


_CLOSED = object()


class EventChannel:
    """
    有界事件通道

    生产者（爬取循环）emit，消费者 async for 迭代；队列满时生产者等待，
    形成背压。close() 之后迭代在取完剩余事件后结束。

    Example:
        channel = EventChannel(maxsize=100)
        async for event in channel:
            ...
    """

    def __init__(self, maxsize: int = 100):
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._detached = False

    async def emit(self, event: Event) -> None:
        if self._detached:
            return
        if self._closed:
            raise RuntimeError("event channel is closed")
        await self.queue.put(event)

    async def close(self) -> None:
        """关闭通道；队列满时等待消费方取走事件"""
        if self._closed:
            return
        self._closed = True
        await self.queue.put(_CLOSED)

    def close_nowait(self) -> None:
        """消费方已离开时关闭通道，不等待"""
        if self._closed:
            return
        self._closed = True
        with contextlib.suppress(asyncio.QueueFull):
            self.queue.put_nowait(_CLOSED)

    def detach(self) -> None:
        """消费方离开：丢弃已缓冲和之后的事件，生产者不会再阻塞"""
        self._detached = True
        while not self.queue.empty():
            self.queue.get_nowait()

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self):
        return self

    async def __anext__(self) -> Event:
        item = await self.queue.get()
        if item is _CLOSED:
            # 再次迭代时同样立即结束
            self.queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item


class EventStream:
    """
    单次运行的事件发射器

    给事件打上递增序号后交给 sink；没有 sink 时只计数。
    """

    def __init__(self, sink: Optional[EventSink] = None):
        self.sink = sink
        self.sequence = 0

    async def _emit(self, event: Event) -> Event:
        self.sequence += 1
        event.sequence = self.sequence
        if self.sink is not None:
            await self.sink.emit(event)
        return event

    async def page(self, processed_count: int, max_pages: int, url: str, depth: int, total_qr_codes: int) -> Event:
        return await self._emit(PageEvent(
            message=f"正在扫描页面 {processed_count}/{max_pages}",
            processed_count=processed_count,
            url=url,
            depth=depth,
            total_qr_codes=total_qr_codes,
        ))

    async def qr_found(self, finding: QrFinding, total_qr_codes: int) -> Event:
        kind = "微信二维码" if finding.is_wechat_variant else "普通二维码"
        return await self._emit(QrFoundEvent(
            message=f"发现二维码: {kind}",
            finding=finding,
            total_qr_codes=total_qr_codes,
        ))

    async def error(self, error: Any, url: Optional[str] = None) -> Event:
        message = f"页面处理失败: {url}" if url else "处理失败"
        return await self._emit(ErrorEvent(message=message, error=str(error), url=url))

    async def summary(self, total_pages: int, total_qr_codes: int, variant_count: int, cancelled: bool = False) -> Event:
        logger.debug(f"📨 已发送 {self.sequence} 个事件，发送汇总")
        return await self._emit(SummaryEvent(
            message=f"爬取完成，共找到 {total_qr_codes} 个二维码",
            total_pages=total_pages,
            total_qr_codes=total_qr_codes,
            variant_count=variant_count,
            cancelled=cancelled,
        ))
