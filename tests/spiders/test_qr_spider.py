"""
QRSpider 单元测试：批量模式、整站爬取、流式事件
"""
import unittest
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

from core.decoder import DecodePipeline
from core.events import CollectingSink
from core.frontier import CrawlFrontier
from core.models import QrFinding
from exceptions import ConfigurationError, InvalidSeedError
from fakes import BytesAsPayload, FakeDownloader, FakeSite
from qr_images import make_qr_png
from spiders.qr_spider import NO_QR_FOUND, QRSpider, select_finding

SEED = "https://example.test/"


def _spider(site, images, pipeline=None):
    """页面获取与图片下载替换为假实现"""
    spider = QRSpider(pipeline=pipeline or DecodePipeline([BytesAsPayload()]))
    spider.page_fetcher.fetch = site.fetch
    spider.downloader.download = FakeDownloader(images).download
    return spider


class TestSelectFinding(unittest.TestCase):

    def test_prefers_wechat(self):
        findings = [
            QrFinding.create("p", "i1", "plain"),
            QrFinding.create("p", "i2", "wxp://abc"),
        ]
        self.assertEqual(select_finding(findings).image_url, "i2")

    def test_first_when_no_wechat(self):
        findings = [QrFinding.create("p", "i1", "a"), QrFinding.create("p", "i2", "b")]
        self.assertEqual(select_finding(findings).payload, "a")

    def test_empty(self):
        self.assertIsNone(select_finding([]))


class TestScanUrls(unittest.TestCase):
    """批量模式"""

    def test_real_qr_wechat_variant(self):
        url = "https://example.test/page-with-qr"
        site = FakeSite({url: '<html><body><img src="/img/qr.png" alt="扫码"></body></html>'})
        images = {"https://example.test/img/qr.png": make_qr_png("https://weixin.qq.com/r/abc")}
        spider = _spider(site, images, pipeline=DecodePipeline())

        async def run():
            return await spider.scan_urls([url])

        results = asyncio.run(run())
        self.assertEqual(len(results), 1)
        result = results[0]
        self.assertIsNone(result.error)
        self.assertTrue(result.is_wechat_variant)
        self.assertEqual(result.content, "https://weixin.qq.com/r/abc")
        self.assertEqual(result.image_url, "https://example.test/img/qr.png")
        self.assertEqual(result.index, 1)

    def test_prefers_wechat_and_reports_all(self):
        url = "https://example.test/two"
        site = FakeSite({url: '<img src="/a.png"><img src="/b.png">'})
        images = {
            "https://example.test/a.png": b"QR:plain",
            "https://example.test/b.png": b"QR:https://mp.weixin.qq.com/s/x",
        }

        async def run():
            return await _spider(site, images).scan_urls([url])

        result = asyncio.run(run())[0]
        self.assertEqual(result.content, "https://mp.weixin.qq.com/s/x")
        self.assertEqual(result.total_qr_found, 2)
        self.assertEqual([f.payload for f in result.all_qr_codes], ["plain", "https://mp.weixin.qq.com/s/x"])

    def test_per_url_errors_and_order(self):
        site = FakeSite({
            "https://example.test/ok": '<img src="/q.png">',
            "https://example.test/empty": "<p>nothing</p>",
        })
        images = {"https://example.test/q.png": b"QR:hello"}
        urls = [
            "https://example.test/missing",
            "https://example.test/ok",
            "not-a-url",
            "https://example.test/empty",
        ]

        async def run():
            spider = _spider(site, images)
            return spider, await spider.scan_urls(urls)

        spider, results = asyncio.run(run())
        self.assertEqual([r.url for r in results], urls)
        self.assertEqual([r.index for r in results], [1, 2, 3, 4])
        self.assertIn("404", results[0].error)
        self.assertEqual(results[1].content, "hello")
        self.assertIsNone(results[1].error)
        self.assertIn("Invalid seed URL", results[2].error)
        self.assertEqual(results[3].error, NO_QR_FOUND)
        stats = spider.get_statistics()
        self.assertEqual(stats["pages_failed"], 2)
        self.assertEqual(stats["qr_found"], 1)

    def test_no_link_following(self):
        site = FakeSite({"https://example.test/a": '<a href="/b">b</a>', "https://example.test/b": ""})

        async def run():
            await _spider(site, {}).scan_urls(["https://example.test/a"])

        asyncio.run(run())
        self.assertEqual(site.fetched, ["https://example.test/a"])

    def test_list_size_limits(self):
        spider = _spider(FakeSite({}), {})

        async def run(urls):
            return await spider.scan_urls(urls)

        with self.assertRaises(ConfigurationError):
            asyncio.run(run([]))
        with self.assertRaises(ConfigurationError):
            asyncio.run(run([f"https://example.test/{i}" for i in range(101)]))
        with self.assertRaises(ConfigurationError):
            asyncio.run(run("https://example.test/"))


@patch.object(CrawlFrontier, "_wait_politely", new_callable=AsyncMock)
class TestCrawl(unittest.TestCase):
    """整站爬取"""

    def _site(self):
        return FakeSite({
            SEED: '<img src="/q1.png">' + '<a href="/a">a</a><a href="/b">b</a><a href="https://other.test/">x</a>',
            "https://example.test/a": '<img src="/q2.png"><a href="/c">c</a>',
            "https://example.test/b": "",
            "https://example.test/c": '<img src="/q3.png">',
        })

    def _images(self):
        return {
            "https://example.test/q1.png": b"QR:wxp://one",
            "https://example.test/q2.png": b"QR:two",
            "https://example.test/q3.png": b"QR:three",
        }

    def test_crawl_result(self, _wait):
        site = self._site()
        sink = CollectingSink()

        async def run():
            return await _spider(site, self._images()).crawl(SEED, {"max_depth": 2}, sink=sink)

        result = asyncio.run(run())
        self.assertEqual(result.seed_url, SEED)
        self.assertEqual(result.total_pages, 4)
        self.assertEqual(result.total_qr_codes, 3)
        self.assertEqual(result.variant_count, 1)
        self.assertFalse(result.cancelled)
        self.assertEqual([f.depth for f in result.findings], [0, 1, 2])
        summary = sink.events[-1]
        self.assertEqual((summary.total_pages, summary.total_qr_codes), (4, 3))

    def test_crawl_uses_default_config(self, _wait):
        site = self._site()

        async def run():
            return await _spider(site, self._images()).crawl(SEED)

        self.assertEqual(asyncio.run(run()).total_pages, 4)

    def test_crawl_invalid_config(self, _wait):
        site = self._site()

        async def run():
            await _spider(site, {}).crawl(SEED, {"max_pages": 0})

        with self.assertRaises(ConfigurationError):
            asyncio.run(run())
        self.assertEqual(site.fetched, [])

    def test_stream_yields_all_events(self, _wait):
        site = self._site()

        async def run():
            spider = _spider(site, self._images())
            return [event async for event in spider.crawl_stream(SEED, {"max_depth": 2})]

        events = asyncio.run(run())
        self.assertEqual(events[-1].type, "summary")
        self.assertEqual(len([e for e in events if e.type == "page"]), 4)
        self.assertEqual(len([e for e in events if e.type == "qr_found"]), 3)
        self.assertEqual([e.sequence for e in events], list(range(1, len(events) + 1)))

    def test_stream_small_buffer(self, _wait):
        site = self._site()

        async def run():
            spider = _spider(site, self._images())
            events = []
            async for event in spider.crawl_stream(SEED, {"max_depth": 2, "event_buffer": 1}):
                await asyncio.sleep(0)
                events.append(event)
            return events

        self.assertEqual(asyncio.run(run())[-1].type, "summary")

    def test_stream_consumer_stop_cancels(self, _wait):
        site = self._site()

        async def run():
            spider = _spider(site, self._images())
            stream = spider.crawl_stream(SEED, {"max_depth": 2})
            first = await stream.__anext__()
            await stream.aclose()
            return first

        first = asyncio.run(run())
        self.assertEqual(first.type, "page")
        self.assertEqual(site.fetched, [SEED])

    def test_stream_validation_before_events(self, _wait):
        site = self._site()

        async def collect(seed, cfg):
            return [e async for e in _spider(site, {}).crawl_stream(seed, cfg)]

        with self.assertRaises(ConfigurationError):
            asyncio.run(collect(SEED, {"delay_ms": 1}))
        with self.assertRaises(InvalidSeedError):
            asyncio.run(collect("mailto:someone@example.test", None))
        self.assertEqual(site.fetched, [])


class TestSpiderLifecycle(unittest.TestCase):

    @patch("spiders.base.aiohttp.ClientSession")
    def test_shared_session(self, mock_session_cls):
        session = MagicMock()
        session.close = AsyncMock(return_value=None)
        mock_session_cls.return_value = session

        async def run():
            async with QRSpider() as spider:
                self.assertIs(spider.page_fetcher.session, session)
                self.assertIs(spider.downloader.session, session)
            self.assertIsNone(spider.session)
            session.close.assert_awaited_once()

        asyncio.run(run())

    def test_statistics_shape(self):
        stats = QRSpider().get_statistics()
        for key in ("pages_scanned", "pages_failed", "qr_found", "wechat_qr_found", "images", "decoder"):
            self.assertIn(key, stats)


if __name__ == "__main__":
    unittest.main()
