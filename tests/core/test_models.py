"""
数据模型与 CrawlRunState 单元测试
"""
import unittest

from pydantic import ValidationError

from core.models import (
    CrawlRunState,
    DecodeResult,
    FrontierEntry,
    QrFinding,
    normalize_url,
)
from exceptions import DecodeExhausted


class TestNormalizeUrl(unittest.TestCase):

    def test_lowercase_scheme_and_host(self):
        self.assertEqual(normalize_url("HTTPS://Example.COM/Path"), "https://example.com/Path")

    def test_drop_fragment(self):
        self.assertEqual(normalize_url("https://example.com/a#top"), "https://example.com/a")

    def test_empty_path(self):
        self.assertEqual(normalize_url("https://example.com"), "https://example.com/")

    def test_default_port_dropped(self):
        self.assertEqual(normalize_url("https://Example.com:443/a"), "https://example.com/a")
        self.assertEqual(normalize_url("http://example.com:80"), "http://example.com/")
        self.assertEqual(normalize_url("https://example.com:8443/a"), "https://example.com:8443/a")

    def test_query_kept(self):
        self.assertEqual(normalize_url("https://example.com/a?x=1"), "https://example.com/a?x=1")


class TestFrontierEntry(unittest.TestCase):

    def test_negative_depth_rejected(self):
        with self.assertRaises(ValidationError):
            FrontierEntry(url="https://example.com/", depth=-1)

    def test_frozen(self):
        entry = FrontierEntry(url="https://example.com/", depth=1)
        with self.assertRaises(ValidationError):
            entry.depth = 2


class TestDecodeResult(unittest.TestCase):

    def test_unwrap_success(self):
        self.assertEqual(DecodeResult(payload="x", strategy_used="a", succeeded=True).unwrap(), "x")

    def test_unwrap_failure(self):
        with self.assertRaises(DecodeExhausted) as ctx:
            DecodeResult(strategy_used="exhausted", tried=["a", "b"]).unwrap()
        self.assertEqual(ctx.exception.tried, ["a", "b"])


class TestQrFinding(unittest.TestCase):

    def test_create_evaluates_variant(self):
        finding = QrFinding.create("https://p/", "https://p/qr.png", "https://weixin.qq.com/r/abc", depth=2)
        self.assertTrue(finding.is_wechat_variant)
        self.assertEqual(finding.depth, 2)

    def test_create_plain(self):
        finding = QrFinding.create("https://p/", "https://p/qr.png", "hello")
        self.assertFalse(finding.is_wechat_variant)


class TestCrawlRunState(unittest.TestCase):

    def test_fifo(self):
        state = CrawlRunState("https://example.com/")
        state.enqueue("https://example.com/a", 1)
        state.enqueue("https://example.com/b", 1)
        self.assertEqual(state.pop().url, "https://example.com/a")
        self.assertEqual(state.pop().url, "https://example.com/b")

    def test_rejects_queued_duplicate(self):
        state = CrawlRunState("https://example.com/")
        self.assertTrue(state.enqueue("https://example.com/a", 1))
        self.assertFalse(state.enqueue("https://EXAMPLE.com/a#frag", 2))
        self.assertEqual(len(state.queue), 1)

    def test_default_port_same_key(self):
        state = CrawlRunState("https://example.com/")
        state.mark_visited("https://example.com/")
        self.assertFalse(state.enqueue("https://example.com:443/", 1))

    def test_rejects_visited(self):
        state = CrawlRunState("https://example.com/")
        state.mark_visited("https://example.com/a")
        self.assertFalse(state.enqueue("https://example.com/a", 1))
        self.assertEqual(state.processed_count, 1)

    def test_to_result(self):
        state = CrawlRunState("https://example.com/")
        state.mark_visited("https://example.com/")
        state.add_finding(QrFinding.create("https://example.com/", "i", "wxp://x"))
        state.add_finding(QrFinding.create("https://example.com/", "j", "plain"))
        result = state.to_result()
        self.assertEqual(result.total_pages, 1)
        self.assertEqual(result.total_qr_codes, 2)
        self.assertEqual(result.variant_count, 1)
        self.assertFalse(result.cancelled)

    def test_runs_are_independent(self):
        a = CrawlRunState("https://example.com/")
        b = CrawlRunState("https://example.com/")
        a.mark_visited("https://example.com/")
        self.assertFalse(b.is_visited("https://example.com/"))


if __name__ == "__main__":
    unittest.main()
