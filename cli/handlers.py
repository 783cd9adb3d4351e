"""
CLI命令处理函数
"""
import json
from pathlib import Path
from typing import Any, List, Optional

from loguru import logger

from config import build_spider_config
from core.models import BatchResult, CrawlResult
from exceptions import QRSpiderError
from spiders import QRSpider


def read_url_file(path: str) -> List[str]:
    """读取URL列表文件：每行一个，忽略空行和 # 注释"""
    urls = []
    with open(path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith('#'):
                urls.append(line)
    return urls


def write_json(path: str, data: Any):
    """把结果写成 JSON 文件"""
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, 'w', encoding='utf-8') as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    logger.info(f"💾 结果已保存: {output}")


def print_batch_results(results: List[BatchResult]):
    """输出批量扫描结果"""
    print("\n" + "=" * 60)
    for result in results:
        if result.error:
            print(f"[{result.index}] ❌ {result.url}\n      {result.error}")
            continue
        kind = "微信二维码" if result.is_wechat_variant else "二维码"
        print(f"[{result.index}] ✅ {result.url}")
        print(f"      {kind}: {result.content}")
        print(f"      图片: {result.image_url}")
        if result.total_qr_found > 1:
            print(f"      本页共 {result.total_qr_found} 个二维码")
    print("=" * 60)


def print_crawl_result(result: CrawlResult):
    """输出整站爬取结果"""
    print("\n" + "=" * 60)
    status = "（已取消）" if result.cancelled else ""
    print(f"🕷️  {result.seed_url} 爬取完成{status}")
    print(f"  页面数: {result.total_pages}")
    print(f"  二维码: {result.total_qr_codes}（微信 {result.variant_count}）")
    for finding in result.findings:
        print(f"  - [深度{finding.depth}] {finding.payload}")
        print(f"      页面: {finding.source_url}")
        print(f"      图片: {finding.image_url}")
    print("=" * 60)


def print_statistics(spider):
    """输出统计信息"""
    stats = spider.get_statistics()
    images = stats.get('images', {})
    print("\n" + "=" * 60)
    print("📊 爬取统计:")
    print(f"  页面扫描: {stats['pages_scanned']}")
    print(f"  页面失败: {stats['pages_failed']}")
    print(f"  检查图片: {images.get('images_checked', 0)}")
    print(f"  图片失败: {images.get('images_failed', 0)}")
    print(f"  二维码: {stats['qr_found']}（微信 {stats['wechat_qr_found']}）")
    decoder = stats.get('decoder', {})
    if decoder:
        print(f"  识别策略: {decoder}")
    print("=" * 60)


async def handle_scan(args) -> Optional[List[BatchResult]]:
    """处理 scan 子命令"""
    urls = list(args.urls or [])
    if args.file:
        try:
            urls.extend(read_url_file(args.file))
        except OSError as e:
            logger.error(f"❌ 无法读取URL文件 {args.file}: {e}")
            return None

    print(f"\n📌 命令: 批量扫描 {len(urls)} 个URL")

    try:
        async with QRSpider() as spider:
            results = await spider.scan_urls(urls, show_progress=getattr(args, 'progress', True))
            print_batch_results(results)
            print_statistics(spider)
    except QRSpiderError as e:
        logger.error(f"❌ {e}")
        return None

    if args.output:
        write_json(args.output, [r.model_dump(mode='json') for r in results])
    return results


async def handle_crawl(args) -> Optional[CrawlResult]:
    """处理 crawl 子命令"""
    print(f"\n📌 命令: 整站爬取")
    print(f"种子: {args.seed}")

    try:
        spider_config = build_spider_config(
            max_depth=args.max_depth,
            max_pages=args.max_pages,
            delay_ms=args.delay_ms,
        )
        async with QRSpider() as spider:
            if args.stream:
                result = await _stream_crawl(spider, args.seed, spider_config)
            else:
                result = await spider.crawl(args.seed, spider_config)
                print_crawl_result(result)
            print_statistics(spider)
    except QRSpiderError as e:
        logger.error(f"❌ {e}")
        return None

    if args.output:
        write_json(args.output, result.model_dump(mode='json'))
    return result


async def _stream_crawl(spider: QRSpider, seed: str, spider_config) -> CrawlResult:
    """逐行打印事件 JSON，同时汇总出 CrawlResult"""
    result = CrawlResult(seed_url=seed)
    async for event in spider.crawl_stream(seed, spider_config):
        print(event.model_dump_json(), flush=True)
        if event.type == 'qr_found':
            result.findings.append(event.finding)
        elif event.type == 'summary':
            result.total_pages = event.total_pages
            result.total_qr_codes = event.total_qr_codes
            result.variant_count = event.variant_count
            result.cancelled = event.cancelled
    return result
