"""
CLI命令定义（argparse）
"""
import argparse


def create_parser() -> argparse.ArgumentParser:
    """
    创建命令行参数解析器

    Returns:
        ArgumentParser 实例
    """
    parser = argparse.ArgumentParser(
        prog='spider.py',
        description='二维码网页爬虫 (子命令模式)',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
示例:
  # 批量扫描：每个URL独立扫描，不跟随链接
  python spider.py scan "https://example.com/a" "https://example.com/b"
  python spider.py scan --file urls.txt --output results.json

  # 整站爬取：从种子URL广度优先爬取同站页面
  python spider.py crawl "https://example.com/" --max-depth 2 --max-pages 20
  python spider.py crawl "https://example.com/" --stream
        '''
    )

    parser.add_argument('-v', '--verbose', action='store_true', help='输出调试日志')

    # 创建子命令
    subparsers = parser.add_subparsers(dest='command', help='子命令', required=True)

    # ============================================================================
    # 子命令: scan - 批量扫描URL列表
    # ============================================================================
    parser_scan = subparsers.add_parser('scan', help='批量扫描：每个URL返回一条结果（优先微信二维码）')
    parser_scan.add_argument('urls', type=str, nargs='*', help='页面URL（可多个）')
    parser_scan.add_argument('--file', type=str, default=None,
                             help='URL列表文件，每行一个（# 开头为注释）')
    parser_scan.add_argument('--output', type=str, default=None,
                             help='结果输出为 JSON 文件')
    parser_scan.add_argument('--no-progress', dest='progress', action='store_false',
                             help='不显示进度条')

    # ============================================================================
    # 子命令: crawl - 整站爬取
    # ============================================================================
    parser_crawl = subparsers.add_parser('crawl', help='整站爬取：从种子URL出发广度优先查找二维码')
    parser_crawl.add_argument('seed', type=str, help='种子URL')
    parser_crawl.add_argument('--max-depth', type=int, default=None,
                              help='最大深度（1-5，默认 3）')
    parser_crawl.add_argument('--max-pages', type=int, default=None,
                              help='最大页面数（1-200，默认 50）')
    parser_crawl.add_argument('--delay-ms', type=int, default=None,
                              help='页面间延时毫秒（500-10000，默认 1000）')
    parser_crawl.add_argument('--stream', action='store_true',
                              help='逐行输出 JSON 事件')
    parser_crawl.add_argument('--output', type=str, default=None,
                              help='结果输出为 JSON 文件')

    return parser
