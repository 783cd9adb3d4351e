"""
二维码网页爬虫 - 命令行入口

子命令：
- scan: 批量扫描URL列表，每个URL一条结果
- crawl: 从种子URL整站爬取，支持 --stream 逐行输出事件
"""
import asyncio
import sys
from typing import List, Optional

from loguru import logger

from cli import create_parser, handle_crawl, handle_scan
from config import config


def setup_logging(verbose: bool = False):
    """配置日志：终端彩色输出 + 文件轮转"""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level="DEBUG" if verbose else config.log.log_level,
        colorize=True
    )

    config.log.log_dir.mkdir(parents=True, exist_ok=True)
    logger.add(
        config.log.log_dir / config.log.log_file,
        rotation=config.log.rotation,
        retention=config.log.retention,
        encoding="utf-8",
        level="DEBUG"
    )


async def main(argv: Optional[List[str]] = None) -> int:
    """主函数 - 子命令模式"""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    print("\n" + "=" * 60)
    print("🕷️  二维码网页爬虫")
    print("=" * 60)

    # 根据子命令执行相应操作
    if args.command == 'scan':
        result = await handle_scan(args)
    elif args.command == 'crawl':
        result = await handle_crawl(args)
    else:
        parser.error(f"unknown command: {args.command}")
        return 2

    return 0 if result is not None else 1


def cli_main():
    """控制台脚本入口"""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.warning("⏹️  用户中断")
        sys.exit(130)


if __name__ == "__main__":
    cli_main()
