"""
Federation instance crawler that follows /following and /followers collections
from a seed instance concurrently, routing onion hosts through a SOCKS proxy.
Outputs an HTML and a JSON report of alive and dead instances.
"""
from fedcrawler.core import crawl, Crawler, CrawlStats, SeenRegistry
from fedcrawler.report import build_report, InstanceReport

__version__ = "1.0.0"
__all__ = ["crawl", "Crawler", "CrawlStats", "SeenRegistry", "build_report", "InstanceReport"]
