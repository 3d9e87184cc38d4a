"""Dependency crawling."""

from .crawler import CrawlResult, CrawlSession, Crawler, crawl

__all__ = [
    "CrawlResult",
    "CrawlSession",
    "Crawler",
    "crawl",
]
