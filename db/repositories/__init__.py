"""
Repository layer exports.
"""

from db.repositories.scraping_task_repository import (
    ScrapedItemRepository,
    ScrapingTaskRepository,
    TaskLogRepository,
    WebsiteAnalysisRepository,
)

__all__ = [
    "ScrapingTaskRepository",
    "ScrapedItemRepository",
    "TaskLogRepository",
    "WebsiteAnalysisRepository",
]
