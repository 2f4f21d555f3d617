"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.scraped_item import ScrapedItem
from db.models.scraping_task import ScrapingTask
from db.models.task_log import TaskLog
from db.models.website_analysis import WebsiteAnalysis

__all__ = [
    "ScrapingTask",
    "ScrapedItem",
    "TaskLog",
    "WebsiteAnalysis",
]
