from app.schemas.report import ReportItem, ReportsResponse, ReportStatistics
from app.schemas.webhook import WebhookEntry, WebhookPayload

__all__ = ["WebhookPayload", "WebhookEntry", "ReportItem", "ReportsResponse", "ReportStatistics"]
