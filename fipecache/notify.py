# fipecache/notify.py
"""Optional Slack notifications for refresh outcomes.

Nothing is sent unless SLACK_WEBHOOK_URL is set. Delivery problems are
logged and never fail the refresh that triggered them.
"""
import os
from typing import Dict
import requests
from dotenv import load_dotenv
from .utils import logger

load_dotenv()


def _post(payload: Dict) -> bool:
    url = os.getenv("SLACK_WEBHOOK_URL")
    if not url:
        return False
    try:
        r = requests.post(url, json=payload, timeout=10)
        r.raise_for_status()
        return True
    except requests.RequestException as e:
        logger.error("Slack notification failed: %s", e)
        return False


def send_refresh_report(stats: Dict[str, int], duration: float) -> bool:
    text = (
        "*FIPE refresh completed*\n\n"
        f"• Brands: {stats.get('brands', 0)}\n"
        f"• Models: {stats.get('models', 0)}\n"
        f"• Years: {stats.get('years', 0)}\n"
        f"• Values: {stats.get('values', 0)}\n\n"
        f"*Duration:* {duration:.2f} s"
    )
    return _post({
        "text": "FIPE refresh completed",
        "blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": text}}],
    })


def send_refresh_failure(message: str) -> bool:
    text = f"*FIPE refresh failed*\n\n*Error:* {message}\n\nCheck the service logs for details."
    return _post({
        "text": "FIPE refresh failed",
        "blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": text}}],
    })
