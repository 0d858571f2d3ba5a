"""Outbound settlement postback.

Single GET against the tracking endpoint with the clickid and amount in the
query string. One attempt, bounded by a total timeout; retrying is left to
the next settlement window. Non-2xx statuses, transport errors and timeouts
all come back as ``success=False`` with a readable message instead of
raising.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from urllib.parse import quote, urlencode

import aiohttp

from postback_settlement.config import POSTBACK_SETTINGS
from postback_settlement.utils import get_logger

logger = get_logger(__name__)


@dataclass
class NotificationResult:
    success: bool
    url: str
    response_body: str | None = None
    error_message: str | None = None
    status_code: int | None = None


def format_amount(amount: Decimal) -> str:
    return format(amount, "f")


class PostbackNotifier:
    def __init__(self, base_url: str | None = None, timeout_seconds: float | None = None):
        self.base_url = str(base_url or POSTBACK_SETTINGS["base_url"])
        self.timeout_seconds = float(timeout_seconds if timeout_seconds is not None else POSTBACK_SETTINGS["timeout_seconds"])

    def build_url(self, clickid: str, amount: Decimal) -> str:
        query = urlencode({"clickid": clickid, "sum": format_amount(amount)}, quote_via=quote)
        return f"{self.base_url}?{query}"

    async def send(self, clickid: str, amount: Decimal) -> NotificationResult:
        url = self.build_url(clickid, amount)
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)

        logger.info("Sending settlement postback", clickid=clickid, amount=str(amount), url=url)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    # Outcome depends on the status only; undecodable bytes are replaced
                    body = await response.text(errors="replace")
                    if not 200 <= response.status < 300:
                        logger.error("Postback rejected", status_code=response.status, url=url)
                        return NotificationResult(
                            success=False,
                            url=url,
                            response_body=body,
                            error_message=f"HTTP error! status: {response.status}",
                            status_code=response.status,
                        )
                    logger.info("Postback accepted", status_code=response.status, url=url)
                    return NotificationResult(success=True, url=url, response_body=body, status_code=response.status)

        except asyncio.TimeoutError:
            message = f"Postback request timed out after {self.timeout_seconds:g}s"
            logger.error("Postback timed out", url=url, timeout_seconds=self.timeout_seconds)
            return NotificationResult(success=False, url=url, error_message=message)

        except aiohttp.ClientError as e:
            logger.error("Postback transport error", url=url, error=str(e))
            return NotificationResult(success=False, url=url, error_message=f"Postback client error: {e}")


__all__ = ["PostbackNotifier", "NotificationResult", "format_amount"]
