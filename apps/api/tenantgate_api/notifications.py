"""Delivery of account links (verification, password reset).

No mail transport is wired in yet; outside production the link is logged so
local flows can be completed by hand.
"""

import logging

from tenantgate_api.settings import get_settings

logger = logging.getLogger(__name__)


def deliver_link(email: str, subject: str, url: str) -> None:
    settings = get_settings()
    if settings.is_production:
        logger.warning(f"No mail transport configured; dropped '{subject}' message")
        return
    logger.info(f"[dev mail] to={email} subject={subject!r} link={url}")
