"""
Website verification for staged vendors.

A website is 'valid' when it answers with a 2xx, a redirect (301/302) or
a status that proves the host is alive but refuses bots (403/405). HEAD is
tried first and GET is the fallback for servers that mishandle HEAD.
Verification never raises: any failure becomes 'error'.
"""

import logging
from typing import Optional

from django.conf import settings

import requests

from apps.core.metrics import increment_website_check
from apps.core.security import SafeHTTPClient, SSRFError, SSRFGuard

from .models import StagedVendor

logger = logging.getLogger(__name__)

ALIVE_STATUS_CODES = {301, 302, 403, 405}


def normalize_website(url: str) -> str:
    url = (url or '').strip()
    if url and not url.lower().startswith(('http://', 'https://')):
        url = f"https://{url}"
    return url


def is_alive_status(status_code: int) -> bool:
    return 200 <= status_code < 300 or status_code in ALIVE_STATUS_CODES


class WebsiteVerifier:
    """
    Checks that a vendor's website answers.

    Usage:
        with WebsiteVerifier() as verifier:
            result = verifier.verify("example.com")  # 'valid' | 'invalid' | 'error' | 'no_url'
    """

    def __init__(self, client: Optional[SafeHTTPClient] = None, timeout: Optional[int] = None):
        timeout = timeout or settings.DISCOVERY_VERIFY_TIMEOUT
        self.client = client or SafeHTTPClient(
            timeout=timeout,
            max_retries=0,
            user_agent=settings.DISCOVERY_VERIFY_USER_AGENT,
            ssrf_guard=SSRFGuard(allow_private_ips=settings.DISCOVERY_VERIFY_ALLOW_PRIVATE_IPS),
        )

    def verify(self, url: str) -> str:
        result = self._verify(url)
        increment_website_check(result)
        return result

    def _verify(self, url: str) -> str:
        url = normalize_website(url)
        if not url:
            return StagedVendor.WEBSITE_NO_URL

        try:
            status_code = self._head_status(url)
            if status_code is None:
                status_code = self._get_status(url)
        except SSRFError as e:
            logger.info(f"Website {url} blocked: {e}")
            return StagedVendor.WEBSITE_INVALID
        except requests.RequestException as e:
            logger.info(f"Website {url} unreachable: {e}")
            return StagedVendor.WEBSITE_ERROR
        except Exception:
            logger.exception(f"Unexpected error verifying website {url}")
            return StagedVendor.WEBSITE_ERROR

        if is_alive_status(status_code):
            return StagedVendor.WEBSITE_VALID
        return StagedVendor.WEBSITE_INVALID

    def _head_status(self, url: str) -> Optional[int]:
        """HEAD status, or None when HEAD itself fails and GET should be tried."""
        try:
            response = self.client.head(url)
        except SSRFError:
            raise
        except requests.RequestException as e:
            logger.debug(f"HEAD {url} failed, falling back to GET: {e}")
            return None
        return response.status_code

    def _get_status(self, url: str) -> int:
        response = self.client.get(url)
        try:
            return response.status_code
        finally:
            response.close()

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
