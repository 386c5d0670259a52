"""Shared HTTP helpers for the command-line client.

Encapsulates common request/timeout error handling so callers avoid
duplicating try/except blocks.
"""
from __future__ import annotations

import logging
import sys
from typing import Any

import requests

from constants import Constants, ExitCodes
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


def _request(method: str, url: str, *, context: str, **kwargs: Any) -> requests.Response:
    safe_target = safe_url(url)
    with Timer() as t:
        try:
            res = requests.request(method, url, timeout=Constants.REQUEST_TIMEOUT, **kwargs)
        except requests.Timeout:
            logger.error(
                "%s request timed out after %s seconds",
                context,
                Constants.REQUEST_TIMEOUT,
            )
            sys.exit(ExitCodes.CONNECTION_ERROR.value)
        except requests.RequestException as exc:  # includes ConnectionError
            logger.error("%s connection error: %s", context, exc)
            sys.exit(ExitCodes.CONNECTION_ERROR.value)

        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action=method,
                    status_code=res.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context,
                ),
            )
        return res


def safe_get(url: str, *, context: str, **kwargs: Any) -> requests.Response:
    """Perform a GET request with consistent error handling.

    Args:
        url: Target URL.
        context: Human-readable source tag for logs (e.g., "versions").
        **kwargs: Passed through to requests.

    Returns:
        requests.Response: The HTTP response object.
    """
    return _request("GET", url, context=context, **kwargs)


def safe_post(url: str, *, context: str, **kwargs: Any) -> requests.Response:
    """Perform a POST request with consistent error handling.

    Args:
        url: Target URL.
        context: Human-readable source tag for logs (e.g., "publish").
        **kwargs: Passed through to requests (params, files, data...).

    Returns:
        requests.Response: The HTTP response object.
    """
    return _request("POST", url, context=context, **kwargs)
