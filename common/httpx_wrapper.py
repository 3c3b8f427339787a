# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""Wrapper for httpx functions to add additional context"""

from common import config as conf


import httpx
from httpx import ConnectError, TimeoutException


def request(method: str, url: str, config: conf.Config, **kwargs) -> httpx.Response:
    """Wrapper for httpx.request call, on error adds additional information to exception
    By default httpx.Connection error only provides '[Errno -2] Name or service not known'
    Throws httpx.ConnectError or httpx.TimeoutException with URL & ssl verification status on failure to
        get an answer of the service within the configured timeout
    """
    try:
        return httpx.request(method, url, verify=config.enable_ssl_verification, timeout=config.http_timeout, **kwargs)
    except (ConnectError, TimeoutException) as e:
        error_msg = f"Failed to {method} {url=} with {config.enable_ssl_verification=} {config.http_timeout=}"
        e.add_note(error_msg)
        raise


def get(url: str, config: conf.Config, **kwargs) -> httpx.Response:
    return request("GET", url, config, **kwargs)
