# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import contextlib
import logging
from typing import Callable, Iterable, Type

from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI, Request, HTTPException
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware

from common.exception_handler import configure_exception_handlers
from common.logging.setup import configure_logging, get_log_id
from common.version import get_version
from common import config as conf

_logger = logging.getLogger(__name__)

LifespanFunction = Callable[[], contextlib.AbstractContextManager]


class ExtendedFastAPI(FastAPI):
    """
    FastAPI application as run by the issuer and the verifier agent.

    Features, enabled by the configuration:
     - documentation endpoints (ENABLE_DOCUMENTATION_ENDPOINTS)
     - CORS for the external url and ADDITIONAL_ALLOWED_ORIGINS (ENABLE_CORS)
     - exception details in the generic 500 response (ENABLE_DEBUG_MODE)

    Always present:
     - app name as title, version from the build environment
     - logging configured on startup, correlation id per request
     - OpenID error responses for CredentialErrors and invalid requests

    `lifespan_functions` are callables returning a context manager, entered on startup
    in the given order and exited in reverse order on shutdown.
    https://fastapi.tiangolo.com/reference/fastapi/
    """

    def __init__(
        self,
        config: Type[conf.Config],
        lifespan_functions: Iterable[LifespanFunction] = (),
        *args,
        **kwargs,
    ) -> None:
        self.config_instance = config()
        self.lifespan_functions: list[LifespanFunction] = [self._logging_lifespan, *lifespan_functions]

        kwargs.setdefault("title", self.config_instance.app_name)
        kwargs.setdefault("version", get_version())
        kwargs.setdefault("lifespan", ExtendedFastAPI.lifespan)
        if not self.config_instance.enable_documentation_endpoints:
            _logger.info("Deactivate documentation endpoints.")
            kwargs.update(docs_url=None, redoc_url=None, openapi_url=None)

        super().__init__(*args, **kwargs)

        if self.config_instance.enable_cors:
            self._enable_cors()
        self.add_middleware(CorrelationIdMiddleware)
        configure_exception_handlers(self)
        self.add_exception_handler(Exception, self.unhandled_exception_handler)

    @contextlib.contextmanager
    def _logging_lifespan(self) -> contextlib.AbstractContextManager:
        configure_logging(self.config_instance)
        yield

    @staticmethod
    @contextlib.asynccontextmanager
    async def lifespan(app: "ExtendedFastAPI") -> contextlib.AbstractAsyncContextManager:
        with contextlib.ExitStack() as stack:
            for lifespan_function in app.lifespan_functions:
                stack.enter_context(lifespan_function())
            yield

    def _enable_cors(self) -> None:
        _logger.info("Activate CORs support.")
        allowed_origins = [self.config_instance.external_url or '*']
        if self.config_instance.additional_allowed_origins:
            allowed_origins += self.config_instance.additional_allowed_origins.split(',')
        self.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    async def unhandled_exception_handler(self, request: Request, exc: Exception):
        if not isinstance(exc, HTTPException):
            # fastapi/starlette log the original error
            _logger.error("Unhandled exception detected.")
            detail = f'Could not process the request. Please contact support with request id {get_log_id()}'
            if self.config_instance.enable_debug_mode:
                detail = f'{detail}. {exc!r}'
            exc = HTTPException(500, detail)

        return await http_exception_handler(request, exc)
