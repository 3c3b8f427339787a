# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Provides general Environment Variables for FastAPI dependcy injection
"""

import os
from enum import Enum
from typing import Annotated

from fastapi import Depends

from common.parsing import interpret_as_bool


class FailurePolicy(Enum):
    """
    How a dependency failure (registry unreachable, timeout, ...) is interpreted.
    FAIL_OPEN assumes the positive answer, FAIL_CLOSED the negative one.
    """

    FAIL_OPEN = "FAIL_OPEN"
    FAIL_CLOSED = "FAIL_CLOSED"


def failure_policy(env_var: str, default: FailurePolicy) -> FailurePolicy:
    """Reads a failure policy from the environment. Raises ValueError on unknown values."""
    return FailurePolicy(os.getenv(env_var, default.value).strip().upper())


class Config:
    def __init__(self):
        self.enable_debug_mode: bool = interpret_as_bool(os.environ.get("ENABLE_DEBUG_MODE", "False"))
        '''General debug mode configuration enabler.'''

        self.external_url = os.getenv("EXTERNAL_URL")
        self.registry_key_url = os.getenv("REGISTRY_BASE_URL")
        '''Base url of the key registry publishing issuer key sets. Optional.'''
        self.api_key = os.getenv("API_KEY", "tergum_dev_key")
        '''Apikey to use for the application. Default: "tergum_dev_key".'''

        self.signing_key_private = os.getenv("SIGNING_KEY_PRIVATE")
        '''Private Ed25519 key as JSON Web Key. A fresh key is generated for the process if not set.'''
        self.enable_ssl_verification: bool = interpret_as_bool(os.environ.get("ENABLE_SSL_VERIFICATION", not self.enable_debug_mode))
        '''
        Enable ssl verification for outgoing requests.
        Default is True, but False in DEBUG_MODE.
        '''
        self.http_timeout: float = float(os.getenv("HTTP_TIMEOUT", 3))
        '''
        Timeout in seconds for outgoing requests (trust registry, revocation authority, key registry).
        A timed out call is treated as failure and not retried.
        '''
        self.app_name = os.getenv("APP_NAME", "anonymous")
        '''
        Human readable application name used for loggin
        '''
        self.log_level = os.getenv('LOG_LEVEL', 'INFO')
        self.enable_documentation_endpoints: bool = interpret_as_bool(os.environ.get("ENABLE_DOCUMENTATION_ENDPOINTS", self.enable_debug_mode))
        '''
        Enable /doc and /redoc endpoint.
        Default is False, but True in DEBUG_MODE.
        '''
        self.enable_cors: bool = interpret_as_bool(os.environ.get("ENABLE_CORS", self.enable_debug_mode))
        '''
        Enable CORs for incomming openapi requests
        Default is False, but True in DEBUG_MODE.
        '''
        self.additional_allowed_origins = os.environ.get('ADDITIONAL_ALLOWED_ORIGINS', '')
        '''
        If CORs is enabled additional allowed origins e.g confluence can be defined as comma separated list of url (e.g. URL,URL,URL)
        '''
        self.enable_splunk_log: bool = interpret_as_bool(os.environ.get("ENABLE_SPLUNK_LOG", not self.enable_debug_mode))
        '''
        Enable Splunk compatible log format.
        Default is False, but True in DEBUG_MODE.
        '''
        self.cache_backend = os.getenv("CACHE_BACKEND", "memory")
        '''
        Backend of the challenge, trust & revocation caches. Either "memory" or "redis".
        The in memory caches are independent per process.
        '''
        self.redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        '''Connection url used when CACHE_BACKEND is "redis".'''
        self.cache_sweep_interval: float = float(os.getenv("CACHE_SWEEP_INTERVAL", 60))
        '''Seconds between two eviction sweeps of expired in memory cache entries.'''


inject = Annotated[Config, Depends(Config)]


class DBConfig:
    def __init__(self):
        self.SQLALCHEMY_DATABASE_URL = os.getenv("DB_CONNECTION", "postgresql://issuer:supersecret@db_issuer/issuer")
        self.SQLALCHEMY_DATABASE_SCHEMA = os.getenv("DB_SCHEMA", "credential")


inject_db_config = Annotated[DBConfig, Depends(DBConfig)]
