# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Splunk compatible log output.
Each record is rendered as a single line JSON object, structured log entries
contribute their fields as top level keys.
"""

import datetime
import json
import logging

from pydantic import BaseModel


class SplunkExtendedLogEntry(BaseModel):
    """
    Structured log message. Log it directly, e.g. `_logger.info(Entry(message=...))`.
    Plain formatters show the message followed by the other set fields.
    """

    message: str

    def structured_fields(self) -> dict:
        return self.model_dump(mode="json", exclude={"message"}, exclude_none=True)

    def __str__(self) -> str:
        fields = " ".join(f"{key}={value}" for key, value in self.structured_fields().items())
        return f"{self.message} {fields}" if fields else self.message


class SplunkFormatter(logging.Formatter):
    """
    Formats records for splunk.
    `defaults` provides values for record attributes which are not set on a record,
    e.g. app_name or correlation_id outside of a request.
    """

    def __init__(self, defaults: dict | None = None) -> None:
        super().__init__()
        self._defaults = defaults or {}

    def _attribute(self, record: logging.LogRecord, name: str) -> str | None:
        value = getattr(record, name, None)
        if value is None:
            return self._defaults.get(name)
        return value

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "@timestamp": datetime.datetime.fromtimestamp(record.created).astimezone().isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "app": self._attribute(record, "app_name"),
            "hash": self._attribute(record, "correlation_id"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if isinstance(record.msg, SplunkExtendedLogEntry):
            data.update(record.msg.structured_fields())
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)
