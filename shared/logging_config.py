"""Centralized logging configuration with correlation ID and run context support."""

import logging
import os
import sys
from contextvars import ContextVar
from typing import Dict
from pythonjsonlogger import jsonlogger

correlation_id_var: ContextVar[str] = ContextVar('correlation_id', default='')
log_context_var: ContextVar[Dict[str, str]] = ContextVar('log_context', default={})


class CorrelationIdFilter(logging.Filter):
    """Adds correlation_id and any bound workflow/run ids to all log records"""

    def filter(self, record):
        record.correlation_id = correlation_id_var.get('')
        for key, value in log_context_var.get().items():
            # Fields passed explicitly through extra={} win over bound ones
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def setup_logging(service_name: str) -> None:
    """Sets up JSON logging for a service; LOG_LEVEL picks the root level"""
    logger = logging.getLogger()
    logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    logger.handlers = []

    json_handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        '%(asctime)s %(name)s %(levelname)s %(correlation_id)s %(message)s',
        rename_fields={
            'asctime': 'timestamp',
            'name': 'logger',
            'levelname': 'level',
        }
    )

    json_handler.setFormatter(formatter)
    json_handler.addFilter(CorrelationIdFilter())
    logger.addHandler(json_handler)
    logging.info(f"{service_name} logging configured", extra={"service": service_name})


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    return correlation_id_var.get('')


def bind_log_context(**fields: str) -> None:
    """Attaches workflow_id/run_id style fields to every later log line in this context"""
    log_context_var.set({**log_context_var.get(), **{k: v for k, v in fields.items() if v}})


def clear_log_context() -> None:
    log_context_var.set({})


def get_log_context() -> Dict[str, str]:
    return dict(log_context_var.get())
