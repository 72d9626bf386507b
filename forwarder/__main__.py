"""Entrypoint for `python -m forwarder`: runs the worker without the HTTP surface."""

import asyncio

from forwarder.config import settings
from forwarder.logging_config import configure_logging
from forwarder.worker.forwarder_worker import run_worker

configure_logging(settings)
asyncio.run(run_worker(settings))
