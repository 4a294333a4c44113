"""Output, alert and run-history sinks."""

from .alerts import AlertSink, InMemoryAlertSink, SnsAlertSink, WebhookAlertSink
from .ledger import NdjsonRunLedger, RunLedger
from .output import InMemoryOutputSink, NdjsonOutputSink, OutputRecord, OutputSink

__all__ = [
    "AlertSink",
    "InMemoryAlertSink",
    "SnsAlertSink",
    "WebhookAlertSink",
    "RunLedger",
    "NdjsonRunLedger",
    "OutputSink",
    "OutputRecord",
    "InMemoryOutputSink",
    "NdjsonOutputSink",
]
