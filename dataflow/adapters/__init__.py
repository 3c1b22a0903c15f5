"""
Adapters

External collaborators of the monitor: NATS fan-out, the records REST API
and the polled record store.
"""

from dataflow.adapters.nats_client import NatsClient, NatsConfig, Topics
from dataflow.adapters.record_store import RecordStore
from dataflow.adapters.records_client import DataFetchError, RecordsClient

__all__ = ["DataFetchError", "NatsClient", "NatsConfig", "RecordStore", "RecordsClient", "Topics"]
