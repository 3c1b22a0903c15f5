"""
Dataflow Layer

Event I/O layer for the market monitor. Contains:
- ingestion: Websocket feed channel with reconnect and bounded trade buffer
- candle_aggregation: Trade to candle aggregation
- reconciliation: Trade attribution to position lifecycle events
- adapters: NATS client, records REST client and record store
- query: HTTP monitoring API
- config: YAML/env configuration
"""
