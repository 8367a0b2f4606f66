"""Shared builders for Envoy access-log messages used across the test suite."""

from __future__ import annotations

import pytest
from envoy.config.core.v3 import base_pb2
from envoy.data.accesslog.v3 import accesslog_pb2
from envoy.service.accesslog.v3 import als_pb2

# 2024-05-01T12:30:45Z
START_SECONDS = 1714566645


def make_http_entry(
    method=base_pb2.GET,
    path="/health",
    status=200,
    upstream=("10.0.0.5", 8080),
    downstream=("192.168.1.10", 54321),
    forwarded_for="203.0.113.7",
    waf_violation="sqli-detected",
) -> accesslog_pb2.HTTPAccessLogEntry:
    """Return an HTTP entry with every field populated unless overridden."""
    entry = accesslog_pb2.HTTPAccessLogEntry()
    entry.protocol_version = accesslog_pb2.HTTPAccessLogEntry.HTTP11

    common = entry.common_properties
    common.start_time.seconds = START_SECONDS
    common.start_time.nanos = 123_456_789
    common.time_to_last_downstream_tx_byte.seconds = 1
    common.time_to_last_downstream_tx_byte.nanos = 42_900_000
    if downstream is not None:
        common.downstream_remote_address.socket_address.address = downstream[0]
        common.downstream_remote_address.socket_address.port_value = downstream[1]
    if upstream is not None:
        common.upstream_remote_address.socket_address.address = upstream[0]
        common.upstream_remote_address.socket_address.port_value = upstream[1]
    common.upstream_cluster = "backend-svc"
    common.stream_id = "req-0001"

    request = entry.request
    request.request_method = method
    request.authority = "api.example.com"
    request.path = path
    request.user_agent = "curl/8.4.0"
    if forwarded_for is not None:
        request.forwarded_for = forwarded_for
    request.request_body_bytes = 17

    response = entry.response
    response.response_code.value = status
    response.response_body_bytes = 512
    response.response_headers["content-type"] = "application/json"
    if waf_violation is not None:
        response.response_headers["x-waf-violation"] = waf_violation
    return entry


def make_tcp_entry(cluster="postgres", received=100, sent=200) -> accesslog_pb2.TCPAccessLogEntry:
    entry = accesslog_pb2.TCPAccessLogEntry()
    entry.common_properties.upstream_cluster = cluster
    entry.common_properties.upstream_remote_address.socket_address.address = "10.0.0.9"
    entry.common_properties.upstream_remote_address.socket_address.port_value = 5432
    entry.connection_properties.received_bytes = received
    entry.connection_properties.sent_bytes = sent
    return entry


def http_message(*entries, node_id=None, log_name="als") -> als_pb2.StreamAccessLogsMessage:
    msg = als_pb2.StreamAccessLogsMessage()
    msg.http_logs.log_entry.extend(entries)
    if node_id is not None:
        msg.identifier.node.id = node_id
        msg.identifier.log_name = log_name
    return msg


def tcp_message(*entries) -> als_pb2.StreamAccessLogsMessage:
    msg = als_pb2.StreamAccessLogsMessage()
    msg.tcp_logs.log_entry.extend(entries)
    return msg


class ListSink:
    """In-memory stand-in for SinkWriter."""

    def __init__(self):
        self.lines: list[bytes] = []

    def append(self, data: bytes):
        self.lines.append(data)


@pytest.fixture()
def list_sink() -> ListSink:
    return ListSink()


@pytest.fixture()
def http_entry() -> accesslog_pb2.HTTPAccessLogEntry:
    return make_http_entry()
