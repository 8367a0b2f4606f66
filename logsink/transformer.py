"""Turn Envoy access-log entries into flat JSON records.

Everything here is a pure function of the entry: no shared state, no I/O and
no failure mode. Sub-messages that Envoy left unset degrade to empty strings
or zero instead of raising.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone

from envoy.config.core.v3 import base_pb2
from envoy.data.accesslog.v3 import accesslog_pb2
from google.protobuf import descriptor_pool, json_format

DEFAULT_WAF_HEADER = "x-waf-violation"

_ANY_TYPE = "google.protobuf.Any"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_HTTP_VERSIONS: dict[int, str] = {
    accesslog_pb2.HTTPAccessLogEntry.HTTP10: "HTTP/1.0",
    accesslog_pb2.HTTPAccessLogEntry.HTTP11: "HTTP/1.1",
    accesslog_pb2.HTTPAccessLogEntry.HTTP2: "HTTP/2",
    accesslog_pb2.HTTPAccessLogEntry.HTTP3: "HTTP/3",
}


@dataclass(frozen=True)
class OutputRecord:
    """One normalized HTTP access-log line."""

    start_time: str = ""
    method: str = ""
    authority: str = ""
    path: str = ""
    protocol: str = "UNKNOWN"
    status: int = 0
    bytes_sent: int = 0
    bytes_received: int = 0
    duration: int = 0
    upstream_host: str = ""
    upstream_service: str = ""
    source_ip: str = ""
    user_agent: str = ""
    forwarded_for: str = ""
    request_id: str = ""
    waf_violation: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def format_protocol(version: int) -> str:
    """Human-readable HTTP version; unknown values map to ``UNKNOWN``."""
    return _HTTP_VERSIONS.get(version, "UNKNOWN")


def format_method(method: int) -> str:
    """Name of a RequestMethod value, or its number if the enum lacks it."""
    try:
        return base_pb2.RequestMethod.Name(method)
    except ValueError:
        return str(method)


def format_timestamp(ts) -> str:
    """Render a protobuf Timestamp as ``YYYY-MM-DDTHH:MM:SS.sssZ`` in UTC.

    An unset timestamp renders as the protobuf zero time (the Unix epoch).
    Values outside the range datetime can represent give an empty string.
    """
    try:
        dt = _EPOCH + timedelta(seconds=ts.seconds, microseconds=ts.nanos // 1000)
    except OverflowError:
        return ""
    return f"{dt:%Y-%m-%dT%H:%M:%S}.{dt.microsecond // 1000:03d}Z"


def socket_host(address) -> str:
    """Host part of an Address holding a socket address, else ``""``."""
    if address.HasField("socket_address"):
        return address.socket_address.address
    return ""


def socket_host_port(address) -> str:
    """``address:port`` of an Address holding a socket address, else ``""``."""
    if not address.HasField("socket_address"):
        return ""
    sa = address.socket_address
    return f"{sa.address}:{sa.port_value}"


# ---------------------------------------------------------------------------
# Entry transforms
# ---------------------------------------------------------------------------


def transform_http_entry(entry, waf_header: str = DEFAULT_WAF_HEADER) -> OutputRecord:
    """Flatten one ``HTTPAccessLogEntry`` into an :class:`OutputRecord`."""
    common = entry.common_properties
    request = entry.request
    response = entry.response

    upstream_host = ""
    if common.HasField("upstream_remote_address"):
        upstream_host = socket_host_port(common.upstream_remote_address)

    source_ip = ""
    if common.HasField("downstream_remote_address"):
        source_ip = socket_host(common.downstream_remote_address)

    return OutputRecord(
        start_time=format_timestamp(common.start_time),
        method=format_method(request.request_method),
        authority=request.authority,
        path=request.path,
        protocol=format_protocol(entry.protocol_version),
        status=response.response_code.value,
        bytes_sent=response.response_body_bytes,
        bytes_received=request.request_body_bytes,
        duration=common.time_to_last_downstream_tx_byte.ToMilliseconds(),
        upstream_host=upstream_host,
        upstream_service=common.upstream_cluster,
        source_ip=source_ip,
        user_agent=request.user_agent,
        forwarded_for=request.forwarded_for,
        request_id=common.stream_id,
        waf_violation=response.response_headers.get(waf_header, ""),
    )


def transform_tcp_entry(entry) -> dict:
    """Pass a ``TCPAccessLogEntry`` through as its own JSON mapping.

    ``Any`` values whose type this process does not know (filter state
    objects, typically) cannot be rendered and are left out.
    """
    try:
        return json_format.MessageToDict(entry, preserving_proto_field_name=True)
    except (TypeError, json_format.Error):
        stripped = type(entry)()
        stripped.CopyFrom(entry)
        _strip_unresolvable_any(stripped)
        return json_format.MessageToDict(stripped, preserving_proto_field_name=True)


def _is_unresolvable_any(message) -> bool:
    if message.DESCRIPTOR.full_name != _ANY_TYPE:
        return False
    try:
        descriptor_pool.Default().FindMessageTypeByName(message.TypeName())
    except KeyError:
        return True
    return False


def _strip_unresolvable_any(message):
    """Remove, in place, every nested Any whose type is not in the pool."""
    for field, value in message.ListFields():
        if field.type != field.TYPE_MESSAGE:
            continue
        if field.message_type.GetOptions().map_entry:
            value_field = field.message_type.fields_by_name["value"]
            if value_field.type != value_field.TYPE_MESSAGE:
                continue
            for key in list(value):
                if _is_unresolvable_any(value[key]):
                    del value[key]
                else:
                    _strip_unresolvable_any(value[key])
        elif field.label == field.LABEL_REPEATED:
            for index in reversed(range(len(value))):
                if _is_unresolvable_any(value[index]):
                    del value[index]
                else:
                    _strip_unresolvable_any(value[index])
        elif _is_unresolvable_any(value):
            message.ClearField(field.name)
        else:
            _strip_unresolvable_any(value)


def encode_record(record) -> bytes:
    """Compact single-line JSON for an OutputRecord or a plain dict."""
    if isinstance(record, OutputRecord):
        record = record.to_dict()
    return json.dumps(record, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
