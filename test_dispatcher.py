"""Tests for the dnspython-backed query dispatcher."""
import asyncio

import dns.asyncquery
import dns.exception
import dns.message
import dns.rrset
import pytest

from netProbe.scanner.dispatcher import (
    DnsDispatcher,
    MalformedResponse,
    QueryConnectionError,
    QueryError,
    QueryTimeout,
    render_answers,
    render_question,
)


def _response_for(query, *addresses):
    response = dns.message.make_response(query)
    if addresses:
        response.answer.append(
            dns.rrset.from_text(query.question[0].name, 300, "IN", "A", *addresses)
        )
    return response


def test_render_question_drops_final_dot():
    query = dns.message.make_query("example.com", "A")
    assert render_question(query) == "example.com A"


def test_render_answers_one_line_per_record():
    query = dns.message.make_query("example.com", "A")
    lines = render_answers(_response_for(query, "1.2.3.4", "5.6.7.8"))
    assert len(lines) == 2
    assert any("1.2.3.4" in line for line in lines)
    assert any("5.6.7.8" in line for line in lines)
    assert all(line.startswith("example.com. 300 IN A") for line in lines)


def test_exchange_success(monkeypatch):
    calls = []

    async def fake_udp(query, where, timeout=None, port=53, **kwargs):
        calls.append((where, timeout, port, kwargs.get("ignore_unexpected")))
        return _response_for(query, "1.2.3.4")

    monkeypatch.setattr(dns.asyncquery, "udp", fake_udp)
    result = asyncio.run(DnsDispatcher().exchange("10.0.0.1", "example.com", 3.0))

    assert result.question == "example.com A"
    assert result.answers == ["example.com. 300 IN A 1.2.3.4"]
    assert result.answer_text() == "example.com. 300 IN A 1.2.3.4\n"
    assert calls == [("10.0.0.1", 3.0, 53, True)]


def test_exchange_empty_answer(monkeypatch):

    async def fake_udp(query, where, timeout=None, port=53, **kwargs):
        return _response_for(query)

    monkeypatch.setattr(dns.asyncquery, "udp", fake_udp)
    result = asyncio.run(DnsDispatcher().exchange("10.0.0.1", "example.com", 1.0))
    assert result.answers == []
    assert result.answer_text() == ""


def test_tcp_transport_and_qtype(monkeypatch):
    calls = []

    async def fake_tcp(query, where, timeout=None, port=53, **kwargs):
        calls.append((where, port))
        return dns.message.make_response(query)

    monkeypatch.setattr(dns.asyncquery, "tcp", fake_tcp)
    dispatcher = DnsDispatcher(qtype="AAAA", transport="tcp", port=5353)
    result = asyncio.run(dispatcher.exchange("10.0.0.1", "example.com", 1.0))
    assert result.question == "example.com AAAA"
    assert calls == [("10.0.0.1", 5353)]


@pytest.mark.parametrize(
    "raised, expected, kind",
    [
        (dns.exception.Timeout(), QueryTimeout, "timeout"),
        (ConnectionRefusedError("refused"), QueryConnectionError, "connection"),
        (OSError(101, "Network is unreachable"), QueryConnectionError, "connection"),
        (dns.message.ShortHeader(), MalformedResponse, "malformed"),
        (dns.exception.FormError("bad"), MalformedResponse, "malformed"),
    ],
)
def test_failures_map_to_query_errors(monkeypatch, raised, expected, kind):

    async def fake_udp(query, where, timeout=None, port=53, **kwargs):
        raise raised

    monkeypatch.setattr(dns.asyncquery, "udp", fake_udp)
    with pytest.raises(expected) as excinfo:
        asyncio.run(DnsDispatcher().exchange("10.0.0.9", "example.com", 1.0))

    assert isinstance(excinfo.value, QueryError)
    assert excinfo.value.kind == kind
    assert excinfo.value.target == "10.0.0.9"
    assert excinfo.value.domain == "example.com"
