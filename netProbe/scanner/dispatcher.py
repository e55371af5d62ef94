"""DNS query dispatch against candidate resolvers."""
from __future__ import annotations

import time
from typing import List, Literal, Protocol

import dns.asyncquery
import dns.exception
import dns.message
import dns.rdatatype

from netProbe.scanner.models import QueryResult
from netProbe.logging_config import get_logger

logger = get_logger("dispatcher")


class QueryError(Exception):
    """A single exchange failed. Never fatal for the scan."""

    kind = "error"

    def __init__(self, target: str, domain: str, reason: str) -> None:
        super().__init__(f"{domain} @ {target}: {reason}")
        self.target = target
        self.domain = domain
        self.reason = reason


class QueryTimeout(QueryError):
    kind = "timeout"


class QueryConnectionError(QueryError):
    """Network unreachable, connection refused and other socket errors."""
    kind = "connection"


class MalformedResponse(QueryError):
    kind = "malformed"


class QueryDispatcher(Protocol):
    async def exchange(self, target: str, domain: str, timeout: float) -> QueryResult:
        ...


def render_question(message: dns.message.Message) -> str:
    """Render the first question as ``"<name> <TYPE>"``."""
    question = message.question[0]
    name = question.name.to_text(omit_final_dot=True)
    return f"{name} {dns.rdatatype.to_text(question.rdtype)}"


def render_answers(message: dns.message.Message) -> List[str]:
    """One line per resource record in the answer section."""
    lines: List[str] = []
    for rrset in message.answer:
        lines.extend(rrset.to_text().splitlines())
    return lines


class DnsDispatcher:
    """Sends one query per call with dnspython; the timeout bounds the whole exchange."""

    def __init__(
        self,
        qtype: str = "A",
        transport: Literal["udp", "tcp"] = "udp",
        port: int = 53,
    ) -> None:
        self.rdtype = dns.rdatatype.from_text(qtype)
        self.transport = transport
        self.port = port

    async def _send(self, query: dns.message.Message, target: str, timeout: float) -> dns.message.Message:
        if self.transport == "tcp":
            return await dns.asyncquery.tcp(query, target, timeout=timeout, port=self.port)
        # Stray datagrams from other hosts are ignored until the timeout expires
        return await dns.asyncquery.udp(
            query, target, timeout=timeout, port=self.port, ignore_unexpected=True
        )

    async def exchange(self, target: str, domain: str, timeout: float) -> QueryResult:
        start_time = time.time()
        try:
            query = dns.message.make_query(domain, self.rdtype)
            response = await self._send(query, target, timeout)
        except dns.exception.Timeout as exc:
            raise QueryTimeout(target, domain, f"no answer within {timeout}s") from exc
        except (OSError, EOFError) as exc:
            raise QueryConnectionError(target, domain, str(exc) or type(exc).__name__) from exc
        except dns.exception.DNSException as exc:
            raise MalformedResponse(target, domain, str(exc) or type(exc).__name__) from exc

        result = QueryResult(question=render_question(query), answers=render_answers(response))
        logger.debug(
            "DNS exchange completed",
            extra={
                "target": target,
                "domain": domain,
                "transport": self.transport,
                "duration": round((time.time() - start_time) * 1000, 2),
                "outcome": "success",
            }
        )
        return result
