"""CIDR address ranges and lazy, ascending iteration over them."""
from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Iterator, Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class InvalidRangeError(ValueError):
    """Raised when a network range cannot be parsed or is inconsistent."""


def increment_address(packed: bytes) -> Optional[bytes]:
    """Return ``packed`` plus one, or None if the address family overflows.

    Works on an opaque big-endian byte string: the last byte is incremented
    and a wrap to zero carries into the byte on its left. A new value is
    always returned; the input is never modified.
    """
    buf = bytearray(packed)
    for i in range(len(buf) - 1, -1, -1):
        buf[i] = (buf[i] + 1) & 0xFF
        if buf[i] != 0:
            return bytes(buf)
    return None


@dataclass(frozen=True)
class AddressRange:
    """A network: base address plus prefix length, base already masked."""

    base: IPAddress
    prefixlen: int

    def __post_init__(self) -> None:
        if not isinstance(self.base, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
            raise InvalidRangeError(f"Base must be an IP address, got {self.base!r}")
        if isinstance(self.prefixlen, bool) or not isinstance(self.prefixlen, int):
            raise InvalidRangeError(f"Prefix length must be an integer, got {self.prefixlen!r}")
        if not 0 <= self.prefixlen <= self.base.max_prefixlen:
            raise InvalidRangeError(
                f"Prefix length {self.prefixlen} out of range for IPv{self.base.version}"
            )
        network = ipaddress.ip_network(f"{self.base}/{self.prefixlen}", strict=False)
        if network.network_address != self.base:
            raise InvalidRangeError(
                f"{self.base}/{self.prefixlen} has host bits set; use AddressRange.parse to mask them"
            )

    @classmethod
    def parse(cls, text: str) -> "AddressRange":
        """Parse CIDR notation, masking any host bits of the given address."""
        if not isinstance(text, str) or not text.strip():
            raise InvalidRangeError("Network range is empty")
        text = text.strip()
        if "/" not in text:
            raise InvalidRangeError(f"Network range {text!r} has no prefix length")
        try:
            network = ipaddress.ip_network(text, strict=False)
        except ValueError as exc:
            raise InvalidRangeError(f"Invalid network range {text!r}: {exc}") from exc
        return cls(network.network_address, network.prefixlen)

    @property
    def width(self) -> int:
        return self.base.max_prefixlen

    @property
    def num_addresses(self) -> int:
        return 1 << (self.width - self.prefixlen)

    @property
    def first(self) -> IPAddress:
        return self.base

    @property
    def last(self) -> IPAddress:
        return ipaddress.ip_address(int(self.base) + self.num_addresses - 1)

    def __contains__(self, address: object) -> bool:
        if not isinstance(address, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
            return False
        if address.version != self.base.version:
            return False
        return int(self.first) <= int(address) <= int(self.last)

    def __str__(self) -> str:
        return f"{self.base}/{self.prefixlen}"


def iterate_addresses(network: AddressRange) -> Iterator[IPAddress]:
    """Yield every address of ``network`` in ascending order, both ends included.

    The sequence is generated lazily, so very large ranges are never
    materialised. Each call returns an independent generator.
    """
    current: Optional[bytes] = network.first.packed
    last = network.last.packed
    while current is not None:
        yield ipaddress.ip_address(current)
        if current == last:
            return
        current = increment_address(current)
