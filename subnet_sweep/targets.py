"""
Subnet prefix parsing and address generation
"""

import ipaddress
import logging
import re
from typing import Iterable, Iterator, List, Union

from .errors import ConfigurationError
from .models import Address

logger = logging.getLogger(__name__)

FIRST_HOST = 1
LAST_HOST = 254

_PREFIX_RE = re.compile(r'^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.?$')


def normalize_subnet(value: str) -> str:
    """
    Normalize a /24 subnet to its three-octet prefix

    Accepted forms: ``10.0.0``, ``10.0.0.``, ``10.0.0.0/24`` and a single
    host such as ``10.0.0.7`` (its /24 is used).

    Args:
        value: Subnet as typed by the user

    Returns:
        Prefix like ``10.0.0``

    Raises:
        ConfigurationError: The value is not an IPv4 /24 subnet
    """
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError("subnet must be a non-empty string")

    text = re.sub(r'\s*/\s*', '/', value.strip())

    match = _PREFIX_RE.match(text)
    if match:
        octets = [int(o) for o in match.groups()]
        if any(o > 255 for o in octets):
            raise ConfigurationError(f"Invalid subnet prefix: {value!r}")
        return ".".join(str(o) for o in octets)

    if ':' in text:
        raise ConfigurationError(f"Only IPv4 subnets are supported, got {value!r}")

    try:
        if '/' in text:
            network = ipaddress.IPv4Network(text, strict=False)
        else:
            network = ipaddress.IPv4Network(f"{text}/24", strict=False)
    except ValueError as e:
        raise ConfigurationError(f"Invalid subnet {value!r}: {e}") from e

    if network.prefixlen != 24:
        raise ConfigurationError(f"Only /24 subnets are supported, got /{network.prefixlen}")

    return ".".join(str(network.network_address).split(".")[:3])


def build_address(subnet: str, index: int) -> Address:
    """Address of host ``index`` inside a normalized prefix"""
    if not FIRST_HOST <= index <= LAST_HOST:
        raise ConfigurationError(f"Host index out of range: {index}")
    return Address.parse(f"{subnet}.{index}")


def iter_addresses(subnet: str, start: int = FIRST_HOST, end: int = LAST_HOST) -> Iterator[Address]:
    """
    Lazily generate the addresses of ``subnet`` from ``start`` to ``end``

    Args:
        subnet: Normalized prefix
        start: First host index (inclusive)
        end: Last host index (inclusive)

    Yields:
        Addresses in ascending order
    """
    if start > end:
        raise ConfigurationError(f"start ({start}) must not exceed end ({end})")
    for index in range(start, end + 1):
        yield build_address(subnet, index)


def parse_hosts(hosts: Iterable[Union[str, Address]]) -> List[Address]:
    """
    Turn an explicit host list into unique addresses, keeping first-seen order

    Raises:
        ConfigurationError: A host is not an IPv4 address
    """
    seen = set()
    addresses = []
    for host in hosts:
        if isinstance(host, Address):
            address = host
        else:
            try:
                address = Address.parse(str(host).strip())
            except ValueError as e:
                raise ConfigurationError(f"Not an IPv4 address: {host!r}") from e
        if address.key in seen:
            logger.debug(f"Duplicate host skipped: {address}")
            continue
        seen.add(address.key)
        addresses.append(address)
    return addresses


def sort_addresses(addresses: Iterable[Address]) -> List[Address]:
    """Ascending numeric order"""
    return sorted(addresses, key=lambda a: a.key)
