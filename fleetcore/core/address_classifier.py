"""Classify raw instance endpoints into typed, scope-tagged addresses.

The classifier itself knows nothing about any particular cloud.  Scope is
decided by walking an injected ``ScopeTable``; each backend ships its own.
Classification is total: anything unrecognised becomes a hostname with
``unknown`` scope.
"""

from __future__ import annotations

import fnmatch
import ipaddress
from collections.abc import Iterable

from fleetcore.models.addresses import (
    DEFAULT_SCOPE_TABLE,
    Address,
    AddressType,
    NetworkScope,
    ScopeRule,
    ScopeTable,
)

_IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


def _strip(value: str) -> str:
    """Peel whitespace, enclosing brackets and trailing dots until stable."""
    while True:
        stripped = value.strip().rstrip(".")
        if stripped.startswith("[") and stripped.endswith("]"):
            stripped = stripped[1:-1]
        if stripped == value:
            return value
        value = stripped


def _normalise(raw: str) -> tuple[str, _IPAddress | None]:
    """Return the canonical value and, for IP literals, the parsed address.

    The result is a fixed point: normalising the returned value again
    yields the same pair.
    """
    value = _strip(raw or "")
    try:
        ip = ipaddress.ip_address(value)
    except ValueError:
        return value.lower(), None
    return str(ip), ip


def _rule_matches(rule: ScopeRule, value: str, ip: _IPAddress | None) -> bool:
    if rule.match == "cidr":
        if ip is None:
            return False
        try:
            network = ipaddress.ip_network(rule.pattern, strict=False)
        except ValueError:
            return False
        return network.version == ip.version and ip in network
    if ip is not None or not value:
        return False
    if rule.match == "suffix":
        suffix = rule.pattern.lower().lstrip(".")
        return value == suffix or value.endswith("." + suffix)
    if rule.match == "glob":
        return fnmatch.fnmatchcase(value, rule.pattern.lower())
    return False


def classify(raw: str, table: ScopeTable = DEFAULT_SCOPE_TABLE) -> Address:
    """Map a raw endpoint string to an ``Address``.  Never raises."""
    value, ip = _normalise(raw)
    if ip is None:
        addr_type = AddressType.HOSTNAME
    elif ip.version == 4:
        addr_type = AddressType.IPV4
    else:
        addr_type = AddressType.IPV6

    scope = NetworkScope.UNKNOWN
    for rule in table.rules:
        if _rule_matches(rule, value, ip):
            scope = rule.scope
            break
    return Address(value=value, type=addr_type, scope=scope)


def classify_all(
    raws: Iterable[str], table: ScopeTable = DEFAULT_SCOPE_TABLE
) -> list[Address]:
    """Classify every endpoint, preserving order."""
    return [classify(raw, table) for raw in raws]
