"""Network address models and the data-driven scope table."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field


class AddressType(str, Enum):
    """Syntactic kind of an address value."""

    HOSTNAME = "hostname"
    IPV4 = "ipv4"
    IPV6 = "ipv6"


class NetworkScope(str, Enum):
    """Visibility of an address."""

    PUBLIC = "public"
    CLOUD_LOCAL = "local-cloud"
    MACHINE_LOCAL = "local-machine"
    LINK_LOCAL = "link-local"
    UNKNOWN = "unknown"


class Address(BaseModel):
    """A single network endpoint of an instance, tagged with its scope."""

    model_config = ConfigDict(frozen=True)

    value: str
    type: AddressType
    scope: NetworkScope = NetworkScope.UNKNOWN


class ScopeRule(BaseModel):
    """Maps one literal pattern to a network scope.

    ``match`` selects how ``pattern`` is interpreted:

    - ``cidr``: an IPv4/IPv6 network; applies to IP literals of that family.
    - ``suffix``: a DNS suffix such as ``.internal``; applies to hostnames.
    - ``glob``: an fnmatch pattern such as ``ip-*.ec2.internal``; hostnames.
    """

    model_config = ConfigDict(frozen=True)

    match: str = "cidr"  # cidr | suffix | glob
    pattern: str
    scope: NetworkScope


class ScopeTable(BaseModel):
    """Ordered scope rules supplied per backend.  First match wins."""

    model_config = ConfigDict(frozen=True)

    name: str = "default"
    rules: list[ScopeRule] = Field(default_factory=list)

    @classmethod
    def from_yaml(cls, path: Path) -> ScopeTable:
        """Load a table from a YAML document of the form::

            name: my-cloud
            rules:
              - {match: cidr, pattern: 10.0.0.0/8, scope: local-cloud}
              - {match: suffix, pattern: .internal, scope: local-cloud}
        """
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        return cls.model_validate(data)


DEFAULT_SCOPE_TABLE = ScopeTable(
    name="default",
    rules=[
        ScopeRule(pattern="127.0.0.0/8", scope=NetworkScope.MACHINE_LOCAL),
        ScopeRule(pattern="::1/128", scope=NetworkScope.MACHINE_LOCAL),
        ScopeRule(pattern="169.254.0.0/16", scope=NetworkScope.LINK_LOCAL),
        ScopeRule(pattern="fe80::/10", scope=NetworkScope.LINK_LOCAL),
        ScopeRule(pattern="10.0.0.0/8", scope=NetworkScope.CLOUD_LOCAL),
        ScopeRule(pattern="172.16.0.0/12", scope=NetworkScope.CLOUD_LOCAL),
        ScopeRule(pattern="192.168.0.0/16", scope=NetworkScope.CLOUD_LOCAL),
        ScopeRule(pattern="fc00::/7", scope=NetworkScope.CLOUD_LOCAL),
        ScopeRule(match="suffix", pattern="localhost", scope=NetworkScope.MACHINE_LOCAL),
        ScopeRule(match="suffix", pattern=".internal", scope=NetworkScope.CLOUD_LOCAL),
        ScopeRule(match="suffix", pattern=".local", scope=NetworkScope.CLOUD_LOCAL),
        ScopeRule(pattern="0.0.0.0/0", scope=NetworkScope.PUBLIC),
        ScopeRule(pattern="::/0", scope=NetworkScope.PUBLIC),
    ],
)
