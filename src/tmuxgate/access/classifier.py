"""Address classification against the configured allowlist.

Turns the configured range strings into typed allow rules once at
startup, then decides for each client address whether it may use the
service. Classification is a pure function of the address and policy.

Two CIDR matching modes exist:

``octet``
    Compares whole leading octets: a prefix of 24 or more compares the
    first three octets, 16-23 the first two, 8-15 the first one, and
    anything shorter matches every well-formed IPv4 address. Prefixes
    that do not fall on an octet boundary are rounded down, so
    ``172.16.0.0/12`` admits all of ``172.0.0.0/8``.
``bitwise``
    Real prefix masking via :mod:`ipaddress`.
"""

from __future__ import annotations

import functools
import ipaddress
import logging
from typing import Iterable

from tmuxgate.config.settings import AccessConfig
from tmuxgate.domain.models import (
    AccessPolicy,
    AllowRule,
    CIDRRange,
    Decision,
    ExactAddress,
    LoopbackAlias,
)

logger = logging.getLogger(__name__)

LOOPBACK_ALIASES = frozenset({"127.0.0.1", "::1", "localhost"})


def parse_rule(text: str) -> AllowRule:
    """Parse one configured range string into an allow rule.

    Raises:
        ValueError: If a CIDR string has a missing or out-of-range prefix.
    """
    text = text.strip()
    if text in LOOPBACK_ALIASES:
        return LoopbackAlias(alias=text)
    if "/" in text:
        base, _, prefix = text.partition("/")
        try:
            prefix_length = int(prefix)
        except ValueError:
            raise ValueError(f"Invalid CIDR range: {text!r}") from None
        return CIDRRange(base_address=base.strip(), prefix_length=prefix_length)
    return ExactAddress(address=text)


def build_policy(config: AccessConfig) -> AccessPolicy:
    """Build the immutable access policy from configuration."""
    rules = tuple(parse_rule(r) for r in config.allowed_ranges if r.strip())
    policy = AccessPolicy(
        enabled=config.enabled,
        rules=rules,
        allowed_ips=frozenset(ip.strip() for ip in config.allowed_ips),
        cidr_mode=config.cidr_mode,
    )
    logger.info(
        "Access policy: enabled=%s, %d rules, %d always-allowed addresses, cidr_mode=%s",
        policy.enabled, len(policy.rules), len(policy.allowed_ips), policy.cidr_mode,
    )
    return policy


def classify(address: str, policy: AccessPolicy) -> Decision:
    """Decide whether ``address`` may use the service under ``policy``."""
    if not policy.enabled:
        return Decision.ALLOWED

    if address in LOOPBACK_ALIASES or address in policy.allowed_ips:
        return Decision.ALLOWED

    octets = parse_ipv4(address)
    for rule in policy.rules:
        if _rule_matches(rule, address, octets, policy.cidr_mode):
            return Decision.ALLOWED
    return Decision.DENIED


def is_allowed(address: str, policy: AccessPolicy) -> bool:
    return classify(address, policy) is Decision.ALLOWED


def parse_ipv4(address: str) -> tuple[int, ...] | None:
    """Split a dotted IPv4 address into its four octets.

    Returns None for anything that is not exactly four decimal octets
    in 0-255.
    """
    parts = address.split(".")
    if len(parts) != 4:
        return None
    octets = []
    for part in parts:
        if not part.isdigit():
            return None
        value = int(part)
        if value > 255:
            return None
        octets.append(value)
    return tuple(octets)


def describe_rules(rules: Iterable[AllowRule]) -> list[str]:
    """Render rules back to their configuration spelling."""
    rendered = []
    for rule in rules:
        if isinstance(rule, CIDRRange):
            rendered.append(str(rule))
        elif isinstance(rule, LoopbackAlias):
            rendered.append(rule.alias)
        else:
            rendered.append(rule.address)
    return rendered


def _rule_matches(
    rule: AllowRule,
    address: str,
    octets: tuple[int, ...] | None,
    cidr_mode: str,
) -> bool:
    if isinstance(rule, ExactAddress):
        return address == rule.address
    if isinstance(rule, LoopbackAlias):
        return address == rule.alias
    if cidr_mode == "bitwise":
        return _matches_bitwise(rule, address)
    return _matches_octets(rule, octets)


def _matches_octets(rule: CIDRRange, octets: tuple[int, ...] | None) -> bool:
    if octets is None:
        return False
    base = parse_ipv4(rule.base_address)
    if base is None:
        return False
    if rule.prefix_length >= 24:
        return octets[:3] == base[:3]
    if rule.prefix_length >= 16:
        return octets[:2] == base[:2]
    if rule.prefix_length >= 8:
        return octets[0] == base[0]
    return True


def _matches_bitwise(rule: CIDRRange, address: str) -> bool:
    network = _network(str(rule))
    if network is None:
        return False
    try:
        return ipaddress.ip_address(address) in network
    except ValueError:
        return False


@functools.lru_cache(maxsize=256)
def _network(cidr: str) -> ipaddress.IPv4Network | ipaddress.IPv6Network | None:
    try:
        return ipaddress.ip_network(cidr, strict=False)
    except ValueError:
        logger.warning("Ignoring unparseable CIDR rule %s", cidr)
        return None
