# -*- coding: utf-8 -*-
"""Sender Policy framework (SPF) address mechanisms"""

from __future__ import annotations

import ipaddress
import logging
import re
from typing import NamedTuple, Union

import pyleri

from spfcore._constants import SYNTAX_ERROR_MARKER
from spfcore.dns_service import DNSService
from spfcore.utils import (
    PermanentError,
    RecordType,
    SPFLookupError,
    normalize_domain,
)

"""Copyright 2019-2025 Sean Whalen

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

   https://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License."""

CIDR_LENGTH_REGEX_STRING = r"(?:/(0|[1-9][0-9]*))?"
IP4_MECHANISM_REGEX_STRING = r"([+\-~?])?(ip4):([0-9.]+)" + CIDR_LENGTH_REGEX_STRING
IP6_MECHANISM_REGEX_STRING = (
    r"([+\-~?])?(ip6):([0-9a-f:.]+)" + CIDR_LENGTH_REGEX_STRING
)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class AddressFamily(NamedTuple):
    """The traits that tell IPv4 and IPv6 mechanisms apart"""

    name: str
    max_prefix_length: int
    address_class: type
    record_type: RecordType
    mechanism_regex: re.Pattern


IPV4 = AddressFamily(
    "ip4",
    32,
    ipaddress.IPv4Address,
    RecordType.A,
    re.compile(IP4_MECHANISM_REGEX_STRING, re.IGNORECASE),
)
IPV6 = AddressFamily(
    "ip6",
    128,
    ipaddress.IPv6Address,
    RecordType.AAAA,
    re.compile(IP6_MECHANISM_REGEX_STRING, re.IGNORECASE),
)


class _CIDRMechanismGrammar(pyleri.Grammar):
    """Defines Pyleri grammar for ip4 and ip6 mechanisms"""

    # Each mechanism is a single regex so that pyleri's whitespace skipping
    # cannot accept "ip4: 192.0.2.1"
    ip4_mechanism = pyleri.Regex(IPV4.mechanism_regex.pattern, re.IGNORECASE)
    ip6_mechanism = pyleri.Regex(IPV6.mechanism_regex.pattern, re.IGNORECASE)

    START = pyleri.Choice(ip4_mechanism, ip6_mechanism)


# Grammar element names mapped to the family each one parses
GRAMMAR_FAMILIES = {"ip4_mechanism": IPV4, "ip6_mechanism": IPV6}


def _find_mechanism_node(node):
    """Returns the first parse tree node made by an ip4 or ip6 element"""
    if getattr(node.element, "name", None) in GRAMMAR_FAMILIES:
        return node
    for child in node.children:
        found = _find_mechanism_node(child)
        if found is not None:
            return found
    return None


def _parse_address(value: Union[str, IPAddress], family: AddressFamily):
    """Returns the address of ``value`` in ``family``, or ``None``"""
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        if isinstance(value, family.address_class):
            return value
        return None
    text = str(value).strip()
    # Scoped IPv6 addresses are not valid in SPF records
    if "%" in text:
        return None
    try:
        return family.address_class(text)
    except ValueError:
        return None


def parse_candidate_address(candidate: Union[str, IPAddress]) -> IPAddress:
    """
    Parses the IP address of an SMTP client

    Args:
        candidate: An IPv4 or IPv6 address

    Returns:
        An ``ipaddress.IPv4Address`` or ``ipaddress.IPv6Address``

    Raises:
        :exc:`spfcore.PermanentError`
    """
    for family in (IPV4, IPV6):
        address = _parse_address(candidate, family)
        if address is not None:
            return address
    raise PermanentError(f"{candidate} is not a valid IP address", str(candidate))


def _family_of(address: IPAddress) -> AddressFamily:
    if isinstance(address, ipaddress.IPv4Address):
        return IPV4
    return IPV6


def check_prefix_length(
    prefix_length: Union[int, str, None], family: AddressFamily
) -> int:
    """
    Validates a CIDR prefix length for an address family

    Args:
        prefix_length: The prefix length; ``None`` means the full width
        family (AddressFamily): The address family

    Returns:
        int: The prefix length

    Raises:
        :exc:`spfcore.PermanentError`
    """
    if prefix_length is None:
        return family.max_prefix_length
    if isinstance(prefix_length, str):
        if not re.fullmatch(r"[0-9]+", prefix_length):
            raise PermanentError(
                f"{prefix_length} is not a valid {family.name} prefix length"
            )
        prefix_length = int(prefix_length)
    if isinstance(prefix_length, bool) or not isinstance(prefix_length, int):
        raise PermanentError(
            f"{prefix_length!r} is not a valid {family.name} prefix length"
        )
    if not 0 <= prefix_length <= family.max_prefix_length:
        raise PermanentError(
            f"The {family.name} prefix length {prefix_length} is outside of "
            f"the range 0-{family.max_prefix_length}"
        )
    return prefix_length


def cidr_mask(prefix_length: int, family: AddressFamily) -> int:
    """Returns an integer with the top ``prefix_length`` bits of the family set"""
    width = family.max_prefix_length
    return ((1 << prefix_length) - 1) << (width - prefix_length)


def cidr_match(
    network: Union[str, IPAddress],
    candidate: Union[str, IPAddress],
    prefix_length: Union[int, str, None],
    family: AddressFamily,
) -> bool:
    """
    Checks if an address is in a CIDR block

    Both addresses are masked to ``prefix_length`` bits as big-endian
    integers and compared. A candidate of another family never matches.

    Args:
        network: The network address of the block
        candidate: The address to check
        prefix_length: The prefix length of the block
        family (AddressFamily): The family of the block

    Returns:
        bool: ``True`` if the candidate is in the block

    Raises:
        :exc:`spfcore.PermanentError`: if either address or the prefix
            length is invalid
    """
    network_address = _parse_address(network, family)
    if network_address is None:
        raise PermanentError(
            f"{network} is not a valid {family.name} address", str(network)
        )
    prefix_length = check_prefix_length(prefix_length, family)
    candidate_address = parse_candidate_address(candidate)
    if not isinstance(candidate_address, family.address_class):
        return False
    mask = cidr_mask(prefix_length, family)
    return int(network_address) & mask == int(candidate_address) & mask


class CIDRMechanism:
    """An ``ip4`` or ``ip6`` mechanism

    Instances are immutable.
    """

    __slots__ = ("family", "network", "prefix_length")

    def __init__(
        self,
        family: AddressFamily,
        network: Union[str, IPAddress],
        prefix_length: Union[int, str, None] = None,
    ):
        """
        Args:
            family (AddressFamily): :data:`IPV4` or :data:`IPV6`
            network: The network address
            prefix_length: The CIDR prefix length; the full width when omitted

        Raises:
            :exc:`spfcore.PermanentError`
        """
        address = _parse_address(network, family)
        if address is None:
            raise PermanentError(
                f"{network} is not a valid {family.name} address", str(network)
            )
        object.__setattr__(self, "family", family)
        object.__setattr__(self, "network", address)
        object.__setattr__(
            self, "prefix_length", check_prefix_length(prefix_length, family)
        )

    def __setattr__(self, name, value):
        raise AttributeError(f"{self.__class__.__name__} objects are immutable")

    def __delattr__(self, name):
        raise AttributeError(f"{self.__class__.__name__} objects are immutable")

    def __eq__(self, other):
        if not isinstance(other, CIDRMechanism):
            return NotImplemented
        return (self.family, self.network, self.prefix_length) == (
            other.family,
            other.network,
            other.prefix_length,
        )

    def __hash__(self):
        return hash((self.family.name, self.network, self.prefix_length))

    def __str__(self):
        return f"{self.family.name}:{self.network}/{self.prefix_length}"

    def __repr__(self):
        return f"<{self.__class__.__name__} {self}>"

    def matches(self, candidate: Union[str, IPAddress]) -> bool:
        """
        Checks if an address is covered by the mechanism

        Args:
            candidate: An IPv4 or IPv6 address

        Returns:
            bool: The result of the check

        Raises:
            :exc:`spfcore.PermanentError`: if the candidate is not an IP address
        """
        return cidr_match(self.network, candidate, self.prefix_length, self.family)


def ip4_mechanism(
    network: Union[str, IPAddress], prefix_length: Union[int, str, None] = None
) -> CIDRMechanism:
    """Builds an ``ip4`` mechanism"""
    return CIDRMechanism(IPV4, network, prefix_length)


def ip6_mechanism(
    network: Union[str, IPAddress], prefix_length: Union[int, str, None] = None
) -> CIDRMechanism:
    """Builds an ``ip6`` mechanism"""
    return CIDRMechanism(IPV6, network, prefix_length)


def parse_cidr_mechanism(
    term: str, *, syntax_error_marker: str = SYNTAX_ERROR_MARKER
) -> tuple[str, CIDRMechanism]:
    """
    Parses an ``ip4`` or ``ip6`` mechanism term, e.g. ``-ip6:2001:db8::/32``

    Args:
        term (str): The mechanism term
        syntax_error_marker (str): The maker for pointing out syntax errors

    Returns:
        tuple: The qualifier (``+`` when omitted) and the mechanism

    Raises:
        :exc:`spfcore.PermanentError`
    """
    term = term.strip()
    parsed_term = _CIDRMechanismGrammar().parse(term)
    if not parsed_term.is_valid:
        pos = parsed_term.pos
        expecting: list[str] = list(
            map(lambda x: str(x).strip('"'), list(parsed_term.expecting))
        )
        expecting_str = " or ".join(expecting)
        marked_term = term[:pos] + syntax_error_marker + term[pos:]
        raise PermanentError(
            f"Expected {expecting_str} at position {pos} "
            f"(marked with {syntax_error_marker}) in: {marked_term}"
        )
    node = _find_mechanism_node(parsed_term.tree)
    if node is None:
        raise PermanentError(f"{term} is not an ip4 or ip6 mechanism")
    family = GRAMMAR_FAMILIES[node.element.name]
    qualifier, _, network, prefix_length = family.mechanism_regex.fullmatch(
        node.string
    ).groups()
    return qualifier or "+", CIDRMechanism(family, network, prefix_length)


def _domain_prefix_length(
    family: AddressFamily,
    ip4_prefix_length: Union[int, str, None],
    ip6_prefix_length: Union[int, str, None],
) -> int:
    if family is IPV4:
        return check_prefix_length(ip4_prefix_length, IPV4)
    return check_prefix_length(ip6_prefix_length, IPV6)


def a_match(
    dns_service: DNSService,
    domain: str,
    candidate: Union[str, IPAddress],
    *,
    ip4_prefix_length: Union[int, str, None] = None,
    ip6_prefix_length: Union[int, str, None] = None,
) -> bool:
    """
    Performs an ``a`` mechanism check

    Args:
        dns_service (DNSService): The DNS service to look up records with
        domain (str): The target domain of the mechanism
        candidate: The IP address of the SMTP client
        ip4_prefix_length: The CIDR prefix length for IPv4 addresses
        ip6_prefix_length: The CIDR prefix length for IPv6 addresses

    Returns:
        bool: The result of the check

    Raises:
        :exc:`spfcore.PermanentError`
        :exc:`spfcore.TemporaryError`
    """
    address = parse_candidate_address(candidate)
    family = _family_of(address)
    prefix_length = _domain_prefix_length(family, ip4_prefix_length, ip6_prefix_length)
    for record in dns_service.get_address_records(domain, family.record_type):
        if cidr_match(record, address, prefix_length, family):
            logging.debug(f"{address} matches {record}/{prefix_length} of {domain}")
            return True
    return False


def mx_match(
    dns_service: DNSService,
    domain: str,
    candidate: Union[str, IPAddress],
    *,
    ip4_prefix_length: Union[int, str, None] = None,
    ip6_prefix_length: Union[int, str, None] = None,
) -> bool:
    """
    Performs an ``mx`` mechanism check

    Args:
        dns_service (DNSService): The DNS service to look up records with
        domain (str): The target domain of the mechanism
        candidate: The IP address of the SMTP client
        ip4_prefix_length: The CIDR prefix length for IPv4 addresses
        ip6_prefix_length: The CIDR prefix length for IPv6 addresses

    Returns:
        bool: The result of the check

    Raises:
        :exc:`spfcore.PermanentError`
        :exc:`spfcore.TemporaryError`
    """
    address = parse_candidate_address(candidate)
    family = _family_of(address)
    prefix_length = _domain_prefix_length(family, ip4_prefix_length, ip6_prefix_length)
    for record in dns_service.get_mx_records(domain, family.record_type):
        if cidr_match(record, address, prefix_length, family):
            logging.debug(f"{address} matches MX address {record} of {domain}")
            return True
    return False


def ptr_match(
    dns_service: DNSService,
    domain: str,
    candidate: Union[str, IPAddress],
) -> bool:
    """
    Preforms a ``ptr`` mechanism check

    A PTR hostname counts only if it is ``domain`` or a subdomain of it and
    one of its own addresses is the candidate. Hostnames that fail to
    resolve are skipped.

    Args:
        dns_service (DNSService): The DNS service to look up records with
        domain (str): The target domain of the mechanism
        candidate: The IP address of the SMTP client

    Returns:
        bool: The result of the check

    Raises:
        :exc:`spfcore.PermanentError`
        :exc:`spfcore.TemporaryError`
    """
    address = parse_candidate_address(candidate)
    family = _family_of(address)
    domain = normalize_domain(domain)
    for hostname in dns_service.get_reverse_records(str(address)):
        if hostname != domain and not hostname.endswith(f".{domain}"):
            continue
        try:
            records = dns_service.get_address_records(hostname, family.record_type)
        except SPFLookupError as error:
            logging.debug(f"Skipping PTR hostname {hostname}: {error}")
            continue
        for record in records:
            if cidr_match(record, address, family.max_prefix_length, family):
                logging.debug(f"{address} has the validated hostname {hostname}")
                return True
    return False

