# -*- coding: utf-8 -*-
"""Access to the DNS records needed to evaluate SPF policies"""

from __future__ import annotations

import abc
import ipaddress
import logging
import socket
import time
from typing import Optional, Union
from collections.abc import Sequence

import dns.exception
import dns.resolver
import dns.reversename
from dns.nameserver import Nameserver
from expiringdict import ExpiringDict

from spfcore._constants import (
    DEFAULT_DNS_TIMEOUT,
    DEFAULT_RECORD_LIMIT,
    DEFAULT_SPF_VERSION,
    DNS_CACHE_MAX_AGE_SECONDS,
    DNS_CACHE_MAX_LEN,
)
from spfcore.utils import (
    MALFORMED_NAME_ERRORS,
    PermanentError,
    RecordType,
    TemporaryError,
    explain_dns_error,
    get_base_domain,
    normalize_domain,
    query_dns,
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

ADDRESS_RECORD_TYPES = (RecordType.A, RecordType.AAAA)


def _check_timeout(timeout: Union[int, float]) -> float:
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        raise ValueError(f"The DNS timeout must be a number, not {timeout!r}")
    if timeout <= 0:
        raise ValueError(f"The DNS timeout must be positive, not {timeout}")
    return float(timeout)


def _check_record_limit(record_limit: int) -> int:
    if isinstance(record_limit, bool) or not isinstance(record_limit, int):
        raise ValueError(f"The record limit must be an integer, not {record_limit!r}")
    if record_limit < 0:
        raise ValueError(f"The record limit cannot be negative: {record_limit}")
    return record_limit


def _check_address_record_type(record_type: RecordType) -> RecordType:
    if not isinstance(record_type, RecordType) or record_type not in ADDRESS_RECORD_TYPES:
        raise ValueError(f"{record_type!r} is not an address record type")
    return record_type


def _spf_version_tag(version: str) -> str:
    tag = version.strip().lower()
    if not tag.startswith("v="):
        tag = f"v={tag}"
    return tag


class DNSService(abc.ABC):
    """
    The DNS lookups an SPF evaluator needs

    Every lookup raises :exc:`spfcore.PermanentError` when the answer is
    definitive and must not be retried, and :exc:`spfcore.TemporaryError`
    when the lookup may succeed later. Implementations never retry
    internally.
    """

    @abc.abstractmethod
    def get_policy_record(
        self, hostname: str, version: str = DEFAULT_SPF_VERSION
    ) -> str:
        """
        Gets the single policy record of ``hostname`` for a policy version

        Args:
            hostname (str): The hostname to get the policy record for
            version (str): The policy version, e.g. ``spf1`` or ``v=spf1``

        Returns:
            str: The policy record

        Raises:
            :exc:`spfcore.PermanentError`: if no record or more than one
                record exists
            :exc:`spfcore.TemporaryError`: if the lookup should be retried
        """

    @abc.abstractmethod
    def get_address_records(
        self, server: str, record_type: RecordType = RecordType.A
    ) -> list[str]:
        """
        Gets the A or AAAA records of a server

        Args:
            server (str): A hostname, or an IP address that is returned as-is
            record_type (RecordType): ``RecordType.A`` or ``RecordType.AAAA``

        Returns:
            list: IP addresses, bounded by the record limit
        """

    @abc.abstractmethod
    def get_txt_cat_record(self, server: str) -> Optional[str]:
        """
        Gets all the TXT records of a server concatenated into one string

        Returns:
            str: The concatenated records, or ``None`` if there are none
        """

    @abc.abstractmethod
    def get_reverse_records(self, ip_address: str) -> list[str]:
        """
        Gets the PTR hostnames of an IP address

        Returns:
            list: Hostnames, bounded by the record limit
        """

    @abc.abstractmethod
    def get_mx_records(
        self, domain: str, record_type: Optional[RecordType] = None
    ) -> list[str]:
        """
        Gets the IP addresses of the mail exchanges of a domain

        The record limit bounds the number of mail exchanges consulted.
        Exchanges that do not exist are skipped.

        Args:
            domain (str): A domain name
            record_type (RecordType): Resolve only A or only AAAA records;
                                      both when ``None``

        Returns:
            list: IP addresses
        """

    @abc.abstractmethod
    def get_local_domain_names(self) -> list[str]:
        """
        Gets the domain names of the host this code runs on

        Never raises; returns an empty list when nothing can be found.
        """

    @abc.abstractmethod
    def set_timeout(self, timeout: Union[int, float]) -> None:
        """Sets the number of seconds each lookup may take"""

    @abc.abstractmethod
    def get_record_limit(self) -> int:
        """Returns the maximum number of records accepted per lookup"""

    @abc.abstractmethod
    def set_record_limit(self, record_limit: int) -> None:
        """Sets the maximum number of records accepted per lookup (0 = unlimited)"""

    @property
    def record_limit(self) -> int:
        """The maximum number of records accepted per lookup"""
        return self.get_record_limit()

    def lookup(self, name: str, record_type: RecordType) -> list[str]:
        """
        Dispatches a lookup by record type

        ``TXT`` returns the concatenated TXT records and ``SPF`` returns the
        ``spf1`` policy record, each as a list of at most one string.

        Args:
            name (str): A hostname, or an IP address for ``PTR`` lookups
            record_type (RecordType): The type of lookup

        Returns:
            list: The answers
        """
        if not isinstance(record_type, RecordType):
            raise ValueError(f"Unsupported record type: {record_type!r}")
        if record_type in ADDRESS_RECORD_TYPES:
            return self.get_address_records(name, record_type)
        if record_type == RecordType.MX:
            return self.get_mx_records(name)
        if record_type == RecordType.PTR:
            return self.get_reverse_records(name)
        if record_type == RecordType.TXT:
            record = self.get_txt_cat_record(name)
            return [] if record is None else [record]
        return [self.get_policy_record(name)]


class ResolverDNSService(DNSService):
    """
    A :class:`DNSService` that uses a dnspython resolver

    Each instance is one evaluation session: its timeout, record limit,
    deadline, and answer cache are never shared with another instance. Use
    :meth:`new_session` to start another evaluation with the same settings.
    """

    def __init__(
        self,
        *,
        timeout: Union[int, float] = DEFAULT_DNS_TIMEOUT,
        record_limit: int = DEFAULT_RECORD_LIMIT,
        strict_record_limit: bool = False,
        query_spf_type: bool = False,
        nameservers: Optional[Sequence[str | Nameserver]] = None,
        resolver: Optional[dns.resolver.Resolver] = None,
        cache: bool = True,
    ):
        """
        Args:
            timeout (float): number of seconds to wait for an answer from DNS
            record_limit (int): The maximum number of records accepted per
                                lookup (0 = unlimited)
            strict_record_limit (bool): Raise a :exc:`spfcore.PermanentError`
                                        instead of truncating answers that
                                        exceed the record limit
            query_spf_type (bool): Look for a policy in type SPF records when
                                   there is none in TXT records
            nameservers (list): A list of nameservers to query
            resolver (dns.resolver.Resolver): A resolver object to use for DNS
                                              requests
            cache (bool): Cache answers for the life of the session
        """
        self._timeout = _check_timeout(timeout)
        self._record_limit = _check_record_limit(record_limit)
        self.strict_record_limit = strict_record_limit
        self.query_spf_type = query_spf_type
        self.nameservers = nameservers
        self._owns_resolver = resolver is None
        if resolver is None:
            resolver = dns.resolver.Resolver()
            if nameservers is not None:
                resolver.nameservers = nameservers
            resolver.timeout = self._timeout
            resolver.lifetime = self._timeout
        self.resolver = resolver
        self.cache: Optional[ExpiringDict] = None
        if cache:
            self.cache = ExpiringDict(
                max_len=DNS_CACHE_MAX_LEN, max_age_seconds=DNS_CACHE_MAX_AGE_SECONDS
            )
        self._deadline: Optional[float] = None

    def new_session(self, **overrides) -> ResolverDNSService:
        """
        Starts a new session with a snapshot of this session's settings

        The new session has its own cache and no deadline. A resolver passed
        in by the caller is shared, since sessions never modify it.

        Args:
            **overrides: Constructor arguments to replace

        Returns:
            ResolverDNSService: The new session
        """
        settings = {
            "timeout": self._timeout,
            "record_limit": self._record_limit,
            "strict_record_limit": self.strict_record_limit,
            "query_spf_type": self.query_spf_type,
            "nameservers": self.nameservers,
            "resolver": None if self._owns_resolver else self.resolver,
            "cache": self.cache is not None,
        }
        settings.update(overrides)
        return ResolverDNSService(**settings)

    @property
    def timeout(self) -> float:
        return self._timeout

    def set_timeout(self, timeout: Union[int, float]) -> None:
        self._timeout = _check_timeout(timeout)
        if self._owns_resolver:
            self.resolver.timeout = self._timeout
            self.resolver.lifetime = self._timeout

    def get_record_limit(self) -> int:
        return self._record_limit

    def set_record_limit(self, record_limit: int) -> None:
        self._record_limit = _check_record_limit(record_limit)

    def set_deadline(self, seconds: Union[int, float]) -> None:
        """
        Sets a deadline for every lookup of this session

        Lookups still running at the deadline are cut short, and lookups
        started after it fail without being sent. Both raise
        :exc:`spfcore.TemporaryError`.

        Args:
            seconds (float): number of seconds from now
        """
        self._deadline = time.monotonic() + _check_timeout(seconds)

    def clear_deadline(self) -> None:
        self._deadline = None

    def _lifetime(self, domain: str) -> float:
        if self._deadline is None:
            return self._timeout
        remaining = self._deadline - time.monotonic()
        if remaining <= 0:
            raise TemporaryError(
                f"The evaluation deadline passed before {domain} could be queried",
                domain,
            )
        return min(self._timeout, remaining)

    def _query(self, domain: str, record_type: RecordType) -> list[str]:
        """Queries DNS, mapping resolver errors to the SPF error kinds"""
        domain = normalize_domain(domain)
        if not domain:
            raise PermanentError("An empty domain name cannot be queried", domain)
        try:
            return query_dns(
                domain,
                record_type,
                resolver=self.resolver,
                lifetime=self._lifetime(domain),
                cache=self.cache,
            )
        except dns.resolver.NXDOMAIN as error:
            raise PermanentError(f"{domain}: The domain does not exist.", domain) from error
        except dns.resolver.NoAnswer:
            logging.debug(f"{domain} does not have any {record_type.rdtype} records")
            return []
        except MALFORMED_NAME_ERRORS as error:
            raise PermanentError(
                f"{domain} is not a valid domain name: {explain_dns_error(error)}",
                domain,
            ) from error
        except dns.exception.DNSException as error:
            raise TemporaryError(
                f"{domain}: {record_type.rdtype} lookup failed: "
                f"{explain_dns_error(error)}",
                domain,
            ) from error
        except OSError as error:
            raise TemporaryError(
                f"{domain}: {record_type.rdtype} lookup failed: {error}", domain
            ) from error

    def _apply_record_limit(
        self, records: list, record_type: RecordType, domain: str
    ) -> list:
        limit = self._record_limit
        if limit == 0 or len(records) <= limit:
            return records
        if self.strict_record_limit:
            raise PermanentError(
                f"{domain} has {len(records)} {record_type.rdtype} records, "
                f"more than the limit of {limit}",
                domain,
            )
        logging.debug(
            f"Using the first {limit} of {len(records)} "
            f"{record_type.rdtype} records for {domain}"
        )
        return records[:limit]

    def get_policy_record(
        self, hostname: str, version: str = DEFAULT_SPF_VERSION
    ) -> str:
        tag = _spf_version_tag(version)
        logging.debug(f"Checking for a {tag} record on {hostname}")
        candidates = self._select_policy_records(
            self._query(hostname, RecordType.TXT), tag
        )
        if not candidates and self.query_spf_type:
            logging.debug(f"Checking for a {tag} SPF type record on {hostname}")
            candidates = self._select_policy_records(
                self._query(hostname, RecordType.SPF), tag
            )
        if len(candidates) > 1:
            raise PermanentError(
                f"{hostname} has {len(candidates)} {tag} records", hostname
            )
        if not candidates:
            raise PermanentError(f"{hostname} does not have a {tag} record", hostname)
        return candidates[0]

    @staticmethod
    def _select_policy_records(records: list[str], tag: str) -> list[str]:
        # A version section ends at a space or the end of the record, so
        # v=spf10 does not qualify as v=spf1
        return [
            record
            for record in records
            if record.lower() == tag or record.lower().startswith(f"{tag} ")
        ]

    def get_address_records(
        self, server: str, record_type: RecordType = RecordType.A
    ) -> list[str]:
        record_type = _check_address_record_type(record_type)
        # Scoped IPv6 addresses are not valid in SPF records
        if "%" in server:
            raise PermanentError(
                f"{server} is not a valid host name or IP address", server
            )
        try:
            address = ipaddress.ip_address(server.strip())
        except ValueError:
            pass
        else:
            if (address.version == 4) == (record_type == RecordType.A):
                return [str(address)]
            return []
        logging.debug(f"Getting {record_type.rdtype} records for {server}")
        records = self._query(server, record_type)
        return self._apply_record_limit(records, record_type, server)

    def get_txt_cat_record(self, server: str) -> Optional[str]:
        logging.debug(f"Getting TXT records for {server}")
        records = self._query(server, RecordType.TXT)
        if not records:
            return None
        return "".join(records)

    def get_reverse_records(self, ip_address: str) -> list[str]:
        try:
            address = ipaddress.ip_address(str(ip_address).strip())
        except ValueError as error:
            raise PermanentError(
                f"{ip_address} is not a valid IP address", str(ip_address)
            ) from error
        name = dns.reversename.from_address(str(address)).to_text()
        logging.debug(f"Getting PTR records for {address}")
        hostnames = [
            normalize_domain(hostname)
            for hostname in self._query(name, RecordType.PTR)
        ]
        return self._apply_record_limit(hostnames, RecordType.PTR, str(address))

    def get_mx_records(
        self, domain: str, record_type: Optional[RecordType] = None
    ) -> list[str]:
        if record_type is None:
            record_types = ADDRESS_RECORD_TYPES
        else:
            record_types = (_check_address_record_type(record_type),)
        logging.debug(f"Checking for MX records on {domain}")
        hosts = []
        for answer in self._query(domain, RecordType.MX):
            preference, _, hostname = answer.partition(" ")
            hostname = normalize_domain(hostname)
            if not hostname:
                # RFC 7505 null MX
                logging.debug(f'"No Service" MX record found on {domain}')
                continue
            hosts.append((int(preference), hostname))
        hosts = sorted(hosts)
        hosts = self._apply_record_limit(hosts, RecordType.MX, domain)

        addresses = []
        for _, hostname in hosts:
            for host_record_type in record_types:
                try:
                    host_addresses = self.get_address_records(
                        hostname, host_record_type
                    )
                except PermanentError as error:
                    # A missing exchange is a void lookup (RFC 7208 section 4.6.4)
                    logging.debug(f"Skipping MX host {hostname}: {error}")
                    continue
                for address in host_addresses:
                    if address not in addresses:
                        addresses.append(address)
        return addresses

    def get_local_domain_names(self) -> list[str]:
        names = []
        try:
            hostname = socket.gethostname()
            candidates = [hostname, socket.getfqdn(hostname)]
            try:
                canonical, aliases, _ = socket.gethostbyname_ex(hostname)
                candidates += [canonical] + aliases
            except OSError as error:
                logging.debug(f"Unable to resolve the local host name {hostname}: {error}")
            for candidate in candidates:
                name = normalize_domain(candidate)
                if name and name not in names:
                    names.append(name)
            for name in list(names):
                if "." in name:
                    base_domain = get_base_domain(name)
                    if base_domain not in names:
                        names.append(base_domain)
        except Exception as error:
            logging.debug(f"Unable to discover the local domain names: {error}")
            return []
        return names
