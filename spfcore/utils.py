# -*- coding: utf-8 -*-
"""DNS utility functions"""

from __future__ import annotations

import logging
import re
import unicodedata
from enum import IntEnum
from typing import Optional

import dns.exception
import dns.name
import dns.resolver
import publicsuffixlist
from expiringdict import ExpiringDict

"""Copyright 2019-2023 Sean Whalen

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

   https://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License."""

ZERO_WIDTH_RE = re.compile(r"[\u200B-\u200D\uFEFF]")  # includes ZWSP, ZWNJ, ZWJ, BOM
PSL = publicsuffixlist.PublicSuffixList()

# dnspython errors that mean the queried name itself is unusable
MALFORMED_NAME_ERRORS = (
    dns.exception.SyntaxError,
    dns.name.NameTooLong,
    dns.name.IDNAException,
)


class RecordType(IntEnum):
    """The DNS record types an SPF evaluator looks up

    The integer values are stable and may be serialized by callers.
    """

    A = 1
    AAAA = 2
    MX = 3
    PTR = 4
    TXT = 5
    SPF = 6

    @property
    def rdtype(self) -> str:
        """The record type mnemonic used on the wire (``SPF`` is type 99)"""
        return self.name


class SPFLookupError(Exception):
    """Base class for errors raised while looking up or matching SPF data"""

    def __init__(self, explanation: str, domain: Optional[str] = None):
        """
        Args:
            explanation (str): A human-readable explanation of the error
            domain (str): The domain or address the error relates to
        """
        self.explanation = explanation
        self.domain = domain
        Exception.__init__(self, explanation)


class PermanentError(SPFLookupError):
    """Raised when a definitive, non-retryable error occurs (SPF permerror)"""


class TemporaryError(SPFLookupError):
    """Raised when an error occurs that may resolve on retry (SPF temperror)"""


def explain_dns_error(error: Exception) -> str:
    """
    Builds a readable explanation from a dnspython exception

    Args:
        error (Exception): The exception raised by dnspython

    Returns:
        str: The explanation
    """
    if isinstance(error, dns.exception.Timeout) and "timeout" in error.kwargs:
        error.kwargs["timeout"] = round(error.kwargs["timeout"], 1)
    explanation = str(error)
    if not explanation:
        explanation = error.__class__.__name__
    return explanation


def get_base_domain(domain: str) -> str:
    """
    Gets the base domain name for the given domain

    .. note::
        Results are based on a list of public domain suffixes at
        https://publicsuffix.org/list/public_suffix_list.dat.

    Args:
        domain (str): A domain or subdomain

    Returns:
        str: The base domain of the given domain

    """
    domain = normalize_domain(domain)
    return PSL.privatesuffix(domain) or domain


def normalize_domain(domain: str) -> str:
    """
    Normalize an input domain by removing zero-width characters, the trailing
    dot, and lowering it

    Args:
        domain (str): A domain or subdomain

    Returns:
        str: A normalized domain
    """
    # 1. Normalize Unicode (NFC form for consistency)
    domain = unicodedata.normalize("NFC", domain)
    # 2. Remove zero-width and similar hidden chars
    domain = ZERO_WIDTH_RE.sub("", domain)
    # 3. Lowercase for case-insensitivity (domains are case-insensitive)
    return domain.strip().rstrip(".").lower()


def query_dns(
    domain: str,
    record_type: RecordType,
    *,
    resolver: dns.resolver.Resolver,
    lifetime: float,
    cache: Optional[ExpiringDict] = None,
) -> list[str]:
    """
    Queries DNS

    TXT and SPF answers are returned with the character-strings of each
    record joined together. Other answers are returned as text without the
    trailing dot.

    Args:
        domain (str): The domain or subdomain to query about
        record_type (RecordType): The record type to query for
        resolver (dns.resolver.Resolver): The resolver to send the query with
        lifetime (float): The number of seconds the whole query may take
        cache (ExpiringDict): Cache storage

    Returns:
        list: A list of answers

    Raises:
        ValueError: if ``record_type`` is not a :class:`RecordType`
    """
    if not isinstance(record_type, RecordType):
        raise ValueError(f"Unsupported record type: {record_type!r}")
    domain = normalize_domain(domain)
    cache_key = f"{domain}_{record_type.rdtype}"
    if cache is not None:
        records = cache.get(cache_key)
        if isinstance(records, list):
            logging.debug(f"Using cached {record_type.rdtype} records for {domain}")
            return list(records)

    answers = resolver.resolve(domain, record_type.rdtype, lifetime=lifetime)
    if record_type in (RecordType.TXT, RecordType.SPF):
        records = [
            b"".join(answer.strings).decode("utf-8", errors="replace")
            for answer in answers
        ]
    else:
        records = [answer.to_text().rstrip(".") for answer in answers]

    if cache is not None:
        cache[cache_key] = records

    return list(records)
