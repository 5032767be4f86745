# -*- coding: utf-8 -*-

"""DNS lookups and address matching for Sender Policy Framework (SPF) evaluators"""

from __future__ import annotations

import spfcore._constants
from spfcore.dns_service import DNSService, ResolverDNSService
from spfcore.mechanisms import (
    IPV4,
    IPV6,
    AddressFamily,
    CIDRMechanism,
    a_match,
    cidr_match,
    ip4_mechanism,
    ip6_mechanism,
    mx_match,
    parse_cidr_mechanism,
    ptr_match,
)
from spfcore.utils import (
    PermanentError,
    RecordType,
    SPFLookupError,
    TemporaryError,
)

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


__version__ = spfcore._constants.__version__

__all__ = [
    "IPV4",
    "IPV6",
    "AddressFamily",
    "CIDRMechanism",
    "DNSService",
    "PermanentError",
    "RecordType",
    "ResolverDNSService",
    "SPFLookupError",
    "TemporaryError",
    "a_match",
    "cidr_match",
    "ip4_mechanism",
    "ip6_mechanism",
    "mx_match",
    "parse_cidr_mechanism",
    "ptr_match",
]
