#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""Automated tests"""

import ipaddress
import socket
import time
import unittest
from unittest import mock

import dns.exception
import dns.name
import dns.rdata
import dns.rdataclass
import dns.rdatatype
import dns.resolver

import spfcore
import spfcore.dns_service
import spfcore.mechanisms
import spfcore.utils
from spfcore import (
    DNSService,
    PermanentError,
    RecordType,
    ResolverDNSService,
    TemporaryError,
)


class FakeResolver:
    """Answers queries from an in-memory zone using real dnspython rdata"""

    def __init__(self, zone=None, errors=None):
        self.zone = zone or {}
        self.errors = errors or {}
        self.queries = []
        self.lifetimes = []

    def resolve(self, qname, rdtype, lifetime=None):
        dns.name.from_text(qname)
        self.queries.append((qname, rdtype))
        self.lifetimes.append(lifetime)
        key = (qname, rdtype)
        if key in self.errors:
            raise self.errors[key]
        if key not in self.zone:
            if any(name == qname for name, _ in self.zone):
                raise dns.resolver.NoAnswer()
            raise dns.resolver.NXDOMAIN()
        return [
            dns.rdata.from_text(
                dns.rdataclass.IN, dns.rdatatype.from_text(rdtype), text
            )
            for text in self.zone[key]
        ]


def make_service(zone=None, errors=None, **kwargs):
    resolver = FakeResolver(zone, errors)
    return ResolverDNSService(resolver=resolver, **kwargs), resolver


FIVE_A_RECORDS = {
    ("five.example.com", "A"): [
        "192.0.2.1",
        "192.0.2.2",
        "192.0.2.3",
        "192.0.2.4",
        "192.0.2.5",
    ]
}


class TestRecordType(unittest.TestCase):
    def testStableValues(self):
        """Record types keep their integer values"""
        self.assertEqual(
            [(t.name, int(t)) for t in RecordType],
            [("A", 1), ("AAAA", 2), ("MX", 3), ("PTR", 4), ("TXT", 5), ("SPF", 6)],
        )

    def testQueryDNSRejectsUnknownTypes(self):
        """Only RecordType members reach the resolver"""
        resolver = FakeResolver()
        self.assertRaises(
            ValueError,
            spfcore.utils.query_dns,
            "example.com",
            "A",
            resolver=resolver,
            lifetime=2.0,
        )
        self.assertEqual(resolver.queries, [])


class TestCIDRMechanisms(unittest.TestCase):
    def testIPv4Example(self):
        mechanism = spfcore.ip4_mechanism("192.0.2.0", 24)
        self.assertTrue(mechanism.matches("192.0.2.17"))
        self.assertFalse(mechanism.matches("192.0.3.1"))

    def testIPv6Example(self):
        mechanism = spfcore.ip6_mechanism("2001:db8::", 32)
        self.assertTrue(mechanism.matches("2001:db8:1:2::5"))
        self.assertFalse(mechanism.matches("2001:db9::1"))

    def testIPv4EveryPrefixLength(self):
        """Addresses match when they share the top prefix bits"""
        network = ipaddress.IPv4Address("203.0.113.77")
        for prefix_length in range(0, 33):
            mechanism = spfcore.ip4_mechanism(str(network), prefix_length)
            self.assertTrue(mechanism.matches(network))
            if prefix_length < 32:
                host_bit = ipaddress.IPv4Address(int(network) ^ 1)
                self.assertTrue(mechanism.matches(host_bit), prefix_length)
            if prefix_length > 0:
                network_bit = ipaddress.IPv4Address(
                    int(network) ^ (1 << (32 - prefix_length))
                )
                self.assertFalse(mechanism.matches(network_bit), prefix_length)

    def testIPv6EveryPrefixLength(self):
        """Addresses match when they share the top prefix bits"""
        network = ipaddress.IPv6Address("2001:db8:85a3::8a2e:370:7334")
        for prefix_length in range(0, 129):
            mechanism = spfcore.ip6_mechanism(str(network), prefix_length)
            self.assertTrue(mechanism.matches(str(network)))
            if prefix_length < 128:
                host_bit = ipaddress.IPv6Address(int(network) ^ 1)
                self.assertTrue(mechanism.matches(host_bit), prefix_length)
            if prefix_length > 0:
                network_bit = ipaddress.IPv6Address(
                    int(network) ^ (1 << (128 - prefix_length))
                )
                self.assertFalse(mechanism.matches(network_bit), prefix_length)

    def testZeroPrefixMatchesWholeFamily(self):
        self.assertTrue(spfcore.ip4_mechanism("192.0.2.1", 0).matches("8.8.8.8"))
        self.assertTrue(spfcore.ip6_mechanism("2001:db8::", 0).matches("::1"))

    def testDefaultPrefixIsExactMatch(self):
        mechanism = spfcore.ip4_mechanism("192.0.2.1")
        self.assertEqual(mechanism.prefix_length, 32)
        self.assertEqual(str(mechanism), "ip4:192.0.2.1/32")
        self.assertTrue(mechanism.matches("192.0.2.1"))
        self.assertFalse(mechanism.matches("192.0.2.2"))
        self.assertEqual(spfcore.ip6_mechanism("2001:db8::1").prefix_length, 128)

    def testHostBitsInNetworkAreMasked(self):
        self.assertTrue(spfcore.ip4_mechanism("192.0.2.200", 24).matches("192.0.2.1"))

    def testPrefixLengthOutOfRange(self):
        """Prefix lengths wider than the family raise PermanentError"""
        self.assertRaises(PermanentError, spfcore.ip4_mechanism, "192.0.2.0", 33)
        self.assertRaises(PermanentError, spfcore.ip6_mechanism, "2001:db8::", 129)
        self.assertRaises(PermanentError, spfcore.ip4_mechanism, "192.0.2.0", -1)
        self.assertRaises(PermanentError, spfcore.ip4_mechanism, "192.0.2.0", "2a")
        self.assertRaises(PermanentError, spfcore.ip4_mechanism, "192.0.2.0", True)

    def testInvalidNetworkLiterals(self):
        """Literals of the wrong family or with bad syntax raise PermanentError"""
        invalid_ip4 = ["192.0.2.256", "1200:0000:AB00:1234:0000:2552:7777:1313", ""]
        for literal in invalid_ip4:
            self.assertRaises(PermanentError, spfcore.ip4_mechanism, literal)
        invalid_ip6 = [
            "78.46.96.236",
            "1200:0000:AB00:1234:O000:2552:7777:1313",
            "fe80::1%eth0",
        ]
        for literal in invalid_ip6:
            self.assertRaises(PermanentError, spfcore.ip6_mechanism, literal)

    def testMixedFamiliesNeverMatch(self):
        self.assertFalse(spfcore.ip4_mechanism("0.0.0.0", 0).matches("2001:db8::1"))
        self.assertFalse(spfcore.ip6_mechanism("::", 0).matches("192.0.2.1"))

    def testInvalidCandidate(self):
        mechanism = spfcore.ip4_mechanism("192.0.2.0", 24)
        self.assertRaises(PermanentError, mechanism.matches, "192.0.2")
        self.assertRaises(PermanentError, mechanism.matches, "mail.example.com")

    def testMechanismIsImmutable(self):
        mechanism = spfcore.ip4_mechanism("192.0.2.0", 24)
        with self.assertRaises(AttributeError):
            mechanism.prefix_length = 0
        self.assertEqual(mechanism, spfcore.ip4_mechanism("192.0.2.0", "24"))
        self.assertNotEqual(mechanism, spfcore.ip4_mechanism("192.0.2.0", 25))

    def testCIDRMatchFunction(self):
        self.assertTrue(
            spfcore.cidr_match("10.0.0.0", "10.255.1.1", 8, spfcore.IPV4)
        )
        self.assertFalse(
            spfcore.cidr_match("2001:db8::", "10.255.1.1", 32, spfcore.IPV6)
        )


class TestParseCIDRMechanism(unittest.TestCase):
    def testQualifiersAndCase(self):
        qualifier, mechanism = spfcore.parse_cidr_mechanism("-ip6:2001:db8::/32")
        self.assertEqual(qualifier, "-")
        self.assertEqual(mechanism, spfcore.ip6_mechanism("2001:db8::", 32))

        qualifier, mechanism = spfcore.parse_cidr_mechanism("IP4:192.0.2.0/24")
        self.assertEqual(qualifier, "+")
        self.assertIs(mechanism.family, spfcore.IPV4)
        self.assertTrue(mechanism.matches("192.0.2.17"))

    def testPartsComeFromTheMatchedFamily(self):
        qualifier, mechanism = spfcore.parse_cidr_mechanism("?ip6:2001:db8::/48")
        self.assertEqual(qualifier, "?")
        self.assertIs(mechanism.family, spfcore.IPV6)
        self.assertEqual(mechanism.prefix_length, 48)
        self.assertEqual(str(mechanism), "ip6:2001:db8::/48")

    def testOmittedPrefixLength(self):
        _, mechanism = spfcore.parse_cidr_mechanism("~ip6:2001:db8::1")
        self.assertEqual(mechanism.prefix_length, 128)

    def testSyntaxErrors(self):
        """Malformed terms raise PermanentError"""
        terms = [
            "ip4: 192.0.2.1",
            "ip4:192.0.2.1/024",
            "ip5:192.0.2.1",
            "ip4:1200::1",
            "ip4:192.0.2.1/24/24",
            "",
        ]
        for term in terms:
            self.assertRaises(PermanentError, spfcore.parse_cidr_mechanism, term)

    def testRangeErrors(self):
        self.assertRaises(
            PermanentError, spfcore.parse_cidr_mechanism, "ip4:78.46.96.236/99"
        )
        self.assertRaises(
            PermanentError,
            spfcore.parse_cidr_mechanism,
            "ip6:1200:0000:AB00:1234:0000:2552:7777:1313/130",
        )

    def testErrorMarksPosition(self):
        with self.assertRaises(PermanentError) as context:
            spfcore.parse_cidr_mechanism("ip4:192.0.2.1x")
        self.assertIn("➞", str(context.exception))
        self.assertIn("position", str(context.exception))


class TestPolicyRecords(unittest.TestCase):
    def testSingleRecord(self):
        service, _ = make_service(
            {
                ("example.com", "TXT"): [
                    '"google-site-verification=abc"',
                    '"v=spf1 ip4:192.0.2.0/24 -all"',
                ]
            }
        )
        self.assertEqual(
            service.get_policy_record("example.com", "spf1"),
            "v=spf1 ip4:192.0.2.0/24 -all",
        )
        self.assertEqual(
            service.get_policy_record("example.com", "v=spf1"),
            "v=spf1 ip4:192.0.2.0/24 -all",
        )

    def testSplitRecordIsJoined(self):
        service, _ = make_service(
            {("example.com", "TXT"): ['"v=spf1 ip4:192.0.2.0/24 " "-all"']}
        )
        self.assertEqual(
            service.get_policy_record("example.com"), "v=spf1 ip4:192.0.2.0/24 -all"
        )

    def testNoRecord(self):
        """A missing policy is a permanent error"""
        service, _ = make_service(
            {("example.com", "TXT"): ['"v=spf10 -all"', '"v=spf1-all"']}
        )
        self.assertRaises(
            PermanentError, service.get_policy_record, "example.com", "spf1"
        )

        service, _ = make_service({("example.com", "MX"): ["10 mx.example.com."]})
        self.assertRaises(PermanentError, service.get_policy_record, "example.com")

    def testMultipleRecords(self):
        """An ambiguous policy is a permanent error"""
        service, _ = make_service(
            {("example.com", "TXT"): ['"v=spf1 -all"', '"V=SPF1 ~all"']}
        )
        self.assertRaises(
            PermanentError, service.get_policy_record, "example.com", "spf1"
        )

    def testNonExistentDomain(self):
        service, _ = make_service()
        with self.assertRaises(PermanentError) as context:
            service.get_policy_record("example.doesnotexist")
        self.assertEqual(context.exception.domain, "example.doesnotexist")

    def testRetryableFailures(self):
        """SERVFAIL and timeouts are temporary errors"""
        for error in [
            dns.resolver.NoNameservers(),
            dns.exception.Timeout(timeout=2.0123),
        ]:
            service, _ = make_service(errors={("example.com", "TXT"): error})
            with self.assertRaises(TemporaryError) as context:
                service.get_policy_record("example.com", "spf1")
            self.assertIs(context.exception.__cause__, error)

    def testSPFTypeRecords(self):
        zone = {("example.com", "SPF"): ['"v=spf1 mx -all"']}
        service, _ = make_service(zone)
        self.assertRaises(PermanentError, service.get_policy_record, "example.com")

        service, resolver = make_service(zone, query_spf_type=True)
        self.assertEqual(service.get_policy_record("example.com"), "v=spf1 mx -all")
        self.assertEqual(
            resolver.queries, [("example.com", "TXT"), ("example.com", "SPF")]
        )


class TestAddressRecords(unittest.TestCase):
    def testTruncatesToRecordLimit(self):
        """Answers over the record limit are truncated by default"""
        service, _ = make_service(FIVE_A_RECORDS)
        service.set_record_limit(3)
        self.assertEqual(service.record_limit, 3)
        self.assertEqual(
            service.get_address_records("five.example.com"),
            ["192.0.2.1", "192.0.2.2", "192.0.2.3"],
        )

    def testStrictRecordLimit(self):
        """Answers over the record limit fail in strict mode"""
        service, _ = make_service(FIVE_A_RECORDS, strict_record_limit=True)
        service.set_record_limit(3)
        self.assertRaises(
            PermanentError, service.get_address_records, "five.example.com"
        )
        service.set_record_limit(5)
        self.assertEqual(len(service.get_address_records("five.example.com")), 5)

    def testUnlimited(self):
        service, _ = make_service(FIVE_A_RECORDS, record_limit=0)
        self.assertEqual(service.get_record_limit(), 0)
        self.assertEqual(len(service.get_address_records("five.example.com")), 5)

    def testAAAARecords(self):
        service, resolver = make_service(
            {("example.com", "AAAA"): ["2001:db8::1"], ("example.com", "A"): []}
        )
        self.assertEqual(
            service.get_address_records("Example.COM.", RecordType.AAAA),
            ["2001:db8::1"],
        )
        self.assertEqual(resolver.queries, [("example.com", "AAAA")])

    def testNoAnswer(self):
        service, _ = make_service({("example.com", "A"): ["192.0.2.1"]})
        self.assertEqual(service.get_address_records("example.com", RecordType.AAAA), [])

    def testNonExistentDomain(self):
        service, _ = make_service()
        self.assertRaises(
            PermanentError, service.get_address_records, "example.doesnotexist"
        )

    def testMalformedNames(self):
        service, _ = make_service()
        self.assertRaises(PermanentError, service.get_address_records, "a..example.com")
        self.assertRaises(PermanentError, service.get_address_records, "")
        self.assertRaises(
            PermanentError, service.get_address_records, f"{'a' * 64}.example.com"
        )

    def testIPAddressLiterals(self):
        service, resolver = make_service()
        self.assertEqual(service.get_address_records("192.0.2.1"), ["192.0.2.1"])
        self.assertEqual(service.get_address_records("192.0.2.1", RecordType.AAAA), [])
        self.assertEqual(
            service.get_address_records("2001:db8::1", RecordType.AAAA),
            ["2001:db8::1"],
        )
        self.assertEqual(resolver.queries, [])

    def testScopedLiteralsRejected(self):
        service, resolver = make_service()
        self.assertRaises(
            PermanentError,
            service.get_address_records,
            "fe80::1%eth0",
            RecordType.AAAA,
        )
        self.assertEqual(resolver.queries, [])

    def testRejectsOtherRecordTypes(self):
        service, _ = make_service()
        self.assertRaises(
            ValueError, service.get_address_records, "example.com", RecordType.MX
        )
        self.assertRaises(ValueError, service.get_address_records, "example.com", 1)

    def testAnswersAreCached(self):
        service, resolver = make_service(FIVE_A_RECORDS)
        service.get_address_records("five.example.com")
        service.get_address_records("five.example.com")
        self.assertEqual(len(resolver.queries), 1)

        service, resolver = make_service(FIVE_A_RECORDS, cache=False)
        service.get_address_records("five.example.com")
        service.get_address_records("five.example.com")
        self.assertEqual(len(resolver.queries), 2)


class TestOtherLookups(unittest.TestCase):
    def testTXTRecordsAreConcatenated(self):
        service, _ = make_service(
            {("example.com", "TXT"): ['"Mail from " "%{i}"', '" is not allowed"']}
        )
        self.assertEqual(
            service.get_txt_cat_record("example.com"),
            "Mail from %{i} is not allowed",
        )

    def testNoTXTRecords(self):
        service, _ = make_service({("example.com", "A"): ["192.0.2.1"]})
        self.assertIsNone(service.get_txt_cat_record("example.com"))

    def testTXTTimeout(self):
        service, _ = make_service(
            errors={("example.com", "TXT"): dns.exception.Timeout(timeout=2.0)}
        )
        self.assertRaises(TemporaryError, service.get_txt_cat_record, "example.com")

    def testReverseRecords(self):
        service, resolver = make_service(
            {
                ("1.2.0.192.in-addr.arpa", "PTR"): [
                    "Mail.Example.com.",
                    "smtp.example.com.",
                    "mx.example.com.",
                ]
            },
            record_limit=2,
        )
        self.assertEqual(
            service.get_reverse_records("192.0.2.1"),
            ["mail.example.com", "smtp.example.com"],
        )
        self.assertEqual(resolver.queries, [("1.2.0.192.in-addr.arpa", "PTR")])

    def testReverseRecordsOfInvalidAddress(self):
        service, resolver = make_service()
        self.assertRaises(PermanentError, service.get_reverse_records, "192.0.2")
        self.assertEqual(resolver.queries, [])

    def testMXRecords(self):
        """MX hosts are resolved in preference order"""
        service, _ = make_service(
            {
                ("example.com", "MX"): ["20 mx2.example.com.", "10 mx1.example.com."],
                ("mx1.example.com", "A"): ["192.0.2.10"],
                ("mx1.example.com", "AAAA"): ["2001:db8::10"],
                ("mx2.example.com", "A"): ["192.0.2.20", "192.0.2.10"],
            }
        )
        self.assertEqual(
            service.get_mx_records("example.com"),
            ["192.0.2.10", "2001:db8::10", "192.0.2.20"],
        )
        self.assertEqual(
            service.get_mx_records("example.com", RecordType.AAAA), ["2001:db8::10"]
        )

    def testMXRecordLimitBoundsHosts(self):
        """The record limit bounds the number of MX hosts consulted"""
        service, resolver = make_service(
            {
                ("example.com", "MX"): [
                    "10 mx1.example.com.",
                    "20 mx2.example.com.",
                    "30 mx3.example.com.",
                ],
                ("mx1.example.com", "A"): ["192.0.2.1", "192.0.2.2", "192.0.2.3"],
                ("mx2.example.com", "A"): ["192.0.2.4", "192.0.2.5", "192.0.2.6"],
                ("mx3.example.com", "A"): ["192.0.2.7"],
            },
            record_limit=3,
        )
        service.set_record_limit(2)
        addresses = service.get_mx_records("example.com", RecordType.A)
        self.assertEqual(len(addresses), 4)
        self.assertNotIn(("mx3.example.com", "A"), resolver.queries)

        service.strict_record_limit = True
        self.assertRaises(PermanentError, service.get_mx_records, "example.com")

    def testNullMX(self):
        service, _ = make_service({("example.com", "MX"): ["0 ."]})
        self.assertEqual(service.get_mx_records("example.com"), [])

    def testMXSkipsMissingHosts(self):
        """An MX host that does not exist is skipped"""
        zone = {
            ("example.com", "MX"): ["10 gone.example.com.", "20 mail.example.com."],
            ("mail.example.com", "A"): ["192.0.2.1"],
        }
        service, _ = make_service(zone)
        self.assertEqual(service.get_mx_records("example.com"), ["192.0.2.1"])

        service, _ = make_service(
            zone, errors={("gone.example.com", "A"): dns.exception.Timeout()}
        )
        self.assertRaises(TemporaryError, service.get_mx_records, "example.com")

    def testMXNonExistentDomain(self):
        service, _ = make_service()
        self.assertRaises(PermanentError, service.get_mx_records, "example.doesnotexist")

    def testLookupDispatch(self):
        service, _ = make_service(
            {
                ("example.com", "TXT"): ['"v=spf1 -all"'],
                ("example.com", "A"): ["192.0.2.1"],
            }
        )
        self.assertEqual(service.lookup("example.com", RecordType.SPF), ["v=spf1 -all"])
        self.assertEqual(service.lookup("example.com", RecordType.TXT), ["v=spf1 -all"])
        self.assertEqual(service.lookup("example.com", RecordType.A), ["192.0.2.1"])
        self.assertRaises(ValueError, service.lookup, "example.com", 1)


class TestLocalDomainNames(unittest.TestCase):
    def testDiscoversNames(self):
        service, _ = make_service()
        with mock.patch.object(
            socket, "gethostname", return_value="mail"
        ), mock.patch.object(
            socket, "getfqdn", return_value="mail.example.com"
        ), mock.patch.object(
            socket,
            "gethostbyname_ex",
            return_value=("mail.example.com", ["smtp.example.com"], ["192.0.2.1"]),
        ):
            names = service.get_local_domain_names()
        self.assertEqual(
            names, ["mail", "mail.example.com", "smtp.example.com", "example.com"]
        )

    def testNeverFails(self):
        """Local domain name discovery returns an empty list on failure"""
        service, _ = make_service()
        with mock.patch.object(socket, "gethostname", side_effect=OSError("boom")):
            self.assertEqual(service.get_local_domain_names(), [])


class TestSessions(unittest.TestCase):
    def testSettingsAreValidated(self):
        service, _ = make_service()
        self.assertRaises(ValueError, service.set_timeout, 0)
        self.assertRaises(ValueError, service.set_timeout, "2")
        self.assertRaises(ValueError, service.set_record_limit, -1)
        self.assertRaises(ValueError, service.set_record_limit, 2.5)
        self.assertRaises(ValueError, make_service, timeout=-1)

    def testTimeoutAppliesToEachLookup(self):
        service, resolver = make_service(FIVE_A_RECORDS, timeout=3, cache=False)
        service.set_timeout(4)
        self.assertEqual(service.timeout, 4.0)
        service.get_address_records("five.example.com")
        service.get_address_records("five.example.com")
        self.assertEqual(resolver.lifetimes, [4.0, 4.0])

    def testNewSessionSnapshotsSettings(self):
        service, resolver = make_service(
            FIVE_A_RECORDS, timeout=5, record_limit=3, strict_record_limit=True
        )
        session = service.new_session()
        service.set_record_limit(1)
        service.set_timeout(1)
        self.assertEqual(session.record_limit, 3)
        self.assertEqual(session.timeout, 5.0)
        self.assertTrue(session.strict_record_limit)
        self.assertIs(session.resolver, resolver)
        self.assertIsNot(session.cache, service.cache)

        other = service.new_session(record_limit=0, strict_record_limit=False)
        self.assertEqual(len(other.get_address_records("five.example.com")), 5)

    def testDeadlinePassed(self):
        """Lookups after the deadline are temporary errors"""
        service, resolver = make_service(FIVE_A_RECORDS)
        service.set_deadline(0.001)
        time.sleep(0.01)
        self.assertRaises(
            TemporaryError, service.get_address_records, "five.example.com"
        )
        self.assertEqual(resolver.queries, [])

        service.clear_deadline()
        self.assertEqual(len(service.get_address_records("five.example.com")), 5)

    def testDeadlineShortensLifetime(self):
        service, resolver = make_service(FIVE_A_RECORDS, timeout=30)
        service.set_deadline(5)
        service.get_address_records("five.example.com")
        self.assertLessEqual(resolver.lifetimes[0], 5)
        self.assertGreater(resolver.lifetimes[0], 0)

    def testServiceIsAbstract(self):
        self.assertRaises(TypeError, DNSService)


class TestDomainMechanisms(unittest.TestCase):
    def testAMechanism(self):
        service, resolver = make_service(
            {
                ("example.com", "A"): ["192.0.2.10"],
                ("example.com", "AAAA"): ["2001:db8::10"],
            }
        )
        self.assertTrue(spfcore.a_match(service, "example.com", "192.0.2.10"))
        self.assertFalse(spfcore.a_match(service, "example.com", "192.0.2.11"))
        self.assertTrue(
            spfcore.a_match(service, "example.com", "192.0.2.11", ip4_prefix_length=24)
        )
        self.assertTrue(
            spfcore.a_match(
                service, "example.com", "2001:db8::ff", ip6_prefix_length=64
            )
        )
        self.assertNotIn(("example.com", "MX"), resolver.queries)

    def testAMechanismPrefixLengthOutOfRange(self):
        service, _ = make_service({("example.com", "A"): ["192.0.2.10"]})
        self.assertRaises(
            PermanentError,
            spfcore.a_match,
            service,
            "example.com",
            "192.0.2.10",
            ip4_prefix_length=33,
        )

    def testFirstMatchWins(self):
        service = mock.create_autospec(DNSService, instance=True)
        service.get_address_records.return_value = ["192.0.2.1", "not-an-address"]
        self.assertTrue(spfcore.a_match(service, "example.com", "192.0.2.1"))
        service.get_address_records.assert_called_once_with(
            "example.com", RecordType.A
        )

    def testMXMechanism(self):
        service, _ = make_service(
            {
                ("example.com", "MX"): ["10 mx1.example.com."],
                ("mx1.example.com", "A"): ["192.0.2.10"],
            }
        )
        self.assertTrue(spfcore.mx_match(service, "example.com", "192.0.2.10"))
        self.assertFalse(spfcore.mx_match(service, "example.com", "2001:db8::10"))

    def testMXMechanismSkipsMissingExchange(self):
        service, _ = make_service(
            {
                ("example.com", "MX"): ["10 gone.example.com.", "20 mail.example.com."],
                ("mail.example.com", "A"): ["192.0.2.1"],
            }
        )
        self.assertTrue(spfcore.mx_match(service, "example.com", "192.0.2.1"))

    def testTemporaryErrorsPropagate(self):
        service, _ = make_service(
            errors={("example.com", "A"): dns.resolver.NoNameservers()}
        )
        self.assertRaises(
            TemporaryError, spfcore.a_match, service, "example.com", "192.0.2.1"
        )

    def testPTRMechanism(self):
        service, _ = make_service(
            {
                ("1.2.0.192.in-addr.arpa", "PTR"): [
                    "spoofed.example.com.",
                    "broken.example.com.",
                    "mail.example.com.",
                ],
                ("spoofed.example.com", "A"): ["198.51.100.1"],
                ("mail.example.com", "A"): ["192.0.2.1"],
            },
            errors={("broken.example.com", "A"): dns.resolver.NoNameservers()},
        )
        self.assertTrue(spfcore.ptr_match(service, "example.com", "192.0.2.1"))
        self.assertFalse(spfcore.ptr_match(service, "example.net", "192.0.2.1"))

    def testPTRMechanismNotConfirmed(self):
        service, _ = make_service(
            {
                ("1.2.0.192.in-addr.arpa", "PTR"): ["mail.example.com."],
                ("mail.example.com", "A"): ["198.51.100.1"],
            }
        )
        self.assertFalse(spfcore.ptr_match(service, "example.com", "192.0.2.1"))


if __name__ == "__main__":
    unittest.main(verbosity=2)
