"""
Tests for field_mapper.py: TemplateRules and NetdotRowMapper.
"""

import unittest

from netdot2cacti.errors import ConfigurationError, ValidationError
from netdot2cacti.field_mapper import (
    NetdotRowMapper,
    TemplateRules,
    int_to_address,
    normalize_group,
    parse_disable_flag,
    parse_snmp_version,
    parse_template_id,
    strip_domain,
)


RULES = {
    "oid": [[r"^1\.3\.6\.1\.4\.1\.9\.", 5]],
    "product": [["Catalyst", 6], ["ProCurve", 8]],
    "manufacturer": [["^Net-SNMP", 3], ["Microsoft", 7]],
}


class TestTemplateRules(unittest.TestCase):
    """Test template assignment order and fallbacks."""

    def setUp(self):
        self.rules = TemplateRules.from_dict(RULES, default_template_id=1)

    # ── Rule Order ───────────────────────────────────────────────────────

    def test_oid_rule_wins_over_product(self):
        self.assertEqual(self.rules.assign("1.3.6.1.4.1.9.1.516", "Catalyst 3750", "Cisco"), 5)

    def test_product_rule_when_oid_does_not_match(self):
        self.assertEqual(self.rules.assign("1.3.6.1.4.1.11.2", "Catalyst 3750", "Cisco"), 6)

    def test_product_rule_order_preserved(self):
        self.assertEqual(self.rules.assign("", "HP ProCurve 2824", "HP"), 8)

    def test_manufacturer_rule_last(self):
        self.assertEqual(self.rules.assign(None, "unknown", "Net-SNMP project"), 3)
        self.assertEqual(self.rules.assign(None, "unknown", "Microsoft Corp"), 7)

    def test_manufacturer_rule_is_anchored_where_written(self):
        self.assertEqual(self.rules.assign(None, "unknown", "Some Net-SNMP fork"), 1)

    # ── Defaults ─────────────────────────────────────────────────────────

    def test_default_when_nothing_matches(self):
        self.assertEqual(self.rules.assign("1.3.6.1.4.1.2636", "MX480", "Juniper"), 1)

    def test_custom_default(self):
        rules = TemplateRules.from_dict({}, default_template_id=9)
        self.assertEqual(rules.assign(None, None, None), 9)

    def test_empty_sections_allowed(self):
        rules = TemplateRules.from_dict({"product": [["Catalyst", 5]]})
        self.assertEqual(rules.oid, [])
        self.assertEqual(rules.assign("", "Catalyst", ""), 5)

    # ── Invalid Rules ────────────────────────────────────────────────────

    def test_invalid_regex_raises(self):
        with self.assertRaises(ConfigurationError):
            TemplateRules.from_dict({"product": [["Catalyst(", 5]]})

    def test_invalid_template_id_raises(self):
        with self.assertRaises(ConfigurationError):
            TemplateRules.from_dict({"oid": [["^1\\.3", "five"]]})

    def test_malformed_pair_raises(self):
        with self.assertRaises(ConfigurationError):
            TemplateRules.from_dict({"manufacturer": [["Cisco"]]})


class TestValueHelpers(unittest.TestCase):

    def test_normalize_group_replaces_whitespace(self):
        self.assertEqual(normalize_group("Main Campus  North"), "Main_Campus_North")

    def test_normalize_group_trims(self):
        self.assertEqual(normalize_group("  Library "), "Library")

    def test_normalize_group_empty_is_unknown(self):
        self.assertEqual(normalize_group(""), "unknown")
        self.assertEqual(normalize_group(None), "unknown")
        self.assertEqual(normalize_group("   "), "unknown")

    def test_strip_domain(self):
        self.assertEqual(strip_domain("sw1.example.com", "example.com"), "sw1")

    def test_strip_domain_only_trailing(self):
        self.assertEqual(strip_domain("sw1.example.com.au", "example.com"), "sw1.example.com.au")
        self.assertEqual(strip_domain("sw1example.com", "example.com"), "sw1example.com")

    def test_strip_domain_none(self):
        self.assertEqual(strip_domain("sw1.example.com", None), "sw1.example.com")

    def test_int_to_address_v4(self):
        self.assertEqual(int_to_address(167772161), "10.0.0.1")
        self.assertEqual(int_to_address("167772161"), "10.0.0.1")

    def test_int_to_address_v6(self):
        self.assertEqual(int_to_address(2 ** 32), "::1:0:0")

    def test_parse_template_id(self):
        self.assertEqual(parse_template_id(" 5 "), 5)
        with self.assertRaises(ValidationError):
            parse_template_id("abc")

    def test_parse_snmp_version(self):
        self.assertEqual(parse_snmp_version("2"), 2)
        self.assertEqual(parse_snmp_version(3), 3)
        for bad in ("4", "0", "v2", ""):
            with self.assertRaises(ValidationError):
                parse_snmp_version(bad)

    def test_parse_snmp_version_message(self):
        with self.assertRaises(ValidationError) as ctx:
            parse_snmp_version("4", context="sw1: ")
        self.assertEqual(str(ctx.exception), "sw1: Invalid snmp version (4)")

    def test_parse_disable_flag(self):
        self.assertFalse(parse_disable_flag("0"))
        self.assertTrue(parse_disable_flag(" 1"))
        with self.assertRaises(ValidationError):
            parse_disable_flag("2")


class TestNetdotRowMapper(unittest.TestCase):
    """Test mapping of Netdot query rows."""

    def setUp(self):
        self.rules = TemplateRules.from_dict(RULES)
        self.mapper = NetdotRowMapper(self.rules, group_source="used_by", strip_domain="example.com")

    def _row(self, **overrides):
        row = {
            "netdot_id": 42,
            "name": "sw1",
            "zone": "example.com",
            "address": 167772161,
            "site": "Main Campus",
            "used_by": "Network Team",
            "product": "Catalyst 3750",
            "sysobjectid": "1.3.6.1.4.1.9.1.516",
            "manufacturer": "Cisco",
            "snmp_polling": 1,
            "community": "s3cret ",
            "snmp_version": 2,
        }
        row.update(overrides)
        return row

    def test_full_row(self):
        record = self.mapper.to_record(self._row())
        self.assertEqual(record.external_id, "42")
        self.assertEqual(record.description, "sw1")
        self.assertEqual(record.address, "10.0.0.1")
        self.assertEqual(record.template_id, 5)
        self.assertEqual(record.group, "Network_Team")
        self.assertFalse(record.disabled)
        self.assertEqual(record.snmp_version, 2)
        self.assertEqual(record.community, "s3cret")

    def test_group_by_site(self):
        mapper = NetdotRowMapper(self.rules, group_source="site")
        self.assertEqual(mapper.to_record(self._row()).group, "Main_Campus")

    def test_missing_entity_is_unknown(self):
        self.assertEqual(self.mapper.to_record(self._row(used_by=None)).group, "unknown")

    def test_address_falls_back_to_fqdn(self):
        record = self.mapper.to_record(self._row(address=None))
        self.assertEqual(record.address, "sw1.example.com")

    def test_other_zone_kept(self):
        record = self.mapper.to_record(self._row(zone="lab.example.org"))
        self.assertEqual(record.description, "sw1.lab.example.org")

    def test_snmp_defaults(self):
        record = self.mapper.to_record(self._row(snmp_version=None, community=None))
        self.assertEqual(record.snmp_version, 2)
        self.assertEqual(record.community, "public")

    def test_polling_off_is_disabled(self):
        self.assertTrue(self.mapper.to_record(self._row(snmp_polling=0)).disabled)

    def test_template_from_manufacturer(self):
        record = self.mapper.to_record(
            self._row(sysobjectid=None, product=None, manufacturer="Net-SNMP")
        )
        self.assertEqual(record.template_id, 3)

    def test_invalid_snmp_version(self):
        with self.assertRaises(ValidationError):
            self.mapper.to_record(self._row(snmp_version=4))

    def test_invalid_group_source(self):
        with self.assertRaises(ConfigurationError):
            NetdotRowMapper(self.rules, group_source="building")


if __name__ == "__main__":
    unittest.main()
