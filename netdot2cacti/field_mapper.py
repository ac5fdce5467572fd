"""
================================================================================
Field Mapper: Netdot → Cacti Field Mapping
================================================================================

This module handles the transformation of Netdot device rows into the
DeviceRecord format the reconciler consumes. It includes:

1. Template Assignment - Picking a Cacti host template for each device
2. Grouping - Deciding which tree header a device is filed under
3. Data Transformation - Host names, addresses and SNMP defaults

Template Assignment Logic:
--------------------------
Three ordered rule lists are evaluated, first match wins:
- sysObjectID rules   (e.g. ^1\\.3\\.6\\.1\\.4\\.1\\.9\\. → Cisco Router)
- product name rules  (e.g. Catalyst → Cisco Router)
- manufacturer rules  (e.g. ^Net-SNMP → ucd/net SNMP Host)

When nothing matches, the configured default template is used
(1 = Generic SNMP-enabled Host in a stock Cacti install).

Usage Example:
--------------
    from netdot2cacti.field_mapper import TemplateRules, NetdotRowMapper

    rules = TemplateRules.from_dict({"product": [["Catalyst", 5]]})
    mapper = NetdotRowMapper(rules, group_source="used_by", strip_domain="example.com")
    record = mapper.to_record(row)
"""

import ipaddress
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Pattern, Tuple

from .errors import ConfigurationError, ValidationError
from .logger import get_logger
from .models import DeviceRecord

logger = get_logger("netdot2cacti.field_mapper")


GROUP_SOURCES = ("used_by", "site")
UNKNOWN = "unknown"

VALID_SNMP_VERSIONS = (1, 2, 3)
VALID_DISABLE_FLAGS = (0, 1)


# =============================================================================
# TEMPLATE RULES
# =============================================================================

@dataclass
class TemplateRules:
    """
    Ordered (pattern, template id) rule lists.

    Attributes:
        oid: Rules matched against the product sysObjectID
        product: Rules matched against the product name
        manufacturer: Rules matched against the manufacturer name
        default_template_id: Template used when no rule matches
    """
    oid: List[Tuple[Pattern, int]] = field(default_factory=list)
    product: List[Tuple[Pattern, int]] = field(default_factory=list)
    manufacturer: List[Tuple[Pattern, int]] = field(default_factory=list)
    default_template_id: int = 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_template_id: int = 1) -> "TemplateRules":
        """
        Build rules from the "template_rules" section of the rules file.

        Each section is a list of [regex, template_id] pairs so that the
        order in the file is the evaluation order.

        Raises:
            ConfigurationError: On an invalid regex or template id.
        """
        return cls(
            oid=_compile_rules("oid", data.get("oid", [])),
            product=_compile_rules("product", data.get("product", [])),
            manufacturer=_compile_rules("manufacturer", data.get("manufacturer", [])),
            default_template_id=default_template_id,
        )

    def assign(self, sysobjectid: Optional[str], product: Optional[str],
               manufacturer: Optional[str], host: str = "") -> int:
        """
        Pick the host template for a device.

        Args:
            sysobjectid: Product sysObjectID (may be empty)
            product: Product name, "unknown" when missing
            manufacturer: Manufacturer name, "unknown" when missing
            host: Host name, only used in debug messages

        Returns:
            The template id of the first matching rule, else the default.
        """
        for label, rules, value in (
            ("oid", self.oid, sysobjectid or ""),
            ("product", self.product, product or UNKNOWN),
            ("manufacturer", self.manufacturer, manufacturer or UNKNOWN),
        ):
            for pattern, template_id in rules:
                if pattern.search(value):
                    logger.debug(f"{host}: Assigning template {template_id} ({label} matches {pattern.pattern})")
                    return template_id
                logger.debug(f"{host}: {value} does not match {pattern.pattern}")

        return self.default_template_id


def _compile_rules(label: str, pairs: Iterable) -> List[Tuple[Pattern, int]]:
    compiled = []
    for pair in pairs:
        try:
            pattern, template_id = pair
            compiled.append((re.compile(pattern), int(template_id)))
        except (TypeError, ValueError, re.error) as e:
            raise ConfigurationError(f"Invalid {label} template rule {pair!r}: {e}")
    return compiled


# =============================================================================
# VALUE HELPERS
# =============================================================================

def normalize_group(name: Optional[str]) -> str:
    """Replace runs of whitespace with underscores; empty → "unknown"."""
    if not name or not name.strip():
        return UNKNOWN
    return re.sub(r"\s+", "_", name.strip())


def strip_domain(host: str, domain: Optional[str]) -> str:
    """Remove a trailing ".<domain>" from a host name."""
    if domain and host.endswith("." + domain):
        return host[: -(len(domain) + 1)]
    return host


def int_to_address(value: Any) -> str:
    """Render Netdot's integer ipblock.address as a dotted/colon address."""
    return str(ipaddress.ip_address(int(value)))


def parse_template_id(value: Any, context: str = "") -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"{context}Invalid template id ({value})")


def parse_snmp_version(value: Any, context: str = "") -> int:
    """SNMP version must be exactly 1, 2 or 3."""
    text = str(value).strip()
    if text not in ("1", "2", "3"):
        raise ValidationError(f"{context}Invalid snmp version ({value})")
    return int(text)


def parse_disable_flag(value: Any, context: str = "") -> bool:
    """Enable flag must be exactly 0 or 1."""
    text = str(value).strip()
    if text not in ("0", "1"):
        raise ValidationError(f"{context}Invalid enable flag: {value}")
    return text == "1"


# =============================================================================
# NETDOT ROW MAPPER
# =============================================================================

class NetdotRowMapper:
    """
    Turn a row of the Netdot device query into a DeviceRecord.

    Rows are dictionaries keyed by the column aliases of
    netdot_source.DEVICE_QUERY.
    """

    def __init__(self, rules: TemplateRules, group_source: str = "used_by",
                 strip_domain: Optional[str] = None):
        if group_source not in GROUP_SOURCES:
            raise ConfigurationError(
                f"Invalid group source ({group_source}), expected one of {', '.join(GROUP_SOURCES)}"
            )
        self.rules = rules
        self.group_source = group_source
        self.strip_domain = strip_domain

    @staticmethod
    def fqdn(row: Dict[str, Any]) -> str:
        name = row.get("name") or ""
        zone = row.get("zone")
        return f"{name}.{zone}" if zone else name

    def host_name(self, row: Dict[str, Any]) -> str:
        return strip_domain(self.fqdn(row), self.strip_domain)

    def group_for(self, row: Dict[str, Any]) -> str:
        if self.group_source == "site":
            return normalize_group(row.get("site"))
        return normalize_group(row.get("used_by"))

    def to_record(self, row: Dict[str, Any]) -> DeviceRecord:
        """
        Map one Netdot row.

        Raises:
            ValidationError: If the row carries an unusable SNMP version.
        """
        host = self.host_name(row)

        # Fall back to the FQDN when the device has no SNMP target address
        address = int_to_address(row["address"]) if row.get("address") else self.fqdn(row)

        template_id = self.rules.assign(
            row.get("sysobjectid"),
            row.get("product") or UNKNOWN,
            row.get("manufacturer") or UNKNOWN,
            host=host,
        )

        version = row.get("snmp_version") or 2
        community = (row.get("community") or "public").strip()

        return DeviceRecord(
            external_id=str(row["netdot_id"]),
            description=host,
            address=address,
            template_id=template_id,
            group=self.group_for(row),
            disabled=not row.get("snmp_polling"),
            snmp_version=parse_snmp_version(version, context=f"{host}: "),
            community=community,
        )
