"""
================================================================================
Netdot Source Loaders
================================================================================

This module produces the DeviceRecords a sync run works on. Two sources are
supported:

1. NetdotSource - Queries the Netdot MySQL database directly
2. FlatFileSource - Parses a ';'-delimited export file

Both return records in source order; group_records() then arranges them
into the group → description → record mapping the reconciler iterates.

Flat File Format:
-----------------
One device per line, eight ';'-separated fields, no escaping:

    externalId;description;address;templateId;group;disable;snmpVersion;community

    1;sw1;10.0.0.1;5;siteA;0;2;public

Blank lines and lines starting with '#' are ignored.

Usage Example:
--------------
    from netdot2cacti.config import load_config
    from netdot2cacti.netdot_source import NetdotSource, group_records

    config = load_config()
    source = NetdotSource.from_config(config)
    groups = group_records(source.load())
    source.close()
"""

from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .db import Database
from .errors import SourceError, ValidationError
from .field_mapper import (
    NetdotRowMapper,
    normalize_group,
    parse_disable_flag,
    parse_snmp_version,
    parse_template_id,
)
from .logger import get_logger
from .models import DeviceRecord

logger = get_logger("netdot2cacti.netdot_source")


# One row per device, joined with everything needed for naming,
# grouping and template assignment
DEVICE_QUERY = """
    SELECT    rr.name          AS name,
              zone.name        AS zone,
              ipblock.address  AS address,
              site.name        AS site,
              p.name           AS product,
              p.sysobjectid    AS sysobjectid,
              pt.name          AS product_type,
              d.id             AS netdot_id,
              d.snmp_managed   AS snmp_managed,
              d.snmp_polling   AS snmp_polling,
              d.community      AS community,
              d.snmp_version   AS snmp_version,
              e.name           AS used_by,
              m.name           AS manufacturer
    FROM      device d
    JOIN      rr              ON d.name = rr.id
    JOIN      zone            ON rr.zone = zone.id
    JOIN      product p       ON d.product = p.id
    JOIN      producttype pt  ON p.type = pt.id
    LEFT JOIN site            ON d.site = site.id
    LEFT JOIN ipblock         ON d.snmp_target = ipblock.id
    LEFT JOIN entity e        ON d.used_by = e.id
    LEFT JOIN entity m        ON p.manufacturer = m.id
    ORDER BY  rr.name
"""

FLAT_FILE_FIELDS = 8


# =============================================================================
# NETDOT DATABASE SOURCE
# =============================================================================

class NetdotSource:
    """
    Read devices from the Netdot database.

    Only devices flagged as SNMP managed are returned.
    """

    def __init__(self, db: Database, mapper: NetdotRowMapper):
        self.db = db
        self.mapper = mapper

    @classmethod
    def from_config(cls, config) -> "NetdotSource":
        netdot = config.netdot
        db = Database(
            host=netdot.host,
            port=netdot.port,
            user=netdot.user,
            password=netdot.password,
            database=netdot.database,
            error_class=SourceError,
        )
        mapper = NetdotRowMapper(
            config.template_rules,
            group_source=config.group_source,
            strip_domain=config.strip_domain,
        )
        return cls(db, mapper)

    def fetch_rows(self) -> List[Dict[str, Any]]:
        return self.db.fetch_all(DEVICE_QUERY)

    def load(self) -> List[DeviceRecord]:
        """
        Query Netdot and map every managed device.

        Raises:
            SourceError: If Netdot cannot be reached or queried.
            ValidationError: If a device carries an invalid SNMP version.
        """
        rows = self.fetch_rows()
        records = []
        for row in rows:
            if not row.get("snmp_managed"):
                continue
            records.append(self.mapper.to_record(row))

        logger.info(f"Read {len(records)} managed devices from Netdot ({len(rows)} total)")
        return records

    def close(self):
        self.db.close()


# =============================================================================
# FLAT FILE SOURCE
# =============================================================================

class FlatFileSource:
    """Read devices from a ';'-delimited file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> List[DeviceRecord]:
        """
        Parse every line of the file.

        Raises:
            SourceError: If the file cannot be read.
            ValidationError: On a malformed line, template id, SNMP version
                             or enable flag. Parsing stops at the first one.
        """
        try:
            with open(self.path, encoding="utf-8") as f:
                lines = f.readlines()
        except OSError as e:
            raise SourceError(f"Cannot read {self.path}: {e}") from e

        records = []
        for lineno, line in enumerate(lines, start=1):
            if not line.strip() or line.lstrip().startswith("#"):
                continue
            records.append(parse_line(line, lineno))

        logger.info(f"Read {len(records)} devices from {self.path}")
        return records

    def close(self):
        pass


def parse_line(line: str, lineno: Optional[int] = None) -> DeviceRecord:
    """
    Parse one flat-file line into a DeviceRecord.

    Raises:
        ValidationError: If the line does not hold exactly eight fields or
                         a value is invalid.
    """
    context = f"line {lineno}: " if lineno is not None else ""
    fields = line.rstrip("\r\n").split(";")
    if len(fields) != FLAT_FILE_FIELDS:
        raise ValidationError(
            f"{context}Expected {FLAT_FILE_FIELDS} fields, found {len(fields)}"
        )

    external_id, description, address, template_id, group, disable, version, community = fields

    return DeviceRecord(
        external_id=external_id.strip(),
        description=description.strip(),
        address=address.strip(),
        template_id=parse_template_id(template_id, context),
        group=normalize_group(group),
        disabled=parse_disable_flag(disable, context),
        snmp_version=parse_snmp_version(version, context),
        community=community.rstrip(),
    )


# =============================================================================
# GROUPING
# =============================================================================

def group_records(records: Iterable[DeviceRecord]) -> "OrderedDict[str, OrderedDict[str, DeviceRecord]]":
    """
    Arrange records as group → description → record, keeping source order.

    A description seen twice within one group keeps its first position but
    the last record's values.
    """
    groups: "OrderedDict[str, OrderedDict[str, DeviceRecord]]" = OrderedDict()
    for record in records:
        hosts = groups.setdefault(record.group, OrderedDict())
        if record.description in hosts:
            logger.warning(
                f"{record.group}: duplicate description {record.description}, "
                f"netdot_id {record.external_id} replaces {hosts[record.description].external_id}"
            )
        hosts[record.description] = record
    return groups
