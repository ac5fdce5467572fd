"""
Data classes shared across the sync job.

All of these live only for the duration of one run:

- DeviceRecord: one Netdot device, as produced by a source loader
- DestinationHost: a host row already present in Cacti
- TreeItem: a header or host node in the Cacti graph tree
- GraphSpec: configured rule deciding which graphs a host template gets
- SyncReport: counters and error details for one run
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Union


ANY_TEMPLATE = "any"


@dataclass
class DeviceRecord:
    """
    A device read from Netdot (or from a flat file).

    Attributes:
        external_id: Netdot device id, stable across renames and re-IPs
        description: Display name used as the Cacti host description
        address: Management IP address or host name
        template_id: Cacti host template to apply
        group: Tree header the host is filed under
        disabled: True when Netdot does not want the device polled
        snmp_version: 1, 2 or 3
        community: SNMP community string
    """
    external_id: str
    description: str
    address: str
    template_id: int
    group: str
    disabled: bool = False
    snmp_version: int = 2
    community: str = "public"


@dataclass
class DestinationHost:
    """A host that already exists in Cacti."""
    id: int
    description: str
    hostname: str
    notes: str = ""
    template_id: int = 0
    disabled: bool = False
    snmp_version: int = 2
    community: str = "public"

    def matches(self, record: DeviceRecord, notes: str) -> bool:
        """True when saving record with these notes would change nothing."""
        return (
            self.description == record.description
            and self.hostname == record.address
            and self.notes == notes
            and self.template_id == record.template_id
            and self.disabled == record.disabled
            and self.snmp_version == record.snmp_version
            and self.community == record.community
        )


@dataclass
class TreeItem:
    """
    A node of the sync tree.

    Headers have host_id 0 and a title (the group name); leaves point at a
    host and carry an empty title.
    """
    id: int
    parent: int
    title: str = ""
    host_id: int = 0

    @property
    def is_leaf(self) -> bool:
        return self.host_id != 0

    @property
    def is_header(self) -> bool:
        return self.host_id == 0 and self.title != ""


@dataclass
class GraphSpec:
    """
    Declarative rule mapping a host template to graphs.

    "ds" specs create one graph per SNMP row of a data query and per graph
    template in query_type_ids (query graph id -> graph template id).
    "cg" specs create a single host-level graph from graph_template_id.

    Attributes:
        name: Label used in log messages
        host_template: Template id the rule applies to, or "any"
        kind: "ds" or "cg"
        snmp_query_id: Data query the ds graphs are built on
        query_type_ids: Query graph id -> graph template id
        snmp_field: Optional cache field restricting the rows (e.g. ifOperStatus)
        snmp_value: Value snmp_field must have (e.g. Up)
        graph_template_id: Graph template for cg specs
    """
    name: str
    host_template: Union[int, str] = ANY_TEMPLATE
    kind: str = "ds"
    snmp_query_id: Optional[int] = None
    query_type_ids: Dict[int, int] = field(default_factory=dict)
    snmp_field: Optional[str] = None
    snmp_value: Optional[str] = None
    graph_template_id: Optional[int] = None

    def applies_to(self, template_id: int) -> bool:
        """Check whether this spec covers hosts of the given template."""
        if self.host_template == ANY_TEMPLATE:
            return True
        return int(self.host_template) == int(template_id)


@dataclass
class SyncReport:
    """Counters collected while reconciling one run."""
    headers_created: int = 0
    hosts_created: int = 0
    hosts_updated: int = 0
    hosts_unchanged: int = 0
    leaves_created: int = 0
    leaves_moved: int = 0
    graphs_created: int = 0
    leaves_deleted: int = 0
    headers_deleted: int = 0
    skipped_disabled: int = 0
    conflicts: int = 0
    duplicates: int = 0
    error_details: List[str] = field(default_factory=list)

    @property
    def changes(self) -> int:
        """Number of creates, updates and deletes performed."""
        return (
            self.headers_created + self.hosts_created + self.hosts_updated
            + self.leaves_created + self.leaves_moved + self.graphs_created
            + self.leaves_deleted + self.headers_deleted
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
