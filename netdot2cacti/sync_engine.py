"""
================================================================================
Sync Engine: Netdot → Cacti Reconciliation
================================================================================

This module contains the core synchronization logic for bringing Cacti in
line with Netdot. It handles:

1. Reading Cacti's current state into lookup indices
2. Matching Netdot devices to existing Cacti hosts
3. Creating or updating hosts (never deleting them)
4. Filing hosts under one header per group in the sync tree
5. Creating graphs for enabled hosts
6. Deleting tree nodes whose group or host left Netdot

Matching Logic:
---------------
The Netdot device id is stored in the Cacti host notes as
"stableId:<id>" (the key is configurable), so a host keeps its identity
through renames and re-addressing. A device is matched by:
1. Stable id found in the notes - Primary matching method
2. Description (host name) - Secondary matching method

If neither matches but another host already uses the device's address,
the device is a CONFLICT: it is skipped and reported, nothing is
overwritten.

Tree Reconciliation:
--------------------
Existing headers (by group name) and leaves (by host id) are loaded into
working sets. Every node used by this run is taken out of its set; the
nodes still left after the last device are stale and deleted.

Usage Example:
--------------
    from netdot2cacti.sync_engine import SyncEngine

    engine = SyncEngine(client, config)
    report = engine.run(groups)
    print(f"Created: {report.hosts_created}")
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional

from .errors import CactiClientError, ValidationError
from .field_mapper import VALID_DISABLE_FLAGS, VALID_SNMP_VERSIONS
from .graph_manager import GraphManager
from .logger import get_logger
from .models import DestinationHost, DeviceRecord, SyncReport, TreeItem

logger = get_logger("netdot2cacti.sync_engine")


# =============================================================================
# ENUMS AND DATA CLASSES
# =============================================================================

class MatchKind(Enum):
    """
    Outcome of looking a device up in Cacti.

    Values:
        MATCHED: Device maps to an existing host, which will be updated
        CONFLICT: Device's address belongs to a different host, skip it
        NOT_FOUND: Device is new to Cacti
    """
    MATCHED = "matched"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


@dataclass
class HostMatch:
    """
    Result of resolve_host().

    Attributes:
        kind: MATCHED, CONFLICT or NOT_FOUND
        host_id: Matched host (MATCHED) or the host holding the address (CONFLICT)
        reason: Human-readable explanation of the match
    """
    kind: MatchKind
    host_id: int = 0
    reason: str = ""


@dataclass
class DestinationState:
    """
    Lookup indices over Cacti, built once before reconciling.

    The tree indices double as working sets: nodes are removed as the run
    claims them.
    """
    tree_id: int
    host_templates: Dict[int, str] = field(default_factory=dict)
    hosts: Dict[int, DestinationHost] = field(default_factory=dict)
    hosts_by_stable_id: Dict[str, int] = field(default_factory=dict)
    hosts_by_description: Dict[str, int] = field(default_factory=dict)
    hosts_by_address: Dict[str, int] = field(default_factory=dict)
    leaves_by_host: Dict[int, TreeItem] = field(default_factory=dict)
    headers_by_group: Dict[str, TreeItem] = field(default_factory=dict)

    def add_host(self, host: DestinationHost, annotation_key: str):
        """
        Index a host under all three lookup keys.

        A host indexed again (after a save) first loses the keys of its
        previous version, so its old description or address no longer
        resolve to it.
        """
        previous = self.hosts.get(host.id)
        if previous is not None:
            for index, key in (
                (self.hosts_by_stable_id, parse_stable_id(previous.notes, annotation_key)),
                (self.hosts_by_description, previous.description),
                (self.hosts_by_address, previous.hostname),
            ):
                if key is not None and index.get(key) == host.id:
                    del index[key]

        self.hosts[host.id] = host
        stable_id = parse_stable_id(host.notes, annotation_key)
        if stable_id is not None:
            self.hosts_by_stable_id[stable_id] = host.id
        if host.description:
            self.hosts_by_description[host.description] = host.id
        if host.hostname:
            self.hosts_by_address[host.hostname] = host.id


# =============================================================================
# ANNOTATIONS
# =============================================================================

def parse_stable_id(notes: Optional[str], key: str) -> Optional[str]:
    """Extract the stable id stored as "<key>:<id>" in free-text notes."""
    if not notes:
        return None
    match = re.search(rf"{re.escape(key)}:(\S+)", notes)
    return match.group(1) if match else None


def annotate(notes: Optional[str], key: str, external_id: str) -> str:
    """
    Return notes carrying "<key>:<external_id>".

    An existing annotation is replaced in place; any other text in the
    notes is kept.
    """
    annotation = f"{key}:{external_id}"
    if not notes:
        return annotation
    pattern = rf"{re.escape(key)}:\S+"
    if re.search(pattern, notes):
        return re.sub(pattern, lambda _: annotation, notes, count=1)
    return f"{notes.rstrip()}\n{annotation}"


# =============================================================================
# DESTINATION STATE
# =============================================================================

def read_destination_state(client, tree_id: int, annotation_key: str) -> DestinationState:
    """
    Build the host and tree indices from Cacti's current content.

    Args:
        client: CactiClient (or compatible)
        tree_id: The sync tree
        annotation_key: Key of the stable id in host notes
    """
    state = DestinationState(tree_id=tree_id, host_templates=client.get_host_templates())

    for host in client.get_hosts():
        state.add_host(host, annotation_key)

    for item in client.get_tree_items(tree_id):
        if item.is_leaf:
            state.leaves_by_host[item.host_id] = item
        elif item.is_header:
            state.headers_by_group[item.title] = item

    logger.debug(
        f"Cacti state: {len(state.hosts)} hosts ({len(state.hosts_by_stable_id)} from Netdot), "
        f"{len(state.headers_by_group)} headers, {len(state.leaves_by_host)} host nodes"
    )
    return state


# =============================================================================
# MATCHING AND VALIDATION
# =============================================================================

def resolve_host(record: DeviceRecord, state: DestinationState) -> HostMatch:
    """
    Find the Cacti host a device maps to.

    Priority: stable id, then description. An address already used by a
    host that matched neither way is a conflict.
    """
    host_id = state.hosts_by_stable_id.get(record.external_id)
    if host_id is not None:
        return HostMatch(MatchKind.MATCHED, host_id, f"Stable id match: {record.external_id}")

    host_id = state.hosts_by_description.get(record.description)
    if host_id is not None:
        return HostMatch(MatchKind.MATCHED, host_id, f"Description match: {record.description}")

    host_id = state.hosts_by_address.get(record.address)
    if host_id is not None:
        return HostMatch(MatchKind.CONFLICT, host_id, f"Address in use: {record.address}")

    return HostMatch(MatchKind.NOT_FOUND, reason="No match found")


def validate_record(record: DeviceRecord, host_templates: Mapping[int, str]):
    """
    Check a device before it is saved.

    Raises:
        ValidationError: Unknown template id, SNMP version other than
                         1/2/3, or enable flag other than 0/1.
    """
    if record.template_id not in host_templates:
        raise ValidationError(f"{record.description}: Unknown template id ({record.template_id})")
    if record.snmp_version not in VALID_SNMP_VERSIONS:
        raise ValidationError(f"{record.description}: Invalid snmp version ({record.snmp_version})")
    if int(record.disabled) not in VALID_DISABLE_FLAGS:
        raise ValidationError(f"{record.description}: Invalid enable flag: {record.disabled}")


# =============================================================================
# SYNC ENGINE
# =============================================================================

class SyncEngine:
    """
    Reconcile Cacti hosts, tree and graphs with a set of device records.

    Attributes:
        client: CactiClient used for every read and write
        tree_name: Graph tree owned by the sync
        annotation_key: Key of the stable id in host notes
        no_graphs: Skip graph reconciliation entirely
        report: Counters of the current run
    """

    def __init__(self, client, config, no_graphs: bool = False):
        self.client = client
        self.tree_name = config.cacti.tree_name
        self.annotation_key = config.annotation_key
        self.graph_specs = config.graphs
        self.no_graphs = no_graphs
        self.report = SyncReport()
        self.graphs = GraphManager(client, self.graph_specs, self.report)
        self.state: Optional[DestinationState] = None
        self._synced_hosts: Dict[int, str] = {}
        self._claimed_leaves: Dict[int, TreeItem] = {}

    # =========================================================================
    # RUN
    # =========================================================================

    def run(self, groups: Mapping[str, Mapping[str, DeviceRecord]]) -> SyncReport:
        """
        Reconcile Cacti with the given group → description → record mapping.

        Raises:
            ValidationError: On the first invalid record. Changes made
                             before it are kept.
            CactiClientError: If Cacti rejects a change.
        """
        self.report = SyncReport()
        self._synced_hosts = {}
        self._claimed_leaves = {}
        self.graphs = GraphManager(self.client, self.graph_specs, self.report)

        tree_id = self.ensure_tree()
        self.state = read_destination_state(self.client, tree_id, self.annotation_key)

        for group, hosts in groups.items():
            header_id = self._resolve_header(group)
            for record in hosts.values():
                self._sync_record(record, header_id)

        self._delete_stale_nodes()
        return self.report

    def ensure_tree(self) -> int:
        """Return the sync tree id, creating the tree when missing."""
        tree_id = self.client.get_tree_id(self.tree_name)
        if tree_id:
            logger.debug(f"{self.tree_name} tree already exists - id: ({tree_id})")
            return tree_id
        tree_id = self.client.create_tree(self.tree_name)
        logger.info(f"Created {self.tree_name} Tree - id: {tree_id}")
        return tree_id

    # =========================================================================
    # PER-RECORD STEPS
    # =========================================================================

    def _resolve_header(self, group: str) -> int:
        header = self.state.headers_by_group.pop(group, None)
        if header:
            logger.debug(f"{group}: Header already exists - id: ({header.id})")
            return header.id

        header_id = self.client.save_tree_item(0, self.state.tree_id, 0, title=group)
        logger.info(f"{group}: Added Header id: ({header_id})")
        self.report.headers_created += 1
        return header_id

    def _sync_record(self, record: DeviceRecord, header_id: int):
        description = record.description
        match = resolve_host(record, self.state)

        if match.kind == MatchKind.CONFLICT:
            message = (
                f"{description}: This IP already exists in the database ({record.address}) "
                f"device-id: ({match.host_id})"
            )
            logger.error(message)
            self.report.conflicts += 1
            self.report.error_details.append(message)
            return

        validate_record(record, self.state.host_templates)

        if match.kind == MatchKind.MATCHED:
            host_id = match.host_id
            logger.debug(f"{description}: {match.reason}, id: ({host_id})")
        else:
            if record.disabled:
                logger.warning(f"{description}: Not adding disabled device")
                self.report.skipped_disabled += 1
                return
            host_id = 0

        host_id = self._save_host(host_id, record)
        self._resolve_leaf(host_id, header_id, description)

        if self.no_graphs or record.disabled:
            return
        self.graphs.reindex(host_id, description)
        self.graphs.ensure_graphs(host_id, record.template_id, description)

    def _save_host(self, host_id: int, record: DeviceRecord) -> int:
        """Create or update the host; a host that already matches is not written."""
        existing = self.state.hosts.get(host_id)
        notes = annotate(existing.notes if existing else "", self.annotation_key, record.external_id)
        template_name = self.state.host_templates[record.template_id]

        if existing is not None and existing.matches(record, notes):
            logger.debug(f"{record.description}: device unchanged, id: ({host_id})")
            self.report.hosts_unchanged += 1
            saved_id = host_id
        else:
            if host_id:
                logger.info(
                    f"{record.description}: Updating device id {host_id} template \"{template_name}\" "
                    f"using SNMP v{record.snmp_version} with community \"{record.community}\""
                    + (" (disabled)" if record.disabled else "")
                )
            else:
                logger.info(
                    f"{record.description}: Adding device template \"{template_name}\" "
                    f"using SNMP v{record.snmp_version} with community \"{record.community}\""
                )
            try:
                saved_id = self.client.save_host(host_id, record, notes)
            except CactiClientError as e:
                raise CactiClientError(f"{record.description}: Failed device save: {e}") from e
            logger.debug(f"{record.description}: device saved: {saved_id}")

            if host_id:
                self.report.hosts_updated += 1
            else:
                self.report.hosts_created += 1

        previous = self._synced_hosts.get(saved_id)
        if previous is not None and previous != record.external_id:
            logger.warning(
                f"{record.description}: host {saved_id} was already synced from "
                f"{self.annotation_key} {previous} in this run, overwriting"
            )
            self.report.duplicates += 1
        self._synced_hosts[saved_id] = record.external_id

        # Re-index under the saved values, dropping the host's old keys
        self.state.add_host(
            DestinationHost(
                id=saved_id,
                description=record.description,
                hostname=record.address,
                notes=notes,
                template_id=record.template_id,
                disabled=record.disabled,
                snmp_version=record.snmp_version,
                community=record.community,
            ),
            self.annotation_key,
        )
        return saved_id

    def _resolve_leaf(self, host_id: int, header_id: int, description: str):
        # A host synced twice in one run reuses the node claimed the first time
        leaf = self.state.leaves_by_host.pop(host_id, None) or self._claimed_leaves.get(host_id)
        if leaf and leaf.parent == header_id:
            logger.debug(f"{description}: host node already exists - id: ({leaf.id})")
            node_id = leaf.id
        elif leaf:
            logger.info(f"{description}: Moving host node {leaf.id} under header {header_id}")
            self.client.save_tree_item(leaf.id, self.state.tree_id, header_id, host_id=host_id)
            self.report.leaves_moved += 1
            node_id = leaf.id
        else:
            node_id = self.client.save_tree_item(0, self.state.tree_id, header_id, host_id=host_id)
            logger.info(f"{description}: Added host node: {node_id}")
            self.report.leaves_created += 1

        self._claimed_leaves[host_id] = TreeItem(id=node_id, parent=header_id, host_id=host_id)

    # =========================================================================
    # CLEANUP
    # =========================================================================

    def _delete_stale_nodes(self):
        """Delete leaves and headers no record of this run claimed."""
        for host_id, leaf in list(self.state.leaves_by_host.items()):
            logger.info(f"Deleting old tree node: {leaf.id} (host {host_id})")
            self.client.delete_tree_item(leaf.id)
            self.report.leaves_deleted += 1
        self.state.leaves_by_host.clear()

        for group, header in list(self.state.headers_by_group.items()):
            logger.info(f"Deleting old tree header: {header.id} ({group})")
            self.client.delete_tree_item(header.id)
            self.report.headers_deleted += 1
        self.state.headers_by_group.clear()
