"""
================================================================================
Cacti Client
================================================================================

This module provides the operations the sync job needs from a Cacti
installation. It handles:

1. Reading hosts, host templates, the graph tree, data queries and graphs
2. Saving hosts (with their host template's data queries and graph
   templates) and tree items (create when id is 0, update otherwise)
3. Running data queries, creating graphs and rebuilding the poller cache

Cacti Access Overview:
----------------------
- Tables (host, host_graph, graph_tree, graph_tree_items, host_snmp_query,
  host_snmp_cache, graph_local, host_template and its host_template_*
  link tables) are read and written over MySQL. The tree layout follows
  Cacti 1.x, where every tree item stores its parent item id.
- Re-indexing, graph creation and poller cache rebuilds are Cacti
  internals; they are delegated to the PHP scripts Cacti ships in cli/:

    poller_reindex_hosts.php --id=<host> --qid=<query>
    add_graphs.php --host-id=<host> --graph-type=ds|cg --graph-template-id=<t> ...
    rebuild_poller_cache.php --host-id=<host>

Usage Example:
--------------
    from netdot2cacti.cacti_client import CactiClient

    client = CactiClient.from_config(config)
    hosts = client.get_hosts()
    host_id = client.save_host(0, record, "stableId:42")
    client.close()
"""

import re
import subprocess
from typing import Any, Callable, Dict, List, Optional

from .db import Database
from .errors import CactiClientError
from .logger import get_logger
from .models import DestinationHost, DeviceRecord, TreeItem

logger = get_logger("netdot2cacti.cacti_client")


# graph_tree.sort_type
SORT_MANUAL = 1
SORT_ALPHA = 2

# graph_tree_items.host_grouping_type: 1 = graph template, 2 = data query index
HOST_GROUPING_DATA_QUERY_INDEX = 2

# host_snmp_query.reindex_method: 2 = uptime goes backwards
REINDEX_UPTIME = 2

# add_graphs.php prints either form depending on the Cacti release
GRAPH_ADDED_RE = re.compile(r"Graph\[(\d+)\]|graph-id: \((\d+)\)")


class CactiClient:
    """
    Client for the Cacti database and CLI scripts.

    Attributes:
        db: Database connection to the Cacti schema
        config: CactiConfig with paths and tree name
        defaults: DeviceDefaults applied on every host save
        runner: Callable used to run CLI scripts (subprocess.run)
    """

    def __init__(self, db: Database, config, defaults, runner: Callable = subprocess.run):
        self.db = db
        self.config = config
        self.defaults = defaults
        self.runner = runner

    @classmethod
    def from_config(cls, config) -> "CactiClient":
        cacti = config.cacti
        db = Database(
            host=cacti.host,
            port=cacti.port,
            user=cacti.user,
            password=cacti.password,
            database=cacti.database,
            error_class=CactiClientError,
        )
        return cls(db, cacti, config.device_defaults)

    def close(self):
        self.db.close()

    # =========================================================================
    # HOSTS
    # =========================================================================

    def get_host_templates(self) -> Dict[int, str]:
        rows = self.db.fetch_all("SELECT id, name FROM host_template")
        return {int(row["id"]): row["name"] for row in rows}

    def get_hosts(self) -> List[DestinationHost]:
        rows = self.db.fetch_all(
            "SELECT id, description, hostname, notes, host_template_id, disabled, "
            "snmp_version, snmp_community FROM host"
        )
        return [
            DestinationHost(
                id=int(row["id"]),
                description=row["description"] or "",
                hostname=row["hostname"] or "",
                notes=row["notes"] or "",
                template_id=int(row["host_template_id"] or 0),
                disabled=row["disabled"] == "on",
                snmp_version=int(row["snmp_version"] or 0),
                community=row["snmp_community"] or "",
            )
            for row in rows
        ]

    def save_host(self, host_id: int, record: DeviceRecord, notes: str) -> int:
        """
        Create (host_id 0) or update a host, then apply its host template.

        Returns:
            The id of the saved host.

        Raises:
            CactiClientError: If the save fails.
        """
        d = self.defaults
        values = {
            "host_template_id": record.template_id,
            "description": record.description,
            "hostname": record.address,
            "notes": notes,
            "snmp_community": record.community,
            "snmp_version": record.snmp_version,
            "snmp_username": d.snmp_username,
            "snmp_password": d.snmp_password,
            "snmp_auth_protocol": d.snmp_auth_protocol,
            "snmp_priv_passphrase": d.snmp_priv_passphrase,
            "snmp_priv_protocol": d.snmp_priv_protocol,
            "snmp_context": d.snmp_context,
            "snmp_port": d.snmp_port,
            "snmp_timeout": d.snmp_timeout,
            "availability_method": d.availability_method,
            "ping_method": d.ping_method,
            "ping_port": d.ping_port,
            "ping_timeout": d.ping_timeout,
            "ping_retries": d.ping_retries,
            "max_oids": d.max_oids,
            "disabled": "on" if record.disabled else "",
        }
        saved_id = self._save("host", host_id, values)
        self.apply_host_template(saved_id, record.template_id)
        return saved_id

    def apply_host_template(self, host_id: int, template_id: int):
        """
        Attach the data queries and graph templates of a host template.

        Cacti's device save does the same when a host gets a template. Rows
        the host already has are left alone, so re-applying is harmless.
        """
        self.db.execute(
            "INSERT IGNORE INTO host_snmp_query (host_id, snmp_query_id, reindex_method) "
            "SELECT %s, snmp_query_id, %s FROM host_template_snmp_query WHERE host_template_id = %s",
            (host_id, REINDEX_UPTIME, template_id),
        )
        self.db.execute(
            "INSERT IGNORE INTO host_graph (host_id, graph_template_id) "
            "SELECT %s, graph_template_id FROM host_template_graph WHERE host_template_id = %s",
            (host_id, template_id),
        )

    # =========================================================================
    # GRAPH TREE
    # =========================================================================

    def get_tree_id(self, name: str) -> Optional[int]:
        row = self.db.fetch_one("SELECT id FROM graph_tree WHERE name = %s", (name,))
        return int(row["id"]) if row else None

    def create_tree(self, name: str, sort_type: int = SORT_ALPHA) -> int:
        tree_id = self.db.execute(
            "INSERT INTO graph_tree (enabled, name, sort_type, sequence, user_id, last_modified, modified_by) "
            "VALUES ('on', %s, %s, 1, 1, NOW(), 1)",
            (name, sort_type),
        )
        if not tree_id:
            raise CactiClientError(f"Failed to create tree {name}")
        return tree_id

    def get_tree_items(self, tree_id: int) -> List[TreeItem]:
        rows = self.db.fetch_all(
            "SELECT id, parent, title, host_id FROM graph_tree_items WHERE graph_tree_id = %s",
            (tree_id,),
        )
        return [
            TreeItem(
                id=int(row["id"]),
                parent=int(row["parent"] or 0),
                title=row["title"] or "",
                host_id=int(row["host_id"] or 0),
            )
            for row in rows
        ]

    def save_tree_item(self, item_id: int, tree_id: int, parent_id: int,
                       title: str = "", host_id: int = 0) -> int:
        """
        Create (item_id 0) or update a tree item.

        parent_id 0 places the item directly under the tree root.
        """
        values = {
            "graph_tree_id": tree_id,
            "parent": parent_id,
            "title": title,
            "host_id": host_id,
            "local_graph_id": 0,
            "host_grouping_type": HOST_GROUPING_DATA_QUERY_INDEX,
            "sort_children_type": SORT_MANUAL,
        }
        return self._save("graph_tree_items", item_id, values)

    def delete_tree_item(self, item_id: int):
        self.db.execute("DELETE FROM graph_tree_items WHERE id = %s", (item_id,))

    # =========================================================================
    # DATA QUERIES
    # =========================================================================

    def get_host_data_queries(self, host_id: int) -> List[int]:
        rows = self.db.fetch_all(
            "SELECT snmp_query_id FROM host_snmp_query WHERE host_id = %s", (host_id,)
        )
        return [int(row["snmp_query_id"]) for row in rows]

    def add_host_data_query(self, host_id: int, snmp_query_id: int):
        self.db.execute(
            "REPLACE INTO host_snmp_query (host_id, snmp_query_id, reindex_method) VALUES (%s, %s, %s)",
            (host_id, snmp_query_id, REINDEX_UPTIME),
        )

    def run_data_query(self, host_id: int, snmp_query_id: int):
        """Re-index one data query of a host, refreshing host_snmp_cache."""
        self._run_script("poller_reindex_hosts.php", f"--id={host_id}", f"--qid={snmp_query_id}")

    def get_snmp_indexes(self, host_id: int, snmp_query_id: int,
                         snmp_field: Optional[str] = None,
                         snmp_value: Optional[str] = None) -> List[str]:
        """
        List the SNMP rows cached for a host's data query.

        snmp_field/snmp_value restrict the rows to those where the field
        has the given value (e.g. ifOperStatus = Up).
        """
        sql = "SELECT DISTINCT snmp_index FROM host_snmp_cache WHERE host_id = %s AND snmp_query_id = %s"
        params: List[Any] = [host_id, snmp_query_id]
        if snmp_field:
            sql += " AND field_name = %s AND field_value = %s"
            params += [snmp_field, snmp_value or ""]
        rows = self.db.fetch_all(sql, params)
        return [str(row["snmp_index"]) for row in rows]

    # =========================================================================
    # GRAPHS
    # =========================================================================

    def get_graphs(self, host_id: int, snmp_query_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        List a host's graphs as dicts with id, snmp_index, graph_template_id.
        """
        sql = "SELECT id, snmp_index, graph_template_id FROM graph_local WHERE host_id = %s"
        params: List[Any] = [host_id]
        if snmp_query_id is not None:
            sql += " AND snmp_query_id = %s"
            params.append(snmp_query_id)
        return [
            {
                "id": int(row["id"]),
                "snmp_index": str(row["snmp_index"] or ""),
                "graph_template_id": int(row["graph_template_id"]),
            }
            for row in self.db.fetch_all(sql, params)
        ]

    def create_graph(self, graph_template_id: int, host_id: int,
                     snmp_query_id: Optional[int] = None,
                     query_type_id: Optional[int] = None,
                     snmp_index: Optional[str] = None) -> int:
        """
        Create a graph from a template.

        Without snmp_query_id a host-level (cg) graph is created; otherwise
        a data query (ds) graph for the row snmp_index.

        Returns:
            The new graph id, or 0 when Cacti reports it already exists.
        """
        args = [
            f"--host-id={host_id}",
            f"--graph-template-id={graph_template_id}",
        ]
        if snmp_query_id is None:
            args.append("--graph-type=cg")
        else:
            field_name = self._index_field(host_id, snmp_query_id, snmp_index)
            args += [
                "--graph-type=ds",
                f"--snmp-query-id={snmp_query_id}",
                f"--snmp-query-type-id={query_type_id}",
                f"--snmp-field={field_name}",
                f"--snmp-value={snmp_index}",
            ]

        output = self._run_script("add_graphs.php", *args)
        match = GRAPH_ADDED_RE.search(output)
        if not match:
            logger.debug(f"add_graphs.php did not add a graph: {output.strip()}")
            return 0
        return int(match.group(1) or match.group(2))

    def push_out_host(self, host_id: int):
        """Rebuild the poller cache of a host after graphs were added."""
        self._run_script("rebuild_poller_cache.php", f"--host-id={host_id}")

    # =========================================================================
    # PRIVATE HELPER METHODS
    # =========================================================================

    def _index_field(self, host_id: int, snmp_query_id: int, snmp_index: Optional[str]) -> str:
        """
        Find the cache field whose value equals the row index (e.g. ifIndex).

        add_graphs.php selects rows by field value, not by index.
        """
        row = self.db.fetch_one(
            "SELECT field_name FROM host_snmp_cache "
            "WHERE host_id = %s AND snmp_query_id = %s AND snmp_index = %s AND field_value = %s "
            "LIMIT 1",
            (host_id, snmp_query_id, snmp_index, snmp_index),
        )
        if not row:
            raise CactiClientError(
                f"No index field for host {host_id} query {snmp_query_id} index {snmp_index}"
            )
        return row["field_name"]

    def _save(self, table: str, item_id: int, values: Dict[str, Any]) -> int:
        """Insert when item_id is 0, update otherwise. Returns the row id."""
        columns = list(values)
        params = [values[c] for c in columns]
        if item_id:
            assignments = ", ".join(f"{c} = %s" for c in columns)
            self.db.execute(f"UPDATE {table} SET {assignments} WHERE id = %s", params + [item_id])
            return item_id

        placeholders = ", ".join(["%s"] * len(columns))
        new_id = self.db.execute(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})", params
        )
        if not new_id:
            raise CactiClientError(f"Insert into {table} returned no id")
        return new_id

    def _run_script(self, script: str, *args: str) -> str:
        """
        Run a Cacti CLI script and return its output.

        Raises:
            CactiClientError: If PHP cannot be started or the script fails.
        """
        command = [self.config.php_binary, "-q", str(self.config.cli_dir / script), *args]
        logger.debug(f"Running {' '.join(command)}")
        try:
            result = self.runner(command, capture_output=True, text=True, check=False)
        except OSError as e:
            raise CactiClientError(f"Cannot run {script}: {e}") from e

        if result.returncode != 0:
            raise CactiClientError(
                f"{script} failed ({result.returncode}): {(result.stderr or result.stdout).strip()}"
            )
        return result.stdout or ""
