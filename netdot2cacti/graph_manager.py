"""
Graph reconciliation for synced hosts.

Two kinds of graphs are handled:

- "ds" graphs are built on a data query and created once per SNMP row
  (e.g. one traffic graph per interface). Existing graphs are recognised
  by the pair (snmp_index, graph_template_id), so reruns add only rows
  that appeared since the last run.
- "cg" graphs are host-level graphs (CPU, memory, ...) created once per
  graph template.
"""

from typing import List, Set, Tuple

from .logger import get_logger
from .models import GraphSpec, SyncReport

logger = get_logger("netdot2cacti.graph_manager")


class GraphManager:
    """Create the graphs a host's template calls for."""

    def __init__(self, client, specs: List[GraphSpec], report: SyncReport):
        self.client = client
        self.specs = specs
        self.report = report

    def reindex(self, host_id: int, description: str):
        """Re-run every data query already associated with the host."""
        queries = self.client.get_host_data_queries(host_id)
        logger.debug(f"{description}: There are '{len(queries)}' data queries to run")
        for snmp_query_id in queries:
            self.client.run_data_query(host_id, snmp_query_id)

    def ensure_graphs(self, host_id: int, template_id: int, description: str) -> int:
        """
        Create every missing graph for a host.

        Returns:
            Number of graphs created. The host is pushed out to the poller
            cache when this is not zero.
        """
        created = 0
        for spec in self.specs:
            if not spec.applies_to(template_id):
                continue
            logger.debug(f"{description}: Creating {spec.kind} graphs: {spec.name}")
            if spec.kind == "cg":
                created += self._ensure_cg(spec, host_id, description)
            else:
                created += self._ensure_ds(spec, host_id, description)

        if created:
            logger.info(f"{description}: Graphs created: {created}")
            self.client.push_out_host(host_id)
            self.report.graphs_created += created
        return created

    def _ensure_ds(self, spec: GraphSpec, host_id: int, description: str) -> int:
        if spec.snmp_query_id not in self.client.get_host_data_queries(host_id):
            logger.info(f"{description}: Adding data query {spec.snmp_query_id}")
            self.client.add_host_data_query(host_id, spec.snmp_query_id)
            self.client.run_data_query(host_id, spec.snmp_query_id)

        indexes = self.client.get_snmp_indexes(
            host_id, spec.snmp_query_id, spec.snmp_field, spec.snmp_value
        )
        if not indexes:
            logger.debug(f"{description}: No rows in data query {spec.snmp_query_id}")
            return 0

        existing: Set[Tuple[str, int]] = {
            (graph["snmp_index"], graph["graph_template_id"])
            for graph in self.client.get_graphs(host_id, spec.snmp_query_id)
        }

        created = 0
        for query_type_id, graph_template_id in spec.query_type_ids.items():
            for snmp_index in indexes:
                if (snmp_index, graph_template_id) in existing:
                    logger.debug(
                        f"{description}: Graph already exists: (index {snmp_index}, template {graph_template_id})"
                    )
                    continue
                graph_id = self.client.create_graph(
                    graph_template_id, host_id,
                    snmp_query_id=spec.snmp_query_id,
                    query_type_id=query_type_id,
                    snmp_index=snmp_index,
                )
                existing.add((snmp_index, graph_template_id))
                if graph_id:
                    logger.info(f"{description}: Added Graph id: {graph_id}")
                    created += 1
        return created

    def _ensure_cg(self, spec: GraphSpec, host_id: int, description: str) -> int:
        for graph in self.client.get_graphs(host_id):
            if graph["graph_template_id"] == spec.graph_template_id:
                logger.debug(f"{description}: Graph already exists: ({graph['id']})")
                return 0

        graph_id = self.client.create_graph(spec.graph_template_id, host_id)
        if graph_id:
            logger.info(f"{description}: Added Graph id: {graph_id}")
            return 1
        return 0
