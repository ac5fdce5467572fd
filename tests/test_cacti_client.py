"""
Tests for cacti_client.py: host saves, tree items, graph creation and
CLI script handling.

Uses unittest.mock in place of MySQL and PHP.
"""

import subprocess
import unittest
from pathlib import Path
from unittest.mock import MagicMock

from netdot2cacti.cacti_client import CactiClient
from netdot2cacti.config import CactiConfig, DeviceDefaults
from netdot2cacti.errors import CactiClientError
from netdot2cacti.models import DeviceRecord


def completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class ClientTestCase(unittest.TestCase):

    def setUp(self):
        self.db = MagicMock()
        self.runner = MagicMock(return_value=completed())
        config = CactiConfig(user="cacti", password="secret", cacti_path=Path("/opt/cacti"))
        self.client = CactiClient(self.db, config, DeviceDefaults(), runner=self.runner)
        self.record = DeviceRecord(
            external_id="1",
            description="sw1",
            address="10.0.0.1",
            template_id=5,
            group="siteA",
            disabled=False,
            snmp_version=2,
            community="public",
        )


class TestHosts(ClientTestCase):
    """Test host reads and saves."""

    def test_get_hosts(self):
        self.db.fetch_all.return_value = [
            {"id": 3, "description": "sw1", "hostname": "10.0.0.1", "notes": "stableId:1",
             "host_template_id": 5, "disabled": "", "snmp_version": 2, "snmp_community": "public"},
            {"id": 4, "description": "sw2", "hostname": "10.0.0.2", "notes": None,
             "host_template_id": None, "disabled": "on", "snmp_version": None, "snmp_community": None},
        ]
        hosts = self.client.get_hosts()
        self.assertEqual(hosts[0].notes, "stableId:1")
        self.assertFalse(hosts[0].disabled)
        self.assertEqual(hosts[0].snmp_version, 2)
        self.assertEqual(hosts[0].community, "public")
        self.assertEqual(hosts[1].notes, "")
        self.assertEqual(hosts[1].template_id, 0)
        self.assertTrue(hosts[1].disabled)

    def test_get_host_templates(self):
        self.db.fetch_all.return_value = [{"id": "1", "name": "Generic SNMP-enabled Host"}]
        self.assertEqual(self.client.get_host_templates(), {1: "Generic SNMP-enabled Host"})

    def test_new_host_is_inserted(self):
        self.db.execute.return_value = 42

        host_id = self.client.save_host(0, self.record, "stableId:1")

        self.assertEqual(host_id, 42)
        sql, params = self.db.execute.call_args_list[0][0]
        self.assertTrue(sql.startswith("INSERT INTO host "))
        self.assertIn("10.0.0.1", params)
        self.assertIn("stableId:1", params)
        self.assertIn(161, params)
        self.assertEqual(params[-1], "")

    def test_existing_host_is_updated(self):
        host_id = self.client.save_host(7, self.record, "stableId:1")

        self.assertEqual(host_id, 7)
        sql, params = self.db.execute.call_args_list[0][0]
        self.assertTrue(sql.startswith("UPDATE host SET "))
        self.assertTrue(sql.endswith("WHERE id = %s"))
        self.assertEqual(params[-1], 7)

    def test_disabled_host_saved_as_on(self):
        self.record.disabled = True
        self.client.save_host(7, self.record, "")
        sql, params = self.db.execute.call_args_list[0][0]
        self.assertEqual(params[-2], "on")

    def test_insert_without_id_raises(self):
        self.db.execute.return_value = 0
        with self.assertRaises(CactiClientError):
            self.client.save_host(0, self.record, "")

    def test_new_host_gets_template_queries_and_graphs(self):
        self.db.execute.return_value = 42

        self.client.save_host(0, self.record, "stableId:1")

        calls = [c[0] for c in self.db.execute.call_args_list]
        self.assertEqual(len(calls), 3)
        query_sql, query_params = calls[1]
        self.assertIn("INSERT IGNORE INTO host_snmp_query", query_sql)
        self.assertIn("FROM host_template_snmp_query", query_sql)
        self.assertEqual(query_params, (42, 2, 5))
        graph_sql, graph_params = calls[2]
        self.assertIn("INSERT IGNORE INTO host_graph", graph_sql)
        self.assertIn("FROM host_template_graph", graph_sql)
        self.assertEqual(graph_params, (42, 5))

    def test_updated_host_gets_new_template_applied(self):
        self.record.template_id = 3

        self.client.save_host(7, self.record, "")

        query_params = self.db.execute.call_args_list[1][0][1]
        graph_params = self.db.execute.call_args_list[2][0][1]
        self.assertEqual(query_params, (7, 2, 3))
        self.assertEqual(graph_params, (7, 3))


class TestTree(ClientTestCase):

    def test_get_tree_id(self):
        self.db.fetch_one.return_value = {"id": 9}
        self.assertEqual(self.client.get_tree_id("Netdot"), 9)

    def test_get_tree_id_missing(self):
        self.db.fetch_one.return_value = None
        self.assertIsNone(self.client.get_tree_id("Netdot"))

    def test_get_tree_items(self):
        self.db.fetch_all.return_value = [
            {"id": 1, "parent": 0, "title": "siteA", "host_id": 0},
            {"id": 2, "parent": 1, "title": None, "host_id": 3},
        ]
        header, leaf = self.client.get_tree_items(9)
        self.assertTrue(header.is_header)
        self.assertTrue(leaf.is_leaf)
        self.assertEqual(leaf.parent, 1)

    def test_save_tree_item_insert(self):
        self.db.execute.return_value = 12
        item_id = self.client.save_tree_item(0, 9, 1, host_id=3)
        self.assertEqual(item_id, 12)
        sql, params = self.db.execute.call_args[0]
        self.assertTrue(sql.startswith("INSERT INTO graph_tree_items "))
        self.assertEqual(params[:4], [9, 1, "", 3])

    def test_create_tree(self):
        self.db.execute.return_value = 4
        self.assertEqual(self.client.create_tree("Netdot"), 4)


class TestScripts(ClientTestCase):
    """Test the PHP CLI wrappers."""

    def test_run_data_query_command(self):
        self.client.run_data_query(3, 1)
        command = self.runner.call_args[0][0]
        self.assertEqual(command, [
            "php", "-q", str(Path("/opt/cacti/cli/poller_reindex_hosts.php")), "--id=3", "--qid=1",
        ])

    def test_push_out_host_command(self):
        self.client.push_out_host(3)
        command = self.runner.call_args[0][0]
        self.assertTrue(command[2].endswith("rebuild_poller_cache.php"))
        self.assertEqual(command[3], "--host-id=3")

    def test_script_failure_raises(self):
        self.runner.return_value = completed(returncode=1, stderr="FATAL: host not found")
        with self.assertRaises(CactiClientError) as ctx:
            self.client.push_out_host(3)
        self.assertIn("host not found", str(ctx.exception))

    def test_missing_php_raises(self):
        self.runner.side_effect = FileNotFoundError("php")
        with self.assertRaises(CactiClientError):
            self.client.run_data_query(3, 1)


class TestCreateGraph(ClientTestCase):

    def test_cg_graph(self):
        self.runner.return_value = completed("Graph Added - graph-id: (55) - data-source-ids: (80)\n")

        graph_id = self.client.create_graph(18, 3)

        self.assertEqual(graph_id, 55)
        command = self.runner.call_args[0][0]
        self.assertIn("--graph-type=cg", command)
        self.assertIn("--graph-template-id=18", command)
        self.assertIn("--host-id=3", command)

    def test_ds_graph_uses_index_field(self):
        self.db.fetch_one.return_value = {"field_name": "ifIndex"}
        self.runner.return_value = completed("Graph Added - Graph[123] - DS[456]\n")

        graph_id = self.client.create_graph(22, 3, snmp_query_id=1, query_type_id=2, snmp_index="10101")

        self.assertEqual(graph_id, 123)
        command = self.runner.call_args[0][0]
        for arg in ("--graph-type=ds", "--snmp-query-id=1", "--snmp-query-type-id=2",
                    "--snmp-field=ifIndex", "--snmp-value=10101"):
            self.assertIn(arg, command)

    def test_ds_graph_without_index_field_raises(self):
        self.db.fetch_one.return_value = None
        with self.assertRaises(CactiClientError):
            self.client.create_graph(22, 3, snmp_query_id=1, query_type_id=2, snmp_index="7")
        self.runner.assert_not_called()

    def test_no_graph_in_output(self):
        self.runner.return_value = completed("NOTE: Not Adding Graph - this graph already exists\n")
        self.assertEqual(self.client.create_graph(18, 3), 0)

    def test_get_graphs(self):
        self.db.fetch_all.return_value = [
            {"id": 5, "snmp_index": 10101, "graph_template_id": 22},
            {"id": 6, "snmp_index": None, "graph_template_id": 18},
        ]
        graphs = self.client.get_graphs(3)
        self.assertEqual(graphs[0]["snmp_index"], "10101")
        self.assertEqual(graphs[1]["snmp_index"], "")

    def test_get_snmp_indexes_with_filter(self):
        self.db.fetch_all.return_value = [{"snmp_index": 1}, {"snmp_index": 2}]
        indexes = self.client.get_snmp_indexes(3, 1, "ifOperStatus", "Up")
        self.assertEqual(indexes, ["1", "2"])
        sql, params = self.db.fetch_all.call_args[0]
        self.assertIn("field_name = %s", sql)
        self.assertEqual(params, [3, 1, "ifOperStatus", "Up"])


if __name__ == "__main__":
    unittest.main()
