"""
Configuration Management Module for netdot2cacti.

This module handles all configuration settings for the sync job, including:
- Loading database credentials from environment variables or .env files
- Providing dataclass-based configuration objects for type safety
- Loading template-assignment rules and graph specifications from JSON
- Device defaults applied to every Cacti host the job saves

The configuration uses a hierarchical structure:
- AppConfig (main config)
  ├── NetdotDbConfig (source database)
  ├── CactiConfig (destination database and CLI scripts)
  ├── DeviceDefaults (SNMP / availability settings)
  ├── TemplateRules (host template assignment)
  └── GraphSpec list (graphs per host template)

Usage:
    from netdot2cacti.config import load_config
    config = load_config()  # Loads from netdot2cacti.env by default
    print(config.cacti.tree_name)
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError
from .field_mapper import GROUP_SOURCES, TemplateRules
from .models import ANY_TEMPLATE, GraphSpec


DEFAULT_ENV_FILE = "netdot2cacti.env"


# =============================================================================
# DATABASE CONFIGURATION
# =============================================================================

@dataclass
class NetdotDbConfig:
    """
    Connection settings for the Netdot MySQL database.

    Attributes:
        user: Database user with read access to Netdot
        password: Database password
        host: Database server
        port: Database port
        database: Netdot schema name
    """
    user: str
    password: str
    host: str = "localhost"
    port: int = 3306
    database: str = "netdot"


@dataclass
class CactiConfig:
    """
    Settings for the Cacti installation being populated.

    Cacti tables are read and written over MySQL; data queries, graph
    creation and poller cache rebuilds go through the PHP scripts in
    <cacti_path>/cli.

    Attributes:
        user: Database user with write access to Cacti
        password: Database password
        host: Database server
        port: Database port
        database: Cacti schema name
        cacti_path: Cacti installation directory
        php_binary: PHP interpreter used to run the CLI scripts
        tree_name: Graph tree the job owns
    """
    user: str
    password: str
    host: str = "localhost"
    port: int = 3306
    database: str = "cacti"
    cacti_path: Path = field(default_factory=lambda: Path("/var/www/cacti"))
    php_binary: str = "php"
    tree_name: str = "Netdot"

    @property
    def cli_dir(self) -> Path:
        return self.cacti_path / "cli"


@dataclass
class DeviceDefaults:
    """
    Host settings Netdot has no opinion about.

    These match the defaults of Cacti's own add_device.php script.
    """
    snmp_port: int = 161
    snmp_timeout: int = 500
    snmp_username: str = ""
    snmp_password: str = ""
    snmp_auth_protocol: str = "MD5"
    snmp_priv_passphrase: str = ""
    snmp_priv_protocol: str = "DES"
    snmp_context: str = ""
    availability_method: int = 2
    ping_method: int = 3
    ping_port: int = 23
    ping_timeout: int = 500
    ping_retries: int = 2
    max_oids: int = 10


# =============================================================================
# DEFAULT GRAPH SPECIFICATIONS
# =============================================================================

# SNMP - Interface Statistics, for every host template
# query graph id → graph template id
DEFAULT_GRAPHS = [
    GraphSpec(
        name="Interfaces",
        host_template=ANY_TEMPLATE,
        kind="ds",
        snmp_query_id=1,
        query_type_ids={
            2: 22,   # In/Out Errors/Discarded Packets
            3: 24,   # In/Out Non-Unicast Packets
            4: 23,   # In/Out Unicast Packets
            13: 2,   # In/Out Bits
        },
    ),
]


# =============================================================================
# MAIN APPLICATION CONFIGURATION
# =============================================================================

@dataclass
class AppConfig:
    """
    Main application configuration container.

    Attributes:
        netdot: Netdot database settings (None for the flat-file variant)
        cacti: Cacti settings
        device_defaults: Host settings applied on every save
        template_rules: Host template assignment rules
        graphs: Graph specifications
        strip_domain: Domain removed from Netdot host names
        group_source: "used_by" (owning entity) or "site"
        annotation_key: Key of the stable id stored in Cacti host notes
        output_dir: Directory for run result files
    """
    cacti: CactiConfig
    netdot: Optional[NetdotDbConfig] = None
    device_defaults: DeviceDefaults = field(default_factory=DeviceDefaults)
    template_rules: TemplateRules = field(default_factory=TemplateRules)
    graphs: List[GraphSpec] = field(default_factory=lambda: list(DEFAULT_GRAPHS))
    strip_domain: Optional[str] = None
    group_source: str = "used_by"
    annotation_key: str = "stableId"
    output_dir: Path = field(default_factory=lambda: Path("./logs"))


# =============================================================================
# RULES FILE
# =============================================================================

def parse_graph_specs(items: List[Dict[str, Any]]) -> List[GraphSpec]:
    """
    Build GraphSpec objects from the "graphs" section of the rules file.

    Raises:
        ConfigurationError: If a spec is missing required keys.
    """
    specs = []
    for item in items:
        name = item.get("name", "unnamed")
        kind = item.get("kind", "ds")
        host_template = item.get("host_template", ANY_TEMPLATE)
        if host_template != ANY_TEMPLATE:
            host_template = _int(host_template, f"graph '{name}' host_template")

        if kind == "ds":
            if item.get("snmp_query_id") is None or not item.get("query_type_ids"):
                raise ConfigurationError(
                    f"Graph '{name}': ds graphs need snmp_query_id and query_type_ids"
                )
            # JSON object keys are strings
            query_type_ids = {
                _int(k, f"graph '{name}' query type"): _int(v, f"graph '{name}' template")
                for k, v in item["query_type_ids"].items()
            }
            specs.append(GraphSpec(
                name=name,
                host_template=host_template,
                kind="ds",
                snmp_query_id=_int(item["snmp_query_id"], f"graph '{name}' snmp_query_id"),
                query_type_ids=query_type_ids,
                snmp_field=item.get("snmp_field"),
                snmp_value=item.get("snmp_value"),
            ))
        elif kind == "cg":
            if item.get("graph_template_id") is None:
                raise ConfigurationError(f"Graph '{name}': cg graphs need graph_template_id")
            specs.append(GraphSpec(
                name=name,
                host_template=host_template,
                kind="cg",
                graph_template_id=_int(item["graph_template_id"], f"graph '{name}' graph_template_id"),
            ))
        else:
            raise ConfigurationError(f"Graph '{name}': unknown kind ({kind})")
    return specs


def load_rules(path: Path, default_template_id: int = 1):
    """
    Load template rules and graph specs from a JSON rules file.

    Returns:
        Tuple of (TemplateRules, list of GraphSpec). Graph specs fall back
        to DEFAULT_GRAPHS when the file has no "graphs" key.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read rules file {path}: {e}")

    rules = TemplateRules.from_dict(data.get("template_rules", {}), default_template_id)
    if "graphs" in data:
        graphs = parse_graph_specs(data["graphs"])
    else:
        graphs = list(DEFAULT_GRAPHS)
    return rules, graphs


def _int(value: Any, what: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid {what}: {value!r}")


# =============================================================================
# CONFIGURATION LOADING FUNCTIONS
# =============================================================================

def load_config(env_file: Optional[str] = None, require_netdot: bool = True) -> AppConfig:
    """
    Load complete application configuration from environment variables.

    Reads credentials from a .env file (defaults to 'netdot2cacti.env'),
    validates that all required values are present, and returns a fully
    configured AppConfig.

    Args:
        env_file: Optional path to .env file.
        require_netdot: False for the flat-file variant, which never
                        connects to Netdot.

    Returns:
        AppConfig: Fully configured application configuration object

    Raises:
        ConfigurationError: If required variables are missing or invalid.
    """
    load_dotenv(env_file or DEFAULT_ENV_FILE)

    # =========================================================================
    # CACTI SETTINGS
    # =========================================================================
    cacti_user = os.getenv("CACTI_DB_USER")
    cacti_pass = os.getenv("CACTI_DB_PASS")
    if not cacti_user or cacti_pass is None:
        raise ConfigurationError(
            "Missing Cacti credentials. Set CACTI_DB_USER and CACTI_DB_PASS in environment."
        )

    cacti = CactiConfig(
        user=cacti_user,
        password=cacti_pass,
        host=os.getenv("CACTI_DB_HOST", "localhost"),
        port=_int(os.getenv("CACTI_DB_PORT", "3306"), "CACTI_DB_PORT"),
        database=os.getenv("CACTI_DB_NAME", "cacti"),
        cacti_path=Path(os.getenv("CACTI_PATH", "/var/www/cacti")),
        php_binary=os.getenv("PHP_BINARY", "php"),
        tree_name=os.getenv("CACTI_TREE_NAME", "Netdot"),
    )

    # =========================================================================
    # NETDOT SETTINGS
    # =========================================================================
    netdot = None
    if require_netdot:
        netdot_user = os.getenv("NETDOT_DB_USER")
        netdot_pass = os.getenv("NETDOT_DB_PASS")
        if not netdot_user or netdot_pass is None:
            raise ConfigurationError(
                "Missing Netdot credentials. Set NETDOT_DB_USER and NETDOT_DB_PASS in environment."
            )
        netdot = NetdotDbConfig(
            user=netdot_user,
            password=netdot_pass,
            host=os.getenv("NETDOT_DB_HOST", "localhost"),
            port=_int(os.getenv("NETDOT_DB_PORT", "3306"), "NETDOT_DB_PORT"),
            database=os.getenv("NETDOT_DB_NAME", "netdot"),
        )

    # =========================================================================
    # SYNC BEHAVIOUR
    # =========================================================================
    group_source = os.getenv("GROUP_SOURCE", "used_by")
    if group_source not in GROUP_SOURCES:
        raise ConfigurationError(
            f"Invalid GROUP_SOURCE ({group_source}), expected one of {', '.join(GROUP_SOURCES)}"
        )

    default_template_id = _int(os.getenv("DEFAULT_TEMPLATE_ID", "1"), "DEFAULT_TEMPLATE_ID")

    rules_file = os.getenv("RULES_FILE")
    if rules_file:
        template_rules, graphs = load_rules(Path(rules_file), default_template_id)
    else:
        template_rules = TemplateRules(default_template_id=default_template_id)
        graphs = list(DEFAULT_GRAPHS)

    return AppConfig(
        cacti=cacti,
        netdot=netdot,
        device_defaults=DeviceDefaults(
            snmp_port=_int(os.getenv("SNMP_PORT", "161"), "SNMP_PORT"),
            snmp_timeout=_int(os.getenv("SNMP_TIMEOUT", "500"), "SNMP_TIMEOUT"),
            snmp_username=os.getenv("SNMP_USERNAME", ""),
            snmp_password=os.getenv("SNMP_PASSWORD", ""),
            snmp_auth_protocol=os.getenv("SNMP_AUTH_PROTOCOL", "MD5"),
            snmp_priv_passphrase=os.getenv("SNMP_PRIV_PASSPHRASE", ""),
            snmp_priv_protocol=os.getenv("SNMP_PRIV_PROTOCOL", "DES"),
            snmp_context=os.getenv("SNMP_CONTEXT", ""),
        ),
        template_rules=template_rules,
        graphs=graphs,
        strip_domain=os.getenv("STRIP_DOMAIN") or None,
        group_source=group_source,
        annotation_key=os.getenv("ANNOTATION_KEY", "stableId"),
        output_dir=Path(os.getenv("OUTPUT_DIR", "./logs")),
    )
