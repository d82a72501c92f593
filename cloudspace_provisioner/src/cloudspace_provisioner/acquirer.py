import json
import logging
import logging.config
import pathlib
from typing import Iterable, List, Optional

import yaml

from cloudspace_provisioner.cancellation import CancellationToken
from cloudspace_provisioner.config import SpotConfig
from cloudspace_provisioner.constants import DEFAULT_DESIRED, DEFAULT_SERVER_CLASS
from cloudspace_provisioner.logging_config import LOGGER_NAME, LOGGING_CONFIG
from cloudspace_provisioner.request import (
    CreateRequest,
    OnDemandPoolSpec,
    SpotPoolSpec,
    _pick,
)
from cloudspace_provisioner.wizard import Wizard

logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger(LOGGER_NAME)

SOURCE_FILE = "file"
SOURCE_FLAGS = "flags"
SOURCE_WIZARD = "wizard"

POOL_KEY_ALIASES = {
    "name": "name",
    "serverclass": "serverclass",
    "desired": "desired",
    "bidprice": "bidprice",
    "org": "org",
    "organization": "org",
    "cloudspace": "cloudspace",
}
SPOT_POOL_KEYS = {"name", "serverclass", "desired", "bidprice", "org", "cloudspace"}
ON_DEMAND_POOL_KEYS = {"name", "serverclass", "desired", "org", "cloudspace"}


class ConflictingSource(Exception):
    """A config file was given together with other creation flags"""


class UnknownParameter(Exception):
    """A node pool descriptor contains a key we don't understand, or is malformed"""


class ConfigFileError(Exception):
    """The config file could not be read or does not describe a cloudspace"""


class AcquireOptions:
    """Everything the caller passed to the create command, and which of it was set explicitly"""

    OPTION_NAMES = [
        "config_path",
        "name",
        "organization",
        "region",
        "kubernetes_version",
        "cni",
        "preemption_webhook_url",
        "spot_nodepools",
        "ondemand_nodepools",
    ]

    def __init__(
        self,
        config_path: Optional[str] = None,
        name: Optional[str] = None,
        organization: Optional[str] = None,
        region: Optional[str] = None,
        kubernetes_version: Optional[str] = None,
        cni: Optional[str] = None,
        preemption_webhook_url: Optional[str] = None,
        spot_nodepools: Optional[List[str]] = None,
        ondemand_nodepools: Optional[List[str]] = None,
        explicitly_set: Optional[Iterable[str]] = None,
    ):
        self.config_path = config_path
        self.name = name
        self.organization = organization
        self.region = region
        self.kubernetes_version = kubernetes_version
        self.cni = cni
        self.preemption_webhook_url = preemption_webhook_url
        self.spot_nodepools = list(spot_nodepools or [])
        self.ondemand_nodepools = list(ondemand_nodepools or [])
        if explicitly_set is None:
            explicitly_set = [
                option for option in self.OPTION_NAMES if getattr(self, option) not in (None, [])
            ]
        self.explicitly_set = set(explicitly_set)

    def __repr__(self):
        return f"AcquireOptions explicitly set: {sorted(self.explicitly_set)}"

    @staticmethod
    def from_args(args):
        """Build options from an argparse namespace whose create options all default to None"""
        values = {
            option: getattr(args, option, None) for option in AcquireOptions.OPTION_NAMES
        }
        return AcquireOptions(**values)


def select_source(options: AcquireOptions) -> str:
    """
    * a config file wins outright, and may not be mixed with any other creation flag
    * any other flag set at all means flags mode
    * nothing set at all means the interactive wizard
    """
    if "config_path" in options.explicitly_set:
        others = options.explicitly_set - {"config_path"}
        if others:
            raise ConflictingSource(
                f"--config cannot be combined with {', '.join(sorted(others))}"
            )
        return SOURCE_FILE
    if options.explicitly_set:
        return SOURCE_FLAGS
    return SOURCE_WIZARD


def _inherit_pool_references(request: CreateRequest) -> None:
    for pool in [*request.spot_pools, *request.on_demand_pools]:
        if not pool.organization:
            pool.organization = request.organization
        if not pool.cloudspace:
            pool.cloudspace = request.name


def _load_document(config_path: str) -> dict:
    ext = pathlib.Path(config_path).suffix.lower()
    if ext not in (".yaml", ".yml", ".json"):
        raise ConfigFileError(
            f"unsupported config file format: {ext or '<none>'} (must be .yaml, .yml, or .json)"
        )
    try:
        with open(config_path, "r") as f:
            content = f.read()
    except OSError as e:
        raise ConfigFileError(f"failed to read config file: {e}") from e

    try:
        if ext == ".json":
            document = json.loads(content)
        else:
            document = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigFileError(f"failed to parse config file {config_path}: {e}") from e

    if not isinstance(document, dict):
        raise ConfigFileError(f"config file {config_path} must contain a mapping")
    return document


def _optional_str(value) -> Optional[str]:
    return None if value is None else str(value)


def _pool_list(document: dict, key: str) -> List[dict]:
    pools = _pick(document, key, default=[])
    if not isinstance(pools, list) or not all(isinstance(p, dict) for p in pools):
        raise ConfigFileError(f"'{key}' must be a list of node pool mappings")
    return pools


def load_from_file(config_path: str) -> CreateRequest:
    """Build a CreateRequest from a YAML or JSON document with cloudspace / spotnodepools / ondemandnodepools"""
    logger.debug(f"Loading create request from {config_path}")
    document = _load_document(config_path)

    cloudspace = _pick(document, "cloudspace", default={})
    if not isinstance(cloudspace, dict):
        raise ConfigFileError("'cloudspace' must be a mapping")

    try:
        spot_pools = [SpotPoolSpec.from_dict(p) for p in _pool_list(document, "spotnodepools")]
        on_demand_pools = [
            OnDemandPoolSpec.from_dict(p) for p in _pool_list(document, "ondemandnodepools")
        ]
    except ValueError as e:
        raise ConfigFileError(f"invalid node pool in {config_path}: {e}") from e

    request = CreateRequest(
        name=str(_pick(cloudspace, "name", default="")),
        organization=str(_pick(cloudspace, "org", "organization", default="")),
        region=str(_pick(cloudspace, "region", default="")),
        kubernetes_version=_optional_str(_pick(cloudspace, "kubernetesVersion")),
        cni=_optional_str(_pick(cloudspace, "cni")),
        preemption_webhook_url=str(_pick(cloudspace, "preemptionWebhookURL", default="")),
        spot_pools=spot_pools,
        on_demand_pools=on_demand_pools,
    )
    _inherit_pool_references(request)
    logger.debug(f"Loaded {request}")
    return request


def _parse_record(raw: str) -> dict:
    try:
        record = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise UnknownParameter(f"invalid node pool record {raw!r}: {e}") from e
    if not isinstance(record, dict):
        raise UnknownParameter(f"invalid node pool record {raw!r}, expected a mapping")
    return {str(k): "" if v is None else str(v) for k, v in record.items()}


def _parse_pairs(raw: str) -> dict:
    result = {}
    for pair in raw.split(","):
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise UnknownParameter(f"invalid parameter format: {pair!r}, expected key=value")
        result[key.strip()] = value.strip()
    return result


def parse_nodepool_params(raw: str, allowed_keys=SPOT_POOL_KEYS) -> dict:
    """
    Parse a node pool descriptor given either as "key1=value1,key2=value2"
    or as an inline record such as '{"serverclass": "gp.vs1.medium-ord", "desired": 2}'.

    Keys are returned in their canonical lower-case form.
    """
    raw = (raw or "").strip()
    if not raw:
        return {}
    parsed = _parse_record(raw) if raw.startswith("{") else _parse_pairs(raw)

    params = {}
    for key, value in parsed.items():
        canonical = POOL_KEY_ALIASES.get(key.lower())
        if canonical is None or canonical not in allowed_keys:
            raise UnknownParameter(f"unknown node pool parameter {key!r} in {raw!r}")
        params[canonical] = value
    return params


def _desired(params: dict) -> int:
    try:
        desired = int(params.get("desired", ""))
    except ValueError:
        desired = 0
    return desired if desired > 0 else DEFAULT_DESIRED


def load_from_flags(options: AcquireOptions) -> CreateRequest:
    logger.debug(f"Loading create request from flags: {options}")
    request = CreateRequest(
        name=options.name or "",
        organization=options.organization or "",
        region=options.region or "",
        kubernetes_version=options.kubernetes_version,
        cni=options.cni,
        preemption_webhook_url=options.preemption_webhook_url or "",
    )

    for raw in options.spot_nodepools:
        params = parse_nodepool_params(raw, SPOT_POOL_KEYS)
        request.spot_pools.append(
            SpotPoolSpec(
                name=params.get("name"),
                server_class=params.get("serverclass") or DEFAULT_SERVER_CLASS,
                desired=_desired(params),
                bid_price=params.get("bidprice", ""),
                organization=params.get("org"),
                cloudspace=params.get("cloudspace"),
            )
        )

    for raw in options.ondemand_nodepools:
        params = parse_nodepool_params(raw, ON_DEMAND_POOL_KEYS)
        request.on_demand_pools.append(
            OnDemandPoolSpec(
                name=params.get("name"),
                server_class=params.get("serverclass") or DEFAULT_SERVER_CLASS,
                desired=_desired(params),
                organization=params.get("org"),
                cloudspace=params.get("cloudspace"),
            )
        )

    _inherit_pool_references(request)
    logger.debug(f"Loaded {request}")
    return request


def apply_config_defaults(request: CreateRequest, cli_config: Optional[SpotConfig]) -> None:
    if cli_config is None:
        return
    if not request.organization and cli_config.org:
        request.organization = cli_config.org
    if not request.region and cli_config.region:
        request.region = cli_config.region
    _inherit_pool_references(request)


def acquire(
    options: AcquireOptions,
    client=None,
    cli_config: Optional[SpotConfig] = None,
    prompter=None,
    cancellation: Optional[CancellationToken] = None,
) -> CreateRequest:
    """Produce a single CreateRequest from whichever source the options select"""
    source = select_source(options)
    logger.debug(f"Acquiring create request from {source}")
    if source == SOURCE_FILE:
        request = load_from_file(options.config_path or "")
    elif source == SOURCE_FLAGS:
        request = load_from_flags(options)
    else:
        if client is None:
            raise ValueError("the interactive wizard needs a Spot API client")
        wizard = Wizard(
            client,
            prompter=prompter,
            cancellation=cancellation,
            default_region=cli_config.region if cli_config else "",
        )
        request = wizard.run()

    apply_config_defaults(request, cli_config)
    return request
