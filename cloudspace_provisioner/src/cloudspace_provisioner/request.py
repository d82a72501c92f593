import copy
from json import JSONEncoder
from typing import List, Optional

from cloudspace_provisioner.constants import DEFAULT_CNI, DEFAULT_KUBERNETES_VERSION
from cloudspace_provisioner.utils import generate_pool_name


class RequestJSONEncoder(JSONEncoder):
    def default(self, o):
        if hasattr(o, "as_dict"):
            return o.as_dict()
        return o.__dict__


def _pick(data: dict, *keys, default=None):
    """Return the first key present in data, matching keys case-insensitively"""
    lowered = {str(k).lower(): v for k, v in data.items()}
    for key in keys:
        if key.lower() in lowered and lowered[key.lower()] is not None:
            return lowered[key.lower()]
    return default


def _to_int(value, field: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{field} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be an integer, got {value!r}")


class SpotPoolSpec:
    name: str
    server_class: str
    desired: int
    bid_price: str
    organization: Optional[str]
    cloudspace: Optional[str]

    def __init__(
        self,
        server_class: str,
        desired: int,
        bid_price: str,
        name: Optional[str] = None,
        organization: Optional[str] = None,
        cloudspace: Optional[str] = None,
    ):
        self.name = name or generate_pool_name()
        self.server_class = server_class
        self.desired = desired
        self.bid_price = bid_price
        self.organization = organization
        self.cloudspace = cloudspace

    def __str__(self):
        return self.__repr__()

    def __repr__(self):
        return (
            f"SpotPool {self.name}; "
            f"serverClass: {self.server_class}, desired: {self.desired}, "
            f"bidPrice: {self.bid_price}"
        )

    @staticmethod
    def from_dict(pool_data: dict):
        return SpotPoolSpec(
            name=_pick(pool_data, "name"),
            server_class=_pick(pool_data, "serverClass", default=""),
            desired=_to_int(_pick(pool_data, "desired", default=0), "desired"),
            bid_price=str(_pick(pool_data, "bidPrice", default="")),
            organization=_pick(pool_data, "org", "organization"),
            cloudspace=_pick(pool_data, "cloudspace"),
        )

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "org": self.organization,
            "cloudspace": self.cloudspace,
            "serverClass": self.server_class,
            "desired": self.desired,
            "bidPrice": self.bid_price,
        }

    def __eq__(self, other) -> bool:
        if not isinstance(other, SpotPoolSpec):
            return NotImplemented
        compare_props = ["name", "server_class", "desired", "bid_price", "organization", "cloudspace"]
        return all(getattr(self, prop) == getattr(other, prop) for prop in compare_props)


class OnDemandPoolSpec:
    name: str
    server_class: str
    desired: int
    organization: Optional[str]
    cloudspace: Optional[str]
    price_per_hour: Optional[str]

    def __init__(
        self,
        server_class: str,
        desired: int,
        name: Optional[str] = None,
        organization: Optional[str] = None,
        cloudspace: Optional[str] = None,
        price_per_hour: Optional[str] = None,
    ):
        self.name = name or generate_pool_name()
        self.server_class = server_class
        self.desired = desired
        self.organization = organization
        self.cloudspace = cloudspace
        self.price_per_hour = price_per_hour

    def __str__(self):
        return self.__repr__()

    def __repr__(self):
        return (
            f"OnDemandPool {self.name}; "
            f"serverClass: {self.server_class}, desired: {self.desired}"
        )

    @staticmethod
    def from_dict(pool_data: dict):
        return OnDemandPoolSpec(
            name=_pick(pool_data, "name"),
            server_class=_pick(pool_data, "serverClass", default=""),
            desired=_to_int(_pick(pool_data, "desired", default=0), "desired"),
            organization=_pick(pool_data, "org", "organization"),
            cloudspace=_pick(pool_data, "cloudspace"),
        )

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "org": self.organization,
            "cloudspace": self.cloudspace,
            "serverClass": self.server_class,
            "desired": self.desired,
        }

    def __eq__(self, other) -> bool:
        if not isinstance(other, OnDemandPoolSpec):
            return NotImplemented
        compare_props = ["name", "server_class", "desired", "organization", "cloudspace"]
        return all(getattr(self, prop) == getattr(other, prop) for prop in compare_props)


class CreateRequest:
    name: str
    organization: str
    region: str
    kubernetes_version: str
    cni: str
    preemption_webhook_url: str
    spot_pools: List[SpotPoolSpec]
    on_demand_pools: List[OnDemandPoolSpec]

    def __init__(
        self,
        name: str = "",
        organization: str = "",
        region: str = "",
        kubernetes_version: Optional[str] = None,
        cni: Optional[str] = None,
        preemption_webhook_url: str = "",
        spot_pools: Optional[List[SpotPoolSpec]] = None,
        on_demand_pools: Optional[List[OnDemandPoolSpec]] = None,
    ):
        self.name = name
        self.organization = organization
        self.region = region
        self.kubernetes_version = kubernetes_version or DEFAULT_KUBERNETES_VERSION
        self.cni = cni or DEFAULT_CNI
        self.preemption_webhook_url = preemption_webhook_url
        self.spot_pools = list(spot_pools or [])
        self.on_demand_pools = list(on_demand_pools or [])

    @property
    def pool_count(self) -> int:
        return len(self.spot_pools) + len(self.on_demand_pools)

    def __str__(self):
        return self.__repr__()

    def __repr__(self):
        return (
            f"CreateRequest {self.name}; "
            f"org: {self.organization}, region: {self.region}, "
            f"kubernetesVersion: {self.kubernetes_version}, cni: {self.cni}, "
            f"spotPools: {len(self.spot_pools)}, onDemandPools: {len(self.on_demand_pools)}"
        )

    def cloudspace_spec(self) -> dict:
        """The cloudspace resource body, without any pools"""
        return {
            "name": self.name,
            "org": self.organization,
            "region": self.region,
            "kubernetesVersion": self.kubernetes_version,
            "cni": self.cni,
            "preemptionWebhookURL": self.preemption_webhook_url,
        }

    def as_dict(self) -> dict:
        d = copy.deepcopy(self.cloudspace_spec())
        d["spotNodePools"] = [pool.as_dict() for pool in self.spot_pools]
        d["onDemandNodePools"] = [pool.as_dict() for pool in self.on_demand_pools]
        return d

    def __eq__(self, other) -> bool:
        if not isinstance(other, CreateRequest):
            return NotImplemented
        compare_props = [
            "name",
            "organization",
            "region",
            "kubernetes_version",
            "cni",
            "preemption_webhook_url",
            "spot_pools",
            "on_demand_pools",
        ]
        for prop in compare_props:
            if getattr(self, prop) != getattr(other, prop):
                return False
        return True
