import logging
import logging.config
from typing import List, Optional

import requests

from cloudspace_provisioner.constants import API_GROUP_PATH
from cloudspace_provisioner.logging_config import LOGGER_NAME, LOGGING_CONFIG
from cloudspace_provisioner.utils import get_base_url, get_request_timeout

logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger(LOGGER_NAME)

API_VERSION = "ngpc.rxt.io/v1"


class SpotAPIError(Exception):
    """Any error reported by the Spot control plane"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteUnauthorized(SpotAPIError):
    """The access token was rejected"""


class RemoteForbidden(SpotAPIError):
    """The caller is not allowed to perform the operation"""


class RemoteNotFound(SpotAPIError):
    """The requested resource does not exist"""


class RemoteConflict(SpotAPIError):
    """A resource with the same name already exists"""


class RemoteUnavailable(SpotAPIError):
    """The control plane could not be reached or failed internally"""


STATUS_ERRORS = {
    401: RemoteUnauthorized,
    403: RemoteForbidden,
    404: RemoteNotFound,
    409: RemoteConflict,
}


def _namespace(org: str) -> str:
    return org.lower()


def _resource(kind: str, name: str, org: str, spec: dict) -> dict:
    return {
        "apiVersion": API_VERSION,
        "kind": kind,
        "metadata": {"name": name, "namespace": _namespace(org)},
        "spec": spec,
    }


def _price(value) -> str:
    return str(value or "").replace("$", "").strip()


class SpotClient:
    """Thin client for the Spot control plane; every call blocks until the response arrives"""

    def __init__(
        self,
        access_token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url or get_base_url()
        self.timeout = timeout if timeout is not None else get_request_timeout()
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        url = f"{self.base_url}{API_GROUP_PATH}{path}"
        logger.debug(f"Request: {method} {url}")
        try:
            response = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise RemoteUnavailable(f"{method} {url} failed: {e}") from e

        logger.debug(f"Response status: {response.status_code}")
        if response.status_code in STATUS_ERRORS:
            raise STATUS_ERRORS[response.status_code](
                f"{method} {path}: {response.text.strip() or response.reason}",
                status_code=response.status_code,
            )
        if response.status_code >= 500:
            raise RemoteUnavailable(
                f"{method} {path}: server error {response.status_code}",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise SpotAPIError(
                f"{method} {path}: {response.status_code} {response.text.strip()}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise SpotAPIError(f"Invalid JSON response from {method} {path}") from e

    def list_regions(self) -> List[dict]:
        items = self._request("GET", "/regions").get("items", [])
        return [
            {
                "name": item["metadata"]["name"],
                "description": item.get("spec", {}).get("description", ""),
            }
            for item in items
        ]

    def list_server_classes(self, region: str) -> List[dict]:
        items = self._request("GET", "/serverclasses").get("items", [])
        server_classes = []
        for item in items:
            spec = item.get("spec", {})
            if spec.get("region") and spec["region"] != region:
                continue
            status = item.get("status", {})
            pricing = status.get("spotPricing", {})
            market_price = _price(pricing.get("marketPricePerHour"))
            min_bid_price = _price(pricing.get("minBidPricePerHour")) or market_price
            server_classes.append(
                {
                    "name": item["metadata"]["name"],
                    "region": spec.get("region", region),
                    "cpu": spec.get("resources", {}).get("cpu", ""),
                    "memory": spec.get("resources", {}).get("memory", ""),
                    "market_price": market_price,
                    "min_bid_price": max(min_bid_price, market_price, key=_as_float),
                    "on_demand_price": _price(spec.get("onDemandPricing", {}).get("cost")),
                }
            )
        return server_classes

    def get_minimum_bid_price(self, server_class: str) -> str:
        item = self._request("GET", f"/serverclasses/{server_class}")
        pricing = item.get("status", {}).get("spotPricing", {})
        market_price = _price(pricing.get("marketPricePerHour"))
        min_bid_price = _price(pricing.get("minBidPricePerHour"))
        if not market_price and not min_bid_price:
            raise SpotAPIError(f"No pricing information for server class {server_class}")
        return max(min_bid_price, market_price, key=_as_float)

    def create_cloudspace(self, spec: dict) -> dict:
        org = spec["org"]
        body = _resource(
            "CloudSpace",
            spec["name"],
            org,
            {
                "region": spec["region"],
                "kubernetesVersion": spec["kubernetesVersion"],
                "cni": spec["cni"],
                "webhook": spec.get("preemptionWebhookURL", ""),
            },
        )
        return self._request("POST", f"/namespaces/{_namespace(org)}/cloudspaces", body)

    def list_cloudspaces(self, org: str) -> List[dict]:
        return self._request("GET", f"/namespaces/{_namespace(org)}/cloudspaces").get("items", [])

    def get_cloudspace(self, org: str, name: str) -> dict:
        return self._request("GET", f"/namespaces/{_namespace(org)}/cloudspaces/{name}")

    def delete_cloudspace(self, org: str, name: str) -> None:
        self._request("DELETE", f"/namespaces/{_namespace(org)}/cloudspaces/{name}")

    def get_cloudspace_config(self, org: str, name: str) -> str:
        """Kubeconfig of a cloudspace, as YAML text"""
        response = self._request(
            "GET", f"/namespaces/{_namespace(org)}/cloudspaces/{name}/kubeconfig"
        )
        kubeconfig = response.get("kubeconfig")
        if not kubeconfig:
            raise SpotAPIError(f"No kubeconfig returned for cloudspace {name}")
        return kubeconfig

    def create_spot_pool(self, org: str, spec: dict) -> dict:
        body = _resource(
            "SpotNodePool",
            spec["name"],
            org,
            {
                "cloudSpace": spec["cloudspace"],
                "serverClass": spec["serverClass"],
                "desired": spec["desired"],
                "bidPrice": spec["bidPrice"],
            },
        )
        return self._request("POST", f"/namespaces/{_namespace(org)}/spotnodepools", body)

    def get_spot_pool(self, org: str, name: str) -> dict:
        return self._request("GET", f"/namespaces/{_namespace(org)}/spotnodepools/{name}")

    def delete_spot_pool(self, org: str, name: str) -> None:
        self._request("DELETE", f"/namespaces/{_namespace(org)}/spotnodepools/{name}")

    def create_on_demand_pool(self, org: str, spec: dict) -> dict:
        body = _resource(
            "OnDemandNodePool",
            spec["name"],
            org,
            {
                "cloudSpace": spec["cloudspace"],
                "serverClass": spec["serverClass"],
                "desired": spec["desired"],
            },
        )
        return self._request("POST", f"/namespaces/{_namespace(org)}/ondemandnodepools", body)

    def get_on_demand_pool(self, org: str, name: str) -> dict:
        return self._request("GET", f"/namespaces/{_namespace(org)}/ondemandnodepools/{name}")

    def delete_on_demand_pool(self, org: str, name: str) -> None:
        self._request("DELETE", f"/namespaces/{_namespace(org)}/ondemandnodepools/{name}")


def _as_float(value: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
