from unittest.mock import MagicMock

import pytest

from cloudspace_provisioner.request import CreateRequest, OnDemandPoolSpec, SpotPoolSpec

ORG = "testorg"
CLOUDSPACE_NAME = "testcloudspace"
REGION = "us-central-dfw-1"
SERVER_CLASS = "gp.vs1.medium-dfw"


@pytest.fixture
def spot_pool():
    return SpotPoolSpec(
        name="spot-1",
        server_class=SERVER_CLASS,
        desired=2,
        bid_price="0.080",
        organization=ORG,
        cloudspace=CLOUDSPACE_NAME,
    )


@pytest.fixture
def on_demand_pool():
    return OnDemandPoolSpec(
        name="ondemand-1",
        server_class=SERVER_CLASS,
        desired=1,
        organization=ORG,
        cloudspace=CLOUDSPACE_NAME,
    )


@pytest.fixture
def create_request(spot_pool, on_demand_pool):
    return CreateRequest(
        name=CLOUDSPACE_NAME,
        organization=ORG,
        region=REGION,
        spot_pools=[spot_pool],
        on_demand_pools=[on_demand_pool],
    )


@pytest.fixture
def server_classes():
    return [
        {
            "name": SERVER_CLASS,
            "region": REGION,
            "cpu": "2",
            "memory": "4GB",
            "market_price": "0.010",
            "min_bid_price": "0.012",
            "on_demand_price": "0.050",
        },
        {
            "name": "ch.vs1.large-dfw",
            "region": REGION,
            "cpu": "4",
            "memory": "8GB",
            "market_price": "0.020",
            "min_bid_price": "0.020",
            "on_demand_price": "0.100",
        },
    ]


@pytest.fixture
def mock_client(server_classes):
    client = MagicMock()
    client.list_regions.return_value = [
        {"name": "us-central-dfw-1", "description": "Dallas"},
        {"name": "uk-lon-1", "description": "London"},
    ]
    client.list_server_classes.return_value = server_classes
    client.get_minimum_bid_price.return_value = "0.012"
    client.create_cloudspace.return_value = {}
    client.create_spot_pool.return_value = {}
    client.create_on_demand_pool.return_value = {}
    client.get_cloudspace.return_value = {
        "metadata": {"name": CLOUDSPACE_NAME, "namespace": ORG},
        "status": {"phase": "Provisioning"},
    }
    return client
