from pathlib import Path

DEFAULT_BASE_URL = "https://spot.rackspace.com"
DEFAULT_CONFIG_PATH = str(Path.home() / ".spot_config")
DEFAULT_REQUEST_TIMEOUT = 30

API_GROUP_PATH = "/apis/ngpc.rxt.io/v1"

HKG_HKG_1 = "hkg-hkg-1"
US_CENTRAL_ORD_1 = "us-central-ord-1"
AUS_SYD_1 = "aus-syd-1"
UK_LON_1 = "uk-lon-1"
US_EAST_IAD_1 = "us-east-iad-1"
US_CENTRAL_DFW_1 = "us-central-dfw-1"
US_CENTRAL_DFW_2 = "us-central-dfw-2"
US_WEST_SJC_1 = "us-west-sjc-1"

VALID_REGIONS = [
    US_CENTRAL_ORD_1,
    HKG_HKG_1,
    AUS_SYD_1,
    UK_LON_1,
    US_EAST_IAD_1,
    US_CENTRAL_DFW_1,
    US_CENTRAL_DFW_2,
    US_WEST_SJC_1,
]

DEFAULT_KUBERNETES_VERSION = "1.31.1"
KUBERNETES_VERSIONS = ["1.31.1", "1.30.10", "1.29.6"]

CNI_CALICO = "calico"
CNI_CILIUM = "cilium"
CNI_BRING_YOUR_OWN = "bring your own CNI"
DEFAULT_CNI = CNI_CALICO
CNI_OPTIONS = [CNI_CALICO, CNI_CILIUM, CNI_BRING_YOUR_OWN]

DEFAULT_SERVER_CLASS = "gp.vs1.medium-ord"
DEFAULT_DESIRED = 1
DEFAULT_MINIMUM_BID_PRICE = "0.001"

POOL_TYPE_SPOT = "Spot"
POOL_TYPE_ON_DEMAND = "On-Demand"

RESOURCE_CLOUDSPACE = "cloudspace"
RESOURCE_SPOT_POOL = "spotnodepool"
RESOURCE_ON_DEMAND_POOL = "ondemandnodepool"

EXIT_FAILURE = 1
EXIT_CANCELLED = 130
