import logging
import logging.config

from cloudspace_provisioner.constants import VALID_REGIONS
from cloudspace_provisioner.logging_config import LOGGER_NAME, LOGGING_CONFIG
from cloudspace_provisioner.pricing import InvalidPrice, normalize_bid_price
from cloudspace_provisioner.request import CreateRequest

logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger(LOGGER_NAME)


class ValidationError(Exception):
    """A CreateRequest breaks one of its invariants"""

    def __init__(self, field: str, reason: str):
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


def is_valid_region(region: str) -> bool:
    return region in VALID_REGIONS


def validate(request: CreateRequest) -> None:
    """
    Check a CreateRequest before anything is created remotely, stopping at the first problem.

    Spot pool bid prices are rewritten to their canonical form on success.
    """
    logger.debug(f"Validating {request}")
    if not request.name:
        raise ValidationError("name", "name is required")

    if not request.region:
        raise ValidationError("region", "region is required")

    if not is_valid_region(request.region):
        raise ValidationError(
            "region",
            f"region {request.region} is not valid. "
            f"Available regions: {', '.join(VALID_REGIONS)}",
        )

    if not request.organization:
        raise ValidationError(
            "organization", "organization is required (use --org or set org in the CLI config)"
        )

    if request.pool_count == 0:
        raise ValidationError(
            "pools",
            "at least one node pool is required "
            "(use --spot-nodepool or --ondemand-nodepool)",
        )

    canonical_prices = []
    for pool in request.spot_pools:
        if not pool.bid_price:
            raise ValidationError("bidPrice", f"bid price is required for spot node pool {pool.name}")
        try:
            canonical_prices.append(normalize_bid_price(pool.bid_price))
        except InvalidPrice as e:
            raise ValidationError("bidPrice", f"invalid bid price for pool {pool.name}: {e}")

    for pool in [*request.spot_pools, *request.on_demand_pools]:
        if not isinstance(pool.desired, int) or pool.desired < 1:
            raise ValidationError(
                "desired",
                f"desired number of nodes must be greater than 0 for node pool {pool.name}",
            )

    for pool, bid_price in zip(request.spot_pools, canonical_prices):
        pool.bid_price = bid_price
