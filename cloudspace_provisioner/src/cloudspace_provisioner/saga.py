import logging
import logging.config
from typing import Callable, Iterator, List, Optional

from cloudspace_provisioner.cancellation import CancellationToken, OperationCancelled
from cloudspace_provisioner.constants import (
    RESOURCE_CLOUDSPACE,
    RESOURCE_ON_DEMAND_POOL,
    RESOURCE_SPOT_POOL,
)
from cloudspace_provisioner.logging_config import LOGGER_NAME, LOGGING_CONFIG
from cloudspace_provisioner.pricing import normalize_bid_price
from cloudspace_provisioner.request import CreateRequest

logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger(LOGGER_NAME)


class LedgerEntry:
    resource_kind: str
    resource_name: str

    def __init__(self, resource_kind: str, resource_name: str):
        self.resource_kind = resource_kind
        self.resource_name = resource_name

    def __repr__(self):
        return f"{self.resource_kind}/{self.resource_name}"

    def __eq__(self, other) -> bool:
        if not isinstance(other, LedgerEntry):
            return NotImplemented
        return (self.resource_kind, self.resource_name) == (
            other.resource_kind,
            other.resource_name,
        )


class ProvisioningLedger:
    """Append-only record of what has been created so far, in creation order"""

    def __init__(self):
        self._entries: List[LedgerEntry] = []

    def record(self, resource_kind: str, resource_name: str) -> None:
        entry = LedgerEntry(resource_kind, resource_name)
        logger.debug(f"Ledger: recorded {entry}")
        self._entries.append(entry)

    def __iter__(self) -> Iterator[LedgerEntry]:
        return iter(list(self._entries))

    def __reversed__(self) -> Iterator[LedgerEntry]:
        return iter(self._entries[::-1])

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> List[LedgerEntry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries = []


class RollbackWarning:
    """A compensating delete that failed. Reported, never raised."""

    def __init__(self, resource_kind: str, resource_name: str, error: Exception):
        self.resource_kind = resource_kind
        self.resource_name = resource_name
        self.error = error

    def __str__(self):
        return f"failed to delete {self.resource_kind} {self.resource_name}: {self.error}"

    def __repr__(self):
        return f"RollbackWarning({self})"


class ResourceCreationError(Exception):
    """Creating a resource failed; anything created before it has been rolled back"""

    def __init__(
        self,
        resource_kind: str,
        resource_name: str,
        cause: Exception,
        rollback_warnings: Optional[List[RollbackWarning]] = None,
    ):
        super().__init__(f"failed to create {resource_kind} {resource_name}: {cause}")
        self.resource_kind = resource_kind
        self.resource_name = resource_name
        self.cause = cause
        self.rollback_warnings = list(rollback_warnings or [])


class ProvisioningSaga:
    """
    Creates a cloudspace and then its pools, one call at a time, in request order.

    Every resource that was created is recorded in the ledger. If a later creation fails,
    or cancellation is observed before a creation call, the ledger is walked in reverse
    and each resource is deleted before the error surfaces. The saga never retries.
    """

    def __init__(self, client, cancellation: Optional[CancellationToken] = None):
        self.client = client
        self.cancellation = cancellation or CancellationToken()
        self.ledger = ProvisioningLedger()

    def _deleter(self, resource_kind: str) -> Callable[[str, str], None]:
        return {
            RESOURCE_CLOUDSPACE: self.client.delete_cloudspace,
            RESOURCE_SPOT_POOL: self.client.delete_spot_pool,
            RESOURCE_ON_DEMAND_POOL: self.client.delete_on_demand_pool,
        }[resource_kind]

    def rollback(self, org: str) -> List[RollbackWarning]:
        """Delete everything in the ledger, newest first, then empty it"""
        warnings = []
        if len(self.ledger):
            logger.info(f"Rolling back {len(self.ledger)} resource(s)")
        for entry in reversed(self.ledger):
            logger.debug(f"Rollback: deleting {entry}")
            try:
                self._deleter(entry.resource_kind)(org, entry.resource_name)
            except Exception as e:
                warning = RollbackWarning(entry.resource_kind, entry.resource_name, e)
                logger.warning(f"Rollback: {warning}")
                warnings.append(warning)
        self.ledger.clear()
        return warnings

    def _checkpoint(self, org: str, next_step: str) -> None:
        if not self.cancellation.cancelled:
            return
        logger.info(f"Cancellation observed before {next_step}")
        warnings = self.rollback(org)
        raise OperationCancelled(
            f"operation cancelled before {next_step}", rollback_warnings=warnings
        )

    def _fail(self, org: str, resource_kind: str, resource_name: str, error: Exception, action: str):
        logger.error(f"Failed to {action} {resource_kind} {resource_name}: {error}")
        warnings = self.rollback(org)
        raise ResourceCreationError(resource_kind, resource_name, error, warnings) from error

    def _create(
        self,
        org: str,
        resource_kind: str,
        resource_name: str,
        create: Callable[[], dict],
        verify: Optional[Callable[[], dict]] = None,
    ):
        """
        Create one resource and record it in the ledger.

        A created resource goes into the ledger before it is verified, so a failed
        verification deletes it together with everything before it.
        """
        self._checkpoint(org, f"creating {resource_kind} {resource_name}")
        logger.debug(f"Creating {resource_kind} {resource_name}")
        try:
            create()
        except Exception as e:
            self._fail(org, resource_kind, resource_name, e, "create")
        self.ledger.record(resource_kind, resource_name)

        if verify is not None:
            try:
                verify()
            except Exception as e:
                self._fail(org, resource_kind, resource_name, e, "verify")
        logger.info(f"Created {resource_kind} {resource_name}")

    def _spot_pool_spec(self, request: CreateRequest, pool) -> dict:
        spec = pool.as_dict()
        spec["org"] = request.organization
        spec["cloudspace"] = request.name
        spec["bidPrice"] = normalize_bid_price(pool.bid_price)
        return spec

    def _on_demand_pool_spec(self, request: CreateRequest, pool) -> dict:
        spec = pool.as_dict()
        spec["org"] = request.organization
        spec["cloudspace"] = request.name
        return spec

    def run(self, request: CreateRequest) -> dict:
        """Provision everything in request and return the cloudspace as the control plane reports it"""
        org = request.organization
        self.ledger.clear()
        logger.debug(f"Provisioning {request}")

        self._create(
            org,
            RESOURCE_CLOUDSPACE,
            request.name,
            lambda: self.client.create_cloudspace(request.cloudspace_spec()),
        )

        for pool in request.spot_pools:
            self._create(
                org,
                RESOURCE_SPOT_POOL,
                pool.name,
                lambda pool=pool: self.client.create_spot_pool(
                    org, self._spot_pool_spec(request, pool)
                ),
                lambda pool=pool: self.client.get_spot_pool(org, pool.name),
            )

        for pool in request.on_demand_pools:
            self._create(
                org,
                RESOURCE_ON_DEMAND_POOL,
                pool.name,
                lambda pool=pool: self.client.create_on_demand_pool(
                    org, self._on_demand_pool_spec(request, pool)
                ),
                lambda pool=pool: self.client.get_on_demand_pool(org, pool.name),
            )

        self._checkpoint(org, f"confirming {RESOURCE_CLOUDSPACE} {request.name}")
        try:
            confirmed = self.client.get_cloudspace(org, request.name)
        except Exception as e:
            self._fail(org, RESOURCE_CLOUDSPACE, request.name, e, "confirm")

        self.ledger.clear()
        logger.info(f"Cloudspace {request.name} provisioned with {request.pool_count} node pool(s)")
        return confirmed
