import logging
import logging.config
from typing import List, Optional

import questionary

from cloudspace_provisioner.cancellation import CancellationToken, OperationCancelled
from cloudspace_provisioner.constants import (
    CNI_OPTIONS,
    DEFAULT_CNI,
    DEFAULT_DESIRED,
    DEFAULT_KUBERNETES_VERSION,
    KUBERNETES_VERSIONS,
    POOL_TYPE_ON_DEMAND,
    POOL_TYPE_SPOT,
    VALID_REGIONS,
)
from cloudspace_provisioner.logging_config import LOGGER_NAME, LOGGING_CONFIG
from cloudspace_provisioner.pricing import minimum_bid_or_default, try_normalize_bid_price
from cloudspace_provisioner.request import CreateRequest, OnDemandPoolSpec, SpotPoolSpec
from cloudspace_provisioner.spot_client import SpotAPIError
from cloudspace_provisioner.validator import is_valid_region

logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger(LOGGER_NAME)


class PromptCancelled(Exception):
    """The operator pressed Ctrl-C or closed the prompt"""


class WizardInputError(Exception):
    """A lookup the wizard depends on returned nothing usable"""


def _answer(question):
    # questionary returns None when the prompt is interrupted
    try:
        answer = question.ask()
    except EOFError:
        answer = None
    if answer is None:
        raise PromptCancelled("prompt interrupted")
    return answer


class TerminalPrompter:
    """Prompts in the terminal with questionary"""

    def select(self, message: str, options: List[str], default: Optional[str] = None) -> str:
        return _answer(
            questionary.select(
                message,
                choices=options,
                default=default if default in options else None,
            )
        )

    def text(self, message: str, default: str = "") -> str:
        return _answer(questionary.text(message, default=default or "")).strip()

    def confirm(self, message: str, default: bool = False) -> bool:
        return _answer(questionary.confirm(message, default=default))


class WizardState:
    RUNNING = "running"
    CANCELLED = "cancelled"
    FAILED = "failed"
    COMPLETED = "completed"

    def __init__(self, kind: str, step_index: Optional[int] = None, error=None, request=None):
        self.kind = kind
        self.step_index = step_index
        self.error = error
        self.request = request

    @staticmethod
    def running(step_index: int):
        return WizardState(WizardState.RUNNING, step_index=step_index)

    @staticmethod
    def cancelled():
        return WizardState(WizardState.CANCELLED)

    @staticmethod
    def failed(error: Exception):
        return WizardState(WizardState.FAILED, error=error)

    @staticmethod
    def completed(request: CreateRequest):
        return WizardState(WizardState.COMPLETED, request=request)

    @property
    def terminal(self) -> bool:
        return self.kind != WizardState.RUNNING

    def __repr__(self):
        if self.kind == WizardState.RUNNING:
            return f"Running({self.step_index})"
        if self.kind == WizardState.FAILED:
            return f"Failed({self.error!r})"
        return self.kind.capitalize()

    def __eq__(self, other) -> bool:
        if not isinstance(other, WizardState):
            return NotImplemented
        return (self.kind, self.step_index) == (other.kind, other.step_index)


def with_default(options: List[str], default: Optional[str]) -> List[str]:
    """Put an externally supplied default at the front of options if it isn't one already"""
    if default and default not in options:
        return [default, *options]
    return list(options)


class Wizard:
    """
    Collects a CreateRequest from an operator, one step at a time.

    Steps run strictly in order and only retry within themselves. Nothing is created
    remotely: the result is either a CreateRequest or OperationCancelled.
    """

    def __init__(
        self,
        client,
        prompter=None,
        cancellation: Optional[CancellationToken] = None,
        default_region: str = "",
        default_kubernetes_version: str = DEFAULT_KUBERNETES_VERSION,
        default_cni: str = DEFAULT_CNI,
    ):
        self.client = client
        self.prompter = prompter or TerminalPrompter()
        self.cancellation = cancellation or CancellationToken()
        self.default_region = default_region
        self.default_kubernetes_version = default_kubernetes_version
        self.default_cni = default_cni
        self.request = CreateRequest(
            region=default_region,
            kubernetes_version=default_kubernetes_version,
            cni=default_cni,
        )
        self.steps = [
            self.step_select_region,
            self.step_enter_name,
            self.step_select_kubernetes_version,
            self.step_select_cni,
            self.step_add_node_pools,
            self.step_summary_and_confirm,
        ]
        self.state = WizardState.running(0)

    def run(self) -> CreateRequest:
        print("\nStarting interactive cloudspace creation...")
        for index, step in enumerate(self.steps):
            self.state = WizardState.running(index)
            if self.cancellation.cancelled:
                self.state = WizardState.cancelled()
                break
            logger.debug(f"Wizard step {index}: {step.__name__}")
            try:
                step()
            except (PromptCancelled, KeyboardInterrupt) as e:
                logger.debug(f"Wizard cancelled at step {index}: {e}")
                self.state = WizardState.cancelled()
                break
            except (SpotAPIError, WizardInputError) as e:
                logger.debug(f"Wizard failed at step {index}: {e}")
                self.state = WizardState.failed(e)
                break
        else:
            if self.cancellation.cancelled:
                self.state = WizardState.cancelled()
            else:
                self.state = WizardState.completed(self.request)

        if self.state.kind == WizardState.CANCELLED:
            raise OperationCancelled("interactive prompt cancelled")
        if self.state.kind == WizardState.FAILED:
            raise OperationCancelled(
                f"interactive prompt aborted: {self.state.error}"
            ) from self.state.error
        return self.state.request

    def step_select_region(self):
        print("Fetching available regions...")
        try:
            regions = self.client.list_regions()
        except SpotAPIError as e:
            logger.debug(f"Listing regions failed, asking for manual entry: {e}")
            regions = []

        if not regions:
            while True:
                region = self.prompter.text(
                    "Enter region (e.g. us-central-ord-1)", self.default_region
                ).strip()
                if is_valid_region(region):
                    self.request.region = region
                    return
                if region:
                    print(f"Region {region} is not valid. Available regions: {', '.join(VALID_REGIONS)}")
                else:
                    print("Region cannot be empty. Please enter a valid region.")

        names = sorted(r["name"] for r in regions)
        default = self.default_region if self.default_region in names else None
        self.request.region = self.prompter.select("Select a region:", names, default)
        print(f"Selected region: {self.request.region}")

    def step_enter_name(self):
        while True:
            name = self.prompter.text("Enter a name for your cloudspace").strip()
            if name:
                self.request.name = name
                return
            print("Name cannot be empty. Please enter a valid name.")

    def step_select_kubernetes_version(self):
        versions = with_default(KUBERNETES_VERSIONS, self.default_kubernetes_version)
        self.request.kubernetes_version = self.prompter.select(
            "Select Kubernetes version:", versions, self.default_kubernetes_version
        )

    def step_select_cni(self):
        cni_options = with_default(CNI_OPTIONS, self.default_cni)
        self.request.cni = self.prompter.select("Select CNI plugin:", cni_options, self.default_cni)

    def _select_server_class(self, pool_type: str) -> dict:
        server_classes = self.client.list_server_classes(self.request.region)
        if not server_classes:
            raise WizardInputError(f"no server classes available for region {self.request.region}")

        by_label = {}
        for sc in server_classes:
            if pool_type == POOL_TYPE_SPOT:
                label = (
                    f"{sc['name']} (CPU: {sc['cpu']}, Memory: {sc['memory']}, "
                    f"Current Market Price: {sc['market_price']}, Min Bid Price: {sc['min_bid_price']})"
                )
            else:
                label = (
                    f"{sc['name']} (CPU: {sc['cpu']}, Memory: {sc['memory']}, "
                    f"Price: {sc['on_demand_price']})"
                )
            by_label[label] = sc
        choice = self.prompter.select("Select a server class:", list(by_label))
        return by_label[choice]

    def _prompt_desired(self, pool_label: str) -> int:
        while True:
            raw = self.prompter.text(
                f"Enter number of {pool_label} nodes", str(DEFAULT_DESIRED)
            ).strip()
            try:
                desired = int(raw)
            except ValueError:
                desired = 0
            if desired >= 1:
                return desired
            print("Please enter a valid number >= 1.")

    def _prompt_bid_price(self, minimum_bid: str) -> str:
        while True:
            raw = self.prompter.text(
                f"Enter your maximum bid price (minimum: ${minimum_bid})", minimum_bid
            )
            bid_price, ok = try_normalize_bid_price(raw)
            if ok:
                return bid_price
            print(f"Invalid bid price: {raw!r}. Please enter a number greater than 0.")

    def step_add_node_pools(self):
        while True:
            pool_type = self.prompter.select(
                "Add a node pool:", [POOL_TYPE_SPOT, POOL_TYPE_ON_DEMAND]
            )
            server_class = self._select_server_class(pool_type)

            if pool_type == POOL_TYPE_SPOT:
                minimum_bid = minimum_bid_or_default(self.client, server_class["name"])
                print(f"Minimum bid price for {server_class['name']}: ${minimum_bid}")
                desired = self._prompt_desired("spot")
                bid_price = self._prompt_bid_price(minimum_bid)
                self.request.spot_pools.append(
                    SpotPoolSpec(
                        server_class=server_class["name"],
                        desired=desired,
                        bid_price=bid_price,
                    )
                )
            else:
                desired = self._prompt_desired("on-demand")
                self.request.on_demand_pools.append(
                    OnDemandPoolSpec(
                        server_class=server_class["name"],
                        desired=desired,
                        price_per_hour=server_class.get("on_demand_price"),
                    )
                )

            if not self.prompter.confirm("Add another node pool?", False):
                return

    def render_summary(self) -> str:
        lines = [
            "",
            "Cloudspace Configuration:",
            f"  * {'Name:':<20} {self.request.name}",
            f"  * {'Region:':<20} {self.request.region}",
            f"  * {'Kubernetes Version:':<20} {self.request.kubernetes_version}",
            f"  * {'CNI:':<20} {self.request.cni}",
        ]
        if self.request.spot_pools:
            lines += ["", "Spot Node Pools:"]
            for pool in self.request.spot_pools:
                lines += [
                    f"  * {pool.name}",
                    f"    {'Instance Type:':<15} {pool.server_class}",
                    f"    {'Desired Nodes:':<15} {pool.desired}",
                    f"    {'Bid Price:':<15} ${pool.bid_price}",
                ]
        if self.request.on_demand_pools:
            lines += ["", "On-Demand Node Pools:"]
            for pool in self.request.on_demand_pools:
                lines += [
                    f"  * {pool.name}",
                    f"    {'Instance Type:':<15} {pool.server_class}",
                    f"    {'Desired Nodes:':<15} {pool.desired}",
                    f"    {'Price:':<15} {pool.price_per_hour or '-'}",
                ]
        return "\n".join(lines)

    def step_summary_and_confirm(self):
        print(self.render_summary())
        if not self.prompter.confirm("\nCreate cloudspace with the above configuration?", True):
            raise PromptCancelled("cloudspace creation cancelled")
