import logging
from unittest.mock import MagicMock, patch

import pytest

from cloudspace_provisioner.cancellation import CancellationToken, OperationCancelled
from cloudspace_provisioner.constants import DEFAULT_CNI, DEFAULT_KUBERNETES_VERSION, KUBERNETES_VERSIONS
from cloudspace_provisioner.spot_client import RemoteUnavailable
from cloudspace_provisioner.wizard import (
    PromptCancelled,
    TerminalPrompter,
    Wizard,
    WizardInputError,
    WizardState,
    with_default,
)

logger = logging.getLogger("test_logger")
fmt = logging.Formatter("[%(asctime)s] [%(levelname)s] %(msg)s")
fh = logging.FileHandler("./test.log")
fh.setFormatter(fmt)
fh.setLevel(logging.DEBUG)
sh = logging.StreamHandler()
sh.setFormatter(fmt)
sh.setLevel(logging.DEBUG)
logger.addHandler(fh)
logger.addHandler(sh)
logger.setLevel(logging.DEBUG)

DEFAULT = object()


class ScriptedPrompter:
    """
    Answers prompts from a fixed script.
    An int answers a select by index, DEFAULT picks the default, an exception is raised.
    """

    def __init__(self, answers):
        self.answers = list(answers)
        self.calls = []

    def _next(self, kind, message, options=None, default=None):
        self.calls.append((kind, message, options))
        logger.debug(f"prompt {kind}: {message}")
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return answer()
        if answer is DEFAULT:
            return default
        return answer

    def select(self, message, options, default=None):
        answer = self._next("select", message, options, default)
        if isinstance(answer, int):
            return options[answer]
        return answer

    def text(self, message, default=""):
        return self._next("text", message, default=default)

    def confirm(self, message, default=False):
        return self._next("confirm", message, default=default)


def spot_pool_answers(desired="2", bid_price="0.08"):
    return ["Spot", 0, desired, bid_price]


def happy_path(pool_answers=None):
    return [
        "uk-lon-1",
        "mycloudspace",
        DEFAULT,
        DEFAULT,
        *(pool_answers or spot_pool_answers()),
        False,
        True,
    ]


def test_wizard_happy_path(mock_client):
    prompter = ScriptedPrompter(happy_path())
    wizard = Wizard(mock_client, prompter=prompter)

    request = wizard.run()

    assert wizard.state.kind == WizardState.COMPLETED
    assert request.name == "mycloudspace"
    assert request.region == "uk-lon-1"
    assert request.kubernetes_version == DEFAULT_KUBERNETES_VERSION
    assert request.cni == DEFAULT_CNI
    assert len(request.spot_pools) == 1
    pool = request.spot_pools[0]
    assert pool.server_class == "gp.vs1.medium-dfw"
    assert pool.desired == 2
    assert pool.bid_price == "0.080"
    assert pool.name
    assert prompter.answers == []
    mock_client.list_server_classes.assert_called_once_with("uk-lon-1")
    mock_client.get_minimum_bid_price.assert_called_once_with("gp.vs1.medium-dfw")
    mock_client.create_cloudspace.assert_not_called()


def test_wizard_on_demand_pool(mock_client):
    prompter = ScriptedPrompter(happy_path(["On-Demand", 1, "3"]))

    request = Wizard(mock_client, prompter=prompter).run()

    assert request.spot_pools == []
    pool = request.on_demand_pools[0]
    assert pool.server_class == "ch.vs1.large-dfw"
    assert pool.desired == 3
    assert pool.price_per_hour == "0.100"
    mock_client.get_minimum_bid_price.assert_not_called()


def test_wizard_several_pools(mock_client):
    answers = [
        "uk-lon-1",
        "mycloudspace",
        DEFAULT,
        DEFAULT,
        *spot_pool_answers(),
        True,
        "On-Demand",
        0,
        "1",
        False,
        True,
    ]
    request = Wizard(mock_client, prompter=ScriptedPrompter(answers)).run()
    assert request.pool_count == 2


def test_wizard_retries_empty_name(mock_client, capsys):
    answers = happy_path()
    answers[1:2] = ["", "   ", "mycloudspace"]
    prompter = ScriptedPrompter(answers)

    request = Wizard(mock_client, prompter=prompter).run()

    assert request.name == "mycloudspace"
    assert capsys.readouterr().out.count("Name cannot be empty. Please enter a valid name.") == 2
    kinds = [call[0] for call in prompter.calls]
    # region, three name attempts, then the kubernetes version
    assert kinds[:5] == ["select", "text", "text", "text", "select"]
    assert prompter.calls[4][2] == KUBERNETES_VERSIONS


def test_wizard_retries_invalid_desired_and_bid_price(mock_client):
    prompter = ScriptedPrompter(happy_path(["Spot", 0, "0", "many", "4", "free", "-1", "$0.1"]))

    request = Wizard(mock_client, prompter=prompter).run()

    assert request.spot_pools[0].desired == 4
    assert request.spot_pools[0].bid_price == "0.100"


def test_wizard_inserts_external_defaults(mock_client):
    prompter = ScriptedPrompter(happy_path())
    wizard = Wizard(
        mock_client,
        prompter=prompter,
        default_kubernetes_version="1.28.0",
        default_cni="flannel",
    )

    request = wizard.run()

    assert request.kubernetes_version == "1.28.0"
    assert request.cni == "flannel"
    version_options = prompter.calls[2][2]
    cni_options = prompter.calls[3][2]
    assert version_options[0] == "1.28.0"
    assert version_options[1:] == KUBERNETES_VERSIONS
    assert cni_options[0] == "flannel"


def test_wizard_default_region(mock_client):
    answers = happy_path()
    answers[0] = DEFAULT
    request = Wizard(mock_client, prompter=ScriptedPrompter(answers), default_region="us-central-dfw-1").run()
    assert request.region == "us-central-dfw-1"


def test_wizard_region_entered_manually_when_listing_fails(mock_client):
    mock_client.list_regions.side_effect = RemoteUnavailable("down")
    answers = happy_path()
    answers[0:1] = ["", "uk-lon-1"]
    prompter = ScriptedPrompter(answers)

    request = Wizard(mock_client, prompter=prompter).run()

    assert request.region == "uk-lon-1"
    assert prompter.calls[0][0] == "text"


@pytest.mark.parametrize("interrupt_at", range(6))
def test_wizard_cancel_at_any_prompt(mock_client, interrupt_at):
    answers = happy_path()
    answers[interrupt_at] = PromptCancelled("interrupted")
    prompter = ScriptedPrompter(answers)
    wizard = Wizard(mock_client, prompter=prompter)

    with pytest.raises(OperationCancelled):
        wizard.run()

    assert wizard.state.kind == WizardState.CANCELLED
    assert len(prompter.calls) == interrupt_at + 1


def test_wizard_negative_confirmation_cancels(mock_client):
    answers = happy_path()
    answers[-1] = False
    wizard = Wizard(mock_client, prompter=ScriptedPrompter(answers))

    with pytest.raises(OperationCancelled):
        wizard.run()

    assert wizard.state.kind == WizardState.CANCELLED
    mock_client.create_cloudspace.assert_not_called()
    mock_client.create_spot_pool.assert_not_called()


def test_wizard_cancelled_before_start(mock_client):
    cancellation = CancellationToken()
    cancellation.cancel()
    prompter = ScriptedPrompter([])

    with pytest.raises(OperationCancelled):
        Wizard(mock_client, prompter=prompter, cancellation=cancellation).run()

    assert prompter.calls == []
    mock_client.list_regions.assert_not_called()


def test_wizard_cancellation_checked_between_steps(mock_client):
    cancellation = CancellationToken()

    def name_then_cancel():
        cancellation.cancel()
        return "mycloudspace"

    answers = happy_path()
    answers[1] = name_then_cancel
    prompter = ScriptedPrompter(answers)
    wizard = Wizard(mock_client, prompter=prompter, cancellation=cancellation)

    with pytest.raises(OperationCancelled):
        wizard.run()

    assert len(prompter.calls) == 2
    assert wizard.state.kind == WizardState.CANCELLED


def test_wizard_fails_when_server_classes_cannot_be_listed(mock_client):
    error = RemoteUnavailable("down")
    mock_client.list_server_classes.side_effect = error
    wizard = Wizard(mock_client, prompter=ScriptedPrompter(happy_path()))

    with pytest.raises(OperationCancelled) as e:
        wizard.run()

    assert e.value.__cause__ is error
    assert wizard.state.kind == WizardState.FAILED
    assert wizard.state.error is error


def test_wizard_fails_without_server_classes(mock_client):
    mock_client.list_server_classes.return_value = []
    wizard = Wizard(mock_client, prompter=ScriptedPrompter(happy_path()))

    with pytest.raises(OperationCancelled) as e:
        wizard.run()

    assert isinstance(e.value.__cause__, WizardInputError)


def test_wizard_minimum_bid_falls_back(mock_client):
    mock_client.get_minimum_bid_price.side_effect = RemoteUnavailable("down")
    prompter = ScriptedPrompter(happy_path(["Spot", 0, "1", DEFAULT]))

    request = Wizard(mock_client, prompter=prompter).run()

    assert request.spot_pools[0].bid_price == "0.001"


def test_render_summary(mock_client):
    wizard = Wizard(mock_client, prompter=ScriptedPrompter(happy_path()))
    wizard.run()
    summary = wizard.render_summary()
    assert "mycloudspace" in summary
    assert "uk-lon-1" in summary
    assert "$0.080" in summary


def test_wizard_state():
    assert WizardState.running(1) == WizardState.running(1)
    assert WizardState.running(1) != WizardState.running(2)
    assert not WizardState.running(0).terminal
    assert WizardState.cancelled().terminal
    assert repr(WizardState.running(3)) == "Running(3)"
    assert repr(WizardState.cancelled()) == "Cancelled"


def test_with_default():
    assert with_default(["a", "b"], "b") == ["a", "b"]
    assert with_default(["a", "b"], "c") == ["c", "a", "b"]
    assert with_default(["a", "b"], None) == ["a", "b"]


@patch("cloudspace_provisioner.wizard.questionary")
def test_terminal_prompter_select(mock_questionary):
    mock_questionary.select.return_value.ask.return_value = "b"

    assert TerminalPrompter().select("pick", ["a", "b", "c"], "c") == "b"
    mock_questionary.select.assert_called_once_with("pick", choices=["a", "b", "c"], default="c")


@patch("cloudspace_provisioner.wizard.questionary")
def test_terminal_prompter_select_ignores_unknown_default(mock_questionary):
    mock_questionary.select.return_value.ask.return_value = "a"

    TerminalPrompter().select("pick", ["a", "b"], "z")

    mock_questionary.select.assert_called_once_with("pick", choices=["a", "b"], default=None)


@pytest.mark.parametrize("prompt", ["select", "text", "confirm"])
@pytest.mark.parametrize("ask", [MagicMock(return_value=None), MagicMock(side_effect=EOFError)])
@patch("cloudspace_provisioner.wizard.questionary")
def test_terminal_prompter_cancel(mock_questionary, ask, prompt):
    getattr(mock_questionary, prompt).return_value.ask = ask
    prompter = TerminalPrompter()
    calls = {
        "select": lambda: prompter.select("pick", ["a", "b"]),
        "text": lambda: prompter.text("name"),
        "confirm": lambda: prompter.confirm("sure?"),
    }

    with pytest.raises(PromptCancelled):
        calls[prompt]()


@patch("cloudspace_provisioner.wizard.questionary")
def test_terminal_prompter_text_and_confirm(mock_questionary):
    mock_questionary.text.return_value.ask.return_value = " value "
    mock_questionary.confirm.return_value.ask.return_value = False
    prompter = TerminalPrompter()

    assert prompter.text("name", None) == "value"
    mock_questionary.text.assert_called_once_with("name", default="")
    assert prompter.confirm("sure?", default=True) is False
    mock_questionary.confirm.assert_called_once_with("sure?", default=True)


@pytest.mark.parametrize("remote_call", ["list_regions", "list_server_classes", "get_minimum_bid_price"])
def test_wizard_keyboard_interrupt_during_remote_call_cancels(mock_client, remote_call):
    getattr(mock_client, remote_call).side_effect = KeyboardInterrupt
    wizard = Wizard(mock_client, prompter=ScriptedPrompter(happy_path()))

    with pytest.raises(OperationCancelled):
        wizard.run()

    assert wizard.state.kind == WizardState.CANCELLED
    mock_client.create_cloudspace.assert_not_called()


def test_wizard_manual_region_must_be_valid(mock_client, capsys):
    mock_client.list_regions.return_value = []
    answers = happy_path()
    answers[0:1] = ["mars-1", "uk-lon-1"]
    prompter = ScriptedPrompter(answers)

    request = Wizard(mock_client, prompter=prompter).run()

    assert request.region == "uk-lon-1"
    assert [call[0] for call in prompter.calls[:2]] == ["text", "text"]
    assert "Region mars-1 is not valid" in capsys.readouterr().out
