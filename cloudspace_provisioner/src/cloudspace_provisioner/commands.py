#!/usr/bin/env python

import json
import logging
import logging.config
import signal
import sys
from argparse import ArgumentParser
from pathlib import Path
from typing import Optional

import yaml

from cloudspace_provisioner.acquirer import (
    AcquireOptions,
    ConfigFileError,
    ConflictingSource,
    UnknownParameter,
    acquire,
)
from cloudspace_provisioner.cancellation import CancellationToken, OperationCancelled
from cloudspace_provisioner.config import ConfigNotFound, load_config
from cloudspace_provisioner.constants import EXIT_CANCELLED, EXIT_FAILURE
from cloudspace_provisioner.logging_config import LOGGER_NAME, LOGGING_CONFIG
from cloudspace_provisioner.request import RequestJSONEncoder
from cloudspace_provisioner.saga import ProvisioningSaga, ResourceCreationError
from cloudspace_provisioner.spot_client import SpotAPIError, SpotClient
from cloudspace_provisioner.validator import ValidationError, validate
from cloudspace_provisioner.wizard import PromptCancelled, TerminalPrompter

logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger(LOGGER_NAME)

OUTPUT_FORMATS = ["json", "yaml"]


def render(out, output_format: str = "json") -> str:
    if output_format == "yaml":
        # round-trip through json so request objects become plain data
        plain = json.loads(json.dumps(out, cls=RequestJSONEncoder))
        return yaml.safe_dump(plain, sort_keys=False, default_flow_style=False)
    return json.dumps(out, indent=2, cls=RequestJSONEncoder)


def install_signal_handlers(cancellation: CancellationToken):
    """
    Route SIGINT / SIGTERM to the cancellation token.
    Returns a callable that restores the previous handlers.
    """

    def handler(signum, _frame):
        logger.warning(
            f"Received {signal.Signals(signum).name}, cancelling after the current call completes"
        )
        cancellation.cancel()

    previous = {
        signal.SIGINT: signal.signal(signal.SIGINT, handler),
        signal.SIGTERM: signal.signal(signal.SIGTERM, handler),
    }

    def restore():
        for signum, previous_handler in previous.items():
            signal.signal(signum, previous_handler)

    return restore


def _organization(args, cli_config) -> str:
    org = getattr(args, "organization", None) or cli_config.org
    if not org:
        raise ValidationError(
            "organization", "organization is required (use --org or set org in the CLI config)"
        )
    return org


def create_cloudspace(args, client, cli_config, prompter=None):
    cancellation = CancellationToken()
    options = AcquireOptions.from_args(args)
    request = acquire(
        options,
        client=client,
        cli_config=cli_config,
        prompter=prompter,
        cancellation=cancellation,
    )
    validate(request)

    restore = install_signal_handlers(cancellation)
    try:
        print(f"Creating cloudspace {request.name}...", file=sys.stderr)
        cloudspace = ProvisioningSaga(client, cancellation).run(request)
    finally:
        restore()
    return {"cloudspace": cloudspace, "request": request}


def list_cloudspaces(args, client, cli_config, prompter=None):
    return client.list_cloudspaces(_organization(args, cli_config))


def get_cloudspace(args, client, cli_config, prompter=None):
    return client.get_cloudspace(_organization(args, cli_config), args.name)


def delete_cloudspace(args, client, cli_config, prompter=None):
    org = _organization(args, cli_config)
    if not args.yes:
        prompter = prompter or TerminalPrompter()
        try:
            confirmed = prompter.confirm(f"Delete cloudspace {args.name} in {org}?", False)
        except PromptCancelled:
            confirmed = False
        if not confirmed:
            raise OperationCancelled("deletion cancelled")
    client.delete_cloudspace(org, args.name)
    return {"deleted": args.name, "org": org}


def kubeconfig_path(name: str, directory: Optional[str] = None) -> Path:
    if directory:
        return Path(directory) / f"{name}.yaml"
    return Path.home() / ".kube" / f"{name}.yaml"


def get_cloudspace_config(args, client, cli_config, prompter=None):
    org = _organization(args, cli_config)
    kubeconfig = client.get_cloudspace_config(org, args.name)
    path = kubeconfig_path(args.name, args.file)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(kubeconfig)
    print(f"Config has been saved to {path} successfully", file=sys.stderr)
    return {"cloudspace": args.name, "org": org, "kubeconfig": str(path)}


def build_parser() -> ArgumentParser:
    parser = ArgumentParser("cloudspace-provisioner")
    parser.add_argument(
        "--output", "-o", choices=OUTPUT_FORMATS, default="json", help="output format"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="enable debug logging")
    parser.add_argument("--spot-config", dest="spot_config", default=None, help="path to the CLI config")
    subparsers = parser.add_subparsers(dest="resource", required=True)

    parser_cloudspaces = subparsers.add_parser("cloudspaces", help="manage cloudspaces")
    cloudspace_commands = parser_cloudspaces.add_subparsers(dest="command", required=True)

    parser_create = cloudspace_commands.add_parser(
        "create",
        help="create a cloudspace with node pools; without flags an interactive prompt is started",
    )
    parser_create.set_defaults(func=create_cloudspace)
    parser_create.add_argument("--config", dest="config_path", default=None, help="YAML or JSON file")
    parser_create.add_argument("--name", default=None, help="cloudspace name")
    parser_create.add_argument("--org", dest="organization", default=None, help="organization")
    parser_create.add_argument("--region", default=None, help="region")
    parser_create.add_argument("--kubernetes-version", default=None, help="Kubernetes version")
    parser_create.add_argument("--cni", default=None, help="CNI plugin")
    parser_create.add_argument(
        "--preemption-webhook-url", default=None, help="webhook called on spot preemption"
    )
    parser_create.add_argument(
        "--spot-nodepool",
        dest="spot_nodepools",
        action="append",
        default=None,
        help="spot pool: desired=1,serverclass=gp.vs1.medium-ord,bidprice=0.08 (repeatable)",
    )
    parser_create.add_argument(
        "--ondemand-nodepool",
        dest="ondemand_nodepools",
        action="append",
        default=None,
        help="on-demand pool: desired=1,serverclass=gp.vs1.medium-ord (repeatable)",
    )

    parser_list = cloudspace_commands.add_parser("list", help="list cloudspaces")
    parser_list.set_defaults(func=list_cloudspaces)
    parser_list.add_argument("--org", dest="organization", default=None, help="organization")

    parser_get = cloudspace_commands.add_parser("get", help="describe a cloudspace")
    parser_get.set_defaults(func=get_cloudspace)
    parser_get.add_argument("--name", required=True, help="cloudspace name")
    parser_get.add_argument("--org", dest="organization", default=None, help="organization")

    parser_get_config = cloudspace_commands.add_parser(
        "get-config", help="write the kubeconfig of a cloudspace to a file"
    )
    parser_get_config.set_defaults(func=get_cloudspace_config)
    parser_get_config.add_argument("--name", required=True, help="cloudspace name")
    parser_get_config.add_argument("--org", dest="organization", default=None, help="organization")
    parser_get_config.add_argument(
        "--file", default=None, help="directory to write <name>.yaml to (default: ~/.kube)"
    )

    parser_delete = cloudspace_commands.add_parser("delete", help="delete a cloudspace")
    parser_delete.set_defaults(func=delete_cloudspace)
    parser_delete.add_argument("--name", required=True, help="cloudspace name")
    parser_delete.add_argument("--org", dest="organization", default=None, help="organization")
    parser_delete.add_argument("--yes", "-y", action="store_true", help="skip confirmation")

    return parser


def _print_rollback_warnings(warnings) -> None:
    for warning in warnings:
        print(f"Warning: {warning} - delete it manually", file=sys.stderr)


def cloudspace_provisioner(argv=None, client=None, prompter=None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        logger.setLevel(logging.DEBUG)
    logger.debug(f"args: {args}")

    try:
        cli_config = load_config(args.spot_config)
        if client is None:
            client = SpotClient(cli_config.access_token)
        out = args.func(args, client, cli_config, prompter=prompter)
    except OperationCancelled as e:
        print(f"Cancelled: {e}", file=sys.stderr)
        _print_rollback_warnings(e.rollback_warnings)
        return EXIT_CANCELLED
    except ResourceCreationError as e:
        print(f"Error: {e}", file=sys.stderr)
        _print_rollback_warnings(e.rollback_warnings)
        return EXIT_FAILURE
    except (
        ConflictingSource,
        UnknownParameter,
        ConfigFileError,
        ConfigNotFound,
        ValidationError,
        SpotAPIError,
        ValueError,
        OSError,
    ) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE

    print(render(out, args.output))
    return 0


if __name__ == "__main__":
    sys.exit(cloudspace_provisioner())
