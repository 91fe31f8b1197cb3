"""CLI interface for exercising a BMC's Redfish boot and power controls."""

import logging
import sys
from typing import Any, Callable, Dict, Optional

import click

from . import __version__
from .bmc import RedfishBMC
from .config import Options
from .output import format_boot_output, format_power_output
from .tunnel import SSHTunnel


logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(message)s"
LOG_DATE_FORMAT = "%Y/%m/%d %H:%M:%S"

BMC_OPTIONS = [
    click.option(
        "--username",
        "-u",
        required=True,
        envvar="BMC_USERNAME",
        help="BMC username",
    ),
    click.option(
        "--password",
        "-p",
        required=True,
        envvar="BMC_PASSWORD",
        help="BMC password",
    ),
    click.option(
        "--endpoint",
        "-e",
        required=True,
        envvar="BMC_ENDPOINT",
        help="BMC endpoint, e.g. https://10.0.0.5",
    ),
    click.option(
        "--uri-suffix",
        "-s",
        default="",
        help="Suffix appended to each system URI when updating it",
    ),
    click.option(
        "--entity-tag",
        "-t",
        default="",
        help="BMC entity tag (etag) to send in If-Match",
    ),
    click.option(
        "--if-none-match-header",
        "-i",
        default="",
        help="Send this value as the If-None-Match header instead of If-Match",
    ),
    click.option(
        "--disable-etag-match",
        "-d",
        is_flag=True,
        help="Disable etag match (no If-Match header)",
    ),
    click.option(
        "--session-auth",
        is_flag=True,
        help="Log in with a Redfish session instead of HTTP basic auth",
    ),
    click.option(
        "--verify-ssl/--no-verify-ssl",
        default=False,
        help="Verify the BMC's SSL certificate (default: no)",
    ),
    click.option(
        "--timeout",
        type=float,
        default=30.0,
        help="Per-request timeout in seconds (default: 30)",
    ),
    click.option(
        "--jumphost",
        envvar="BMC_JUMPHOST",
        help="SSH jumphost to tunnel through (optional)",
    ),
    click.option(
        "--jumphost-user",
        envvar="BMC_JUMPHOST_USER",
        help="SSH username for jumphost (defaults to current user)",
    ),
    click.option(
        "--ssh-key",
        envvar="BMC_JUMPHOST_SSH_KEY",
        help="Path to SSH private key for jumphost (uses SSH agent/default keys if not specified)",
    ),
    click.option(
        "--ssh-password",
        envvar="BMC_JUMPHOST_SSH_PASSWORD",
        help="SSH password for jumphost (only needed if not using SSH keys)",
    ),
    click.option(
        "--quiet",
        "-q",
        is_flag=True,
        help="Suppress progress messages (errors and results still shown)",
    ),
]

FORMAT_OPTION = click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default="text",
    help="Output format",
)


def bmc_options(func: Callable) -> Callable:
    """Attach the connection options shared by every leaf command."""
    for option in reversed(BMC_OPTIONS):
        func = option(func)
    return func


def configure_logging(quiet: bool) -> None:
    """Send progress logging to stderr."""
    logging.basicConfig(
        level=logging.WARNING if quiet else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=sys.stderr,
        force=True,
    )


def build_options(params: Dict[str, Any]) -> Options:
    """Collect CLI parameters into connection options."""
    return Options(
        endpoint=params["endpoint"],
        username=params["username"],
        password=params["password"],
        basic_auth=not params["session_auth"],
        uri_suffix=params["uri_suffix"],
        entity_tag=params["entity_tag"],
        disable_etag_match=params["disable_etag_match"],
        if_none_match_header=params["if_none_match_header"],
        verify_ssl=params["verify_ssl"],
        timeout=params["timeout"],
    )


def open_tunnel(params: Dict[str, Any], options: Options) -> Optional[SSHTunnel]:
    """Start an SSH tunnel to the BMC when a jumphost was given."""
    if not params.get("jumphost"):
        return None

    tunnel = SSHTunnel(
        jumphost=params["jumphost"],
        endpoint=options.endpoint,
        jumphost_username=params.get("jumphost_user"),
        ssh_key_path=params.get("ssh_key"),
        ssh_password=params.get("ssh_password"),
    )
    tunnel.start()
    return tunnel


def run_command(
    params: Dict[str, Any],
    message: str,
    operation: Callable[[RedfishBMC], Any],
    formatter: Optional[Callable[..., str]] = None,
    output_format: str = "text",
) -> None:
    """
    Connect to the BMC, run one operation, print its result and log out.

    Args:
        params: Parsed CLI parameters (see BMC_OPTIONS)
        message: Progress line logged before connecting
        operation: Called with the connected RedfishBMC
        formatter: Turns the operation's result into output text, if any
        output_format: 'text' or 'json', passed to the formatter
    """
    configure_logging(params["quiet"])
    logger.info(message)

    tunnel = None
    bmc = None
    try:
        options = build_options(params)
        tunnel = open_tunnel(params, options)
        if tunnel:
            options = tunnel.route(options)

        bmc = RedfishBMC.connect(options)
        result = operation(bmc)

        if formatter:
            click.echo(formatter(result, format=output_format))
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        if bmc:
            bmc.logout()
        if tunnel:
            tunnel.stop()


@click.group()
@click.version_option(version=__version__, prog_name="bmc-tester")
def main() -> None:
    """Query and change power state and boot-once settings through a BMC."""


@main.group("boot-once")
def boot_once() -> None:
    """Set/Disable boot once."""


@boot_once.command("PXE")
@bmc_options
def boot_once_pxe(**params: Any) -> None:
    """Set boot once to PXE."""
    run_command(params, "Setting boot once to PXE...", lambda bmc: bmc.set_boot_once_pxe())


@boot_once.command("disable")
@bmc_options
def boot_once_disable(**params: Any) -> None:
    """Disable boot once."""
    run_command(params, "Disable boot once...", lambda bmc: bmc.disable_boot_once())


@boot_once.command("get")
@bmc_options
@FORMAT_OPTION
def boot_once_get(output_format: str, **params: Any) -> None:
    """Get boot once."""
    run_command(
        params,
        "Getting boot once...",
        lambda bmc: bmc.get_boot_once(),
        formatter=format_boot_output,
        output_format=output_format,
    )


@main.group()
def power() -> None:
    """Power on/off."""


@power.command("on")
@bmc_options
def power_on(**params: Any) -> None:
    """Set power on."""
    run_command(params, "Setting power on...", lambda bmc: bmc.power_on())


@power.command("off")
@bmc_options
def power_off(**params: Any) -> None:
    """Set power off."""
    run_command(params, "Setting power off...", lambda bmc: bmc.power_off())


@power.command("get")
@bmc_options
@FORMAT_OPTION
def power_get(output_format: str, **params: Any) -> None:
    """Get power."""
    run_command(
        params,
        "Getting power...",
        lambda bmc: bmc.get_power(),
        formatter=format_power_output,
        output_format=output_format,
    )


if __name__ == "__main__":
    main()
