"""Boot-once and power operations against a BMC's computer systems."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .client import RedfishClient, RedfishError, SERVICE_ROOT
from .config import Options


logger = logging.getLogger(__name__)

UEFI_BOOT_MODE = "UEFI"
POWER_ON = "On"
POWER_OFF = "Off"
RESET_ON = "On"
RESET_FORCE_OFF = "ForceOff"

PXE_BOOT_WITH_UEFI_MODE = {
    "BootSourceOverrideEnabled": "Once",
    "BootSourceOverrideMode": UEFI_BOOT_MODE,
    "BootSourceOverrideTarget": "Pxe",
}
PXE_BOOT_WITHOUT_UEFI_MODE = {
    "BootSourceOverrideEnabled": "Once",
    "BootSourceOverrideTarget": "Pxe",
}
DISABLE_BOOT_WITH_UEFI_MODE = {
    "BootSourceOverrideEnabled": "Disabled",
    "BootSourceOverrideMode": UEFI_BOOT_MODE,
}
DISABLE_BOOT_WITHOUT_UEFI_MODE = {
    "BootSourceOverrideEnabled": "Disabled",
    "BootSourceOverrideTarget": "Pxe",
}


@dataclass
class ComputerSystem:
    """The parts of a Redfish ComputerSystem this tool reads or changes."""

    odata_id: str
    power_state: Optional[str] = None
    boot: Dict[str, Any] = field(default_factory=dict)
    reset_target: str = ""
    allowed_reset_types: List[str] = field(default_factory=list)
    etag: Optional[str] = None
    disable_etag_match: bool = False
    uri_suffix: str = ""

    @classmethod
    def from_document(cls, data: Dict[str, Any], etag: Optional[str] = None) -> "ComputerSystem":
        """Build a system from its Redfish JSON document."""
        odata_id = data["@odata.id"]
        reset_action = data.get("Actions", {}).get("#ComputerSystem.Reset", {})
        return cls(
            odata_id=odata_id,
            power_state=data.get("PowerState"),
            boot=data.get("Boot") or {},
            reset_target=reset_action.get("target") or f"{odata_id}/Actions/ComputerSystem.Reset",
            allowed_reset_types=reset_action.get("ResetType@Redfish.AllowableValues") or [],
            etag=etag,
        )

    @property
    def patch_uri(self) -> str:
        """URI that boot updates are sent to."""
        return f"{self.odata_id}{self.uri_suffix}"

    @property
    def is_uefi(self) -> bool:
        return self.boot.get("BootSourceOverrideMode") == UEFI_BOOT_MODE


def select_pxe_boot(system: ComputerSystem) -> Dict[str, str]:
    """Boot override that PXE boots once, forcing UEFI mode when it isn't set."""
    if system.is_uefi:
        return dict(PXE_BOOT_WITHOUT_UEFI_MODE)
    return dict(PXE_BOOT_WITH_UEFI_MODE)


def select_disable_boot(system: ComputerSystem) -> Dict[str, str]:
    """Boot override that clears a pending boot-once."""
    if system.is_uefi:
        return dict(DISABLE_BOOT_WITHOUT_UEFI_MODE)
    return dict(DISABLE_BOOT_WITH_UEFI_MODE)


def if_none_match_headers(value: str) -> Dict[str, str]:
    """Conditional headers for an explicit If-None-Match value."""
    return {"If-None-Match": value.strip('"')}


def if_match_headers(system: ComputerSystem) -> Dict[str, str]:
    """Conditional headers derived from the system's entity tag."""
    if system.etag and not system.disable_etag_match:
        return {"If-Match": system.etag}
    return {}


class RedfishBMC:
    """Runs the tool's operations against every system a BMC exposes."""

    def __init__(self, client: RedfishClient, options: Options) -> None:
        self.client = client
        self.options = options

    @classmethod
    def connect(cls, options: Options) -> "RedfishBMC":
        """
        Create a client for the endpoint in options and connect it.

        Raises:
            RedfishError: If the service root can't be read or login fails
        """
        client = RedfishClient(
            endpoint=options.endpoint,
            username=options.username,
            password=options.password,
            basic_auth=options.basic_auth,
            verify_ssl=options.verify_ssl,
            timeout=options.timeout,
            host_header=options.host_header,
        )
        try:
            client.connect()
        except RedfishError:
            client.close()
            raise
        return cls(client, options)

    def get_systems(self) -> List[ComputerSystem]:
        """
        Read every member of the Systems collection.

        Entity tag, etag matching and URI suffix from the options are
        applied to each system.

        Raises:
            RedfishError: If the collection or a member can't be read
        """
        try:
            service_root = self.client.get(SERVICE_ROOT)
            systems_path = service_root.get("Systems", {}).get("@odata.id")
            if not systems_path:
                raise RedfishError("service root has no Systems collection")

            collection = self.client.get(systems_path)
            systems = []
            for member in collection.get("Members", []):
                member_path = member.get("@odata.id")
                if not member_path:
                    raise RedfishError(f"Systems member without @odata.id: {member}")
                data, etag = self.client.get_with_etag(member_path)
                data.setdefault("@odata.id", member_path)
                systems.append(ComputerSystem.from_document(data, etag))
        except RedfishError as e:
            raise RedfishError(f"failed to get systems: {e}", status_code=e.status_code) from e

        if not systems:
            logger.warning(f"No systems found in {systems_path}")

        for system in systems:
            if self.options.entity_tag:
                system.etag = self.options.entity_tag
            system.disable_etag_match = self.options.disable_etag_match
            system.uri_suffix = self.options.uri_suffix
            logger.info(f"System URI: {system.patch_uri}")

        return systems

    def _set_boot(self, system: ComputerSystem, boot: Dict[str, str]) -> None:
        if self.options.if_none_match_header:
            headers = if_none_match_headers(self.options.if_none_match_header)
            logger.info(f"Headers: {headers}")
        else:
            headers = if_match_headers(system)
        self.client.patch(system.patch_uri, {"Boot": boot}, headers=headers or None)

    def set_boot_once_pxe(self) -> List[str]:
        """
        Set every system to PXE boot on its next boot only.

        Returns:
            URIs of the systems that were updated
        """
        updated = []
        for system in self.get_systems():
            try:
                self._set_boot(system, select_pxe_boot(system))
            except RedfishError as e:
                raise RedfishError(
                    f"failed to set next boot to PXE: {e}", status_code=e.status_code
                ) from e
            updated.append(system.patch_uri)
        return updated

    def disable_boot_once(self) -> List[str]:
        """
        Clear any pending boot-once override on every system.

        Returns:
            URIs of the systems that were updated
        """
        updated = []
        for system in self.get_systems():
            try:
                self._set_boot(system, select_disable_boot(system))
            except RedfishError as e:
                raise RedfishError(
                    f"failed to disable next boot: {e}", status_code=e.status_code
                ) from e
            updated.append(system.patch_uri)
        return updated

    def get_boot_once(self) -> List[Dict[str, Any]]:
        """Current boot override settings, one entry per system."""
        return [
            {
                "system": system.odata_id,
                "enabled": system.boot.get("BootSourceOverrideEnabled"),
                "target": system.boot.get("BootSourceOverrideTarget"),
                "mode": system.boot.get("BootSourceOverrideMode"),
            }
            for system in self.get_systems()
        ]

    def _reset(self, system: ComputerSystem, reset_type: str) -> None:
        if system.allowed_reset_types and reset_type not in system.allowed_reset_types:
            raise RedfishError(
                f"reset type {reset_type} is not supported by {system.odata_id} "
                f"(allowed: {', '.join(system.allowed_reset_types)})"
            )
        self.client.post(system.reset_target, {"ResetType": reset_type})

    def power_on(self) -> List[str]:
        """
        Power on every system that isn't already on.

        Returns:
            URIs of the systems that were reset
        """
        reset = []
        for system in self.get_systems():
            if system.power_state == POWER_ON:
                logger.info(f"{system.odata_id} is already powered on")
                continue
            try:
                self._reset(system, RESET_ON)
            except RedfishError as e:
                raise RedfishError(
                    f"failed to reset system to power on state: {e}", status_code=e.status_code
                ) from e
            reset.append(system.odata_id)
        return reset

    def power_off(self) -> List[str]:
        """
        Force off every system that isn't already off.

        Returns:
            URIs of the systems that were reset
        """
        reset = []
        for system in self.get_systems():
            if system.power_state == POWER_OFF:
                logger.info(f"{system.odata_id} is already powered off")
                continue
            try:
                self._reset(system, RESET_FORCE_OFF)
            except RedfishError as e:
                raise RedfishError(
                    f"failed to reset system to power off state: {e}", status_code=e.status_code
                ) from e
            reset.append(system.odata_id)
        return reset

    def get_power(self) -> List[Dict[str, Any]]:
        """Current power state, one entry per system."""
        return [
            {"system": system.odata_id, "power_state": system.power_state}
            for system in self.get_systems()
        ]

    def logout(self) -> None:
        """Log out and release the HTTP session."""
        self.client.logout()
        self.client.close()
