"""Tests for boot-once and power operations."""

import pytest
import requests
from unittest.mock import Mock, patch
from bmc_tester.bmc import (
    ComputerSystem,
    RedfishBMC,
    if_match_headers,
    if_none_match_headers,
    select_disable_boot,
    select_pxe_boot,
)
from bmc_tester.client import RedfishClient, RedfishError
from bmc_tester.config import Options


SYSTEM_URI = "/redfish/v1/Systems/System.Embedded.1"
RESET_TARGET = f"{SYSTEM_URI}/Actions/ComputerSystem.Reset"


def system_document(boot_mode=None, power_state="On", allowed=None, uri=SYSTEM_URI):
    boot = {"BootSourceOverrideEnabled": "Disabled", "BootSourceOverrideTarget": "None"}
    if boot_mode:
        boot["BootSourceOverrideMode"] = boot_mode
    reset = {"target": f"{uri}/Actions/ComputerSystem.Reset"}
    if allowed is not None:
        reset["ResetType@Redfish.AllowableValues"] = allowed
    return {
        "@odata.id": uri,
        "PowerState": power_state,
        "Boot": boot,
        "Actions": {"#ComputerSystem.Reset": reset},
    }


def make_bmc(*systems, etag='W/"gen-1"', **option_overrides):
    """RedfishBMC backed by a mock client serving the given system documents."""
    by_uri = {document["@odata.id"]: document for document in systems}
    documents = {
        "/redfish/v1/": {"Systems": {"@odata.id": "/redfish/v1/Systems"}},
        "/redfish/v1/Systems": {"Members": [{"@odata.id": uri} for uri in by_uri]},
    }
    client = Mock()
    client.get.side_effect = lambda path: documents[path]
    client.get_with_etag.side_effect = lambda path: (by_uri[path], etag)

    params = dict(endpoint="https://10.0.0.5", username="root", password="calvin")
    params.update(option_overrides)
    return RedfishBMC(client, Options(**params)), client


@pytest.mark.parametrize(
    "boot_mode,expected",
    [
        ("Legacy", {
            "BootSourceOverrideEnabled": "Once",
            "BootSourceOverrideMode": "UEFI",
            "BootSourceOverrideTarget": "Pxe",
        }),
        (None, {
            "BootSourceOverrideEnabled": "Once",
            "BootSourceOverrideMode": "UEFI",
            "BootSourceOverrideTarget": "Pxe",
        }),
        ("UEFI", {
            "BootSourceOverrideEnabled": "Once",
            "BootSourceOverrideTarget": "Pxe",
        }),
    ],
)
def test_select_pxe_boot(boot_mode, expected):
    system = ComputerSystem.from_document(system_document(boot_mode))

    assert select_pxe_boot(system) == expected


@pytest.mark.parametrize(
    "boot_mode,expected",
    [
        ("Legacy", {
            "BootSourceOverrideEnabled": "Disabled",
            "BootSourceOverrideMode": "UEFI",
        }),
        ("UEFI", {
            "BootSourceOverrideEnabled": "Disabled",
            "BootSourceOverrideTarget": "Pxe",
        }),
    ],
)
def test_select_disable_boot(boot_mode, expected):
    system = ComputerSystem.from_document(system_document(boot_mode))

    assert select_disable_boot(system) == expected


def test_if_none_match_headers_trims_quotes():
    assert if_none_match_headers('"abc123"') == {"If-None-Match": "abc123"}


def test_if_match_headers():
    system = ComputerSystem(odata_id=SYSTEM_URI, etag='W/"1"')
    assert if_match_headers(system) == {"If-Match": 'W/"1"'}

    system.disable_etag_match = True
    assert if_match_headers(system) == {}

    assert if_match_headers(ComputerSystem(odata_id=SYSTEM_URI)) == {}


def test_reset_target_defaults_when_action_missing():
    system = ComputerSystem.from_document({"@odata.id": SYSTEM_URI})

    assert system.reset_target == RESET_TARGET
    assert system.boot == {}


def test_get_systems_applies_options():
    bmc, client = make_bmc(
        system_document(),
        entity_tag='W/"override"',
        disable_etag_match=True,
        uri_suffix="/Settings",
    )

    systems = bmc.get_systems()

    assert len(systems) == 1
    assert systems[0].etag == 'W/"override"'
    assert systems[0].disable_etag_match is True
    assert systems[0].patch_uri == f"{SYSTEM_URI}/Settings"
    client.get_with_etag.assert_called_once_with(SYSTEM_URI)


def test_get_systems_wraps_errors():
    bmc, client = make_bmc(system_document())
    client.get_with_etag.side_effect = RedfishError("HTTP 500", status_code=500)

    with pytest.raises(RedfishError, match="failed to get systems: HTTP 500") as excinfo:
        bmc.get_systems()

    assert excinfo.value.status_code == 500


def test_get_systems_requires_systems_collection():
    bmc, client = make_bmc(system_document())
    client.get.side_effect = lambda path: {}

    with pytest.raises(RedfishError, match="no Systems collection"):
        bmc.get_systems()


def test_set_boot_once_pxe_sends_if_match():
    bmc, client = make_bmc(system_document("Legacy"))

    updated = bmc.set_boot_once_pxe()

    assert updated == [SYSTEM_URI]
    client.patch.assert_called_once_with(
        SYSTEM_URI,
        {"Boot": {
            "BootSourceOverrideEnabled": "Once",
            "BootSourceOverrideMode": "UEFI",
            "BootSourceOverrideTarget": "Pxe",
        }},
        headers={"If-Match": 'W/"gen-1"'},
    )


def test_set_boot_once_pxe_without_etag_match():
    bmc, client = make_bmc(system_document("UEFI"), disable_etag_match=True)

    bmc.set_boot_once_pxe()

    client.patch.assert_called_once_with(
        SYSTEM_URI,
        {"Boot": {"BootSourceOverrideEnabled": "Once", "BootSourceOverrideTarget": "Pxe"}},
        headers=None,
    )


def test_set_boot_once_pxe_with_if_none_match():
    """If-None-Match replaces If-Match and goes to the suffixed URI."""
    bmc, client = make_bmc(
        system_document("UEFI"),
        if_none_match_header='"W/abc"',
        uri_suffix="/Settings",
    )

    bmc.set_boot_once_pxe()

    client.patch.assert_called_once_with(
        f"{SYSTEM_URI}/Settings",
        {"Boot": {"BootSourceOverrideEnabled": "Once", "BootSourceOverrideTarget": "Pxe"}},
        headers={"If-None-Match": "W/abc"},
    )


def test_set_boot_once_pxe_wraps_errors():
    bmc, client = make_bmc(system_document("UEFI"))
    client.patch.side_effect = RedfishError("HTTP 412", status_code=412)

    with pytest.raises(RedfishError, match="failed to set next boot to PXE: HTTP 412") as excinfo:
        bmc.set_boot_once_pxe()

    assert excinfo.value.status_code == 412


def test_disable_boot_once_with_entity_tag():
    bmc, client = make_bmc(system_document("Legacy"), etag=None, entity_tag='"tag-9"')

    bmc.disable_boot_once()

    client.patch.assert_called_once_with(
        SYSTEM_URI,
        {"Boot": {"BootSourceOverrideEnabled": "Disabled", "BootSourceOverrideMode": "UEFI"}},
        headers={"If-Match": '"tag-9"'},
    )


def test_disable_boot_once_wraps_errors():
    bmc, client = make_bmc(system_document("UEFI"))
    client.patch.side_effect = RedfishError("HTTP 400")

    with pytest.raises(RedfishError, match="failed to disable next boot: HTTP 400"):
        bmc.disable_boot_once()


def test_get_boot_once():
    document = system_document("UEFI")
    document["Boot"].update({"BootSourceOverrideEnabled": "Once", "BootSourceOverrideTarget": "Pxe"})
    bmc, client = make_bmc(document)

    assert bmc.get_boot_once() == [{
        "system": SYSTEM_URI,
        "enabled": "Once",
        "target": "Pxe",
        "mode": "UEFI",
    }]
    client.patch.assert_not_called()


def test_power_on_resets_powered_off_system():
    bmc, client = make_bmc(system_document(power_state="Off"))

    assert bmc.power_on() == [SYSTEM_URI]
    client.post.assert_called_once_with(RESET_TARGET, {"ResetType": "On"})


def test_power_on_skips_powered_on_system():
    bmc, client = make_bmc(system_document(power_state="On"))

    assert bmc.power_on() == []
    client.post.assert_not_called()


def test_power_off_forces_off():
    bmc, client = make_bmc(system_document(power_state="On"))

    assert bmc.power_off() == [SYSTEM_URI]
    client.post.assert_called_once_with(RESET_TARGET, {"ResetType": "ForceOff"})


def test_power_off_skips_powered_off_system():
    bmc, client = make_bmc(system_document(power_state="Off"))

    assert bmc.power_off() == []
    client.post.assert_not_called()


def test_power_on_rejects_unsupported_reset_type():
    bmc, client = make_bmc(system_document(power_state="Off", allowed=["ForceOff", "GracefulShutdown"]))

    with pytest.raises(RedfishError, match="failed to reset system to power on state: reset type On"):
        bmc.power_on()

    client.post.assert_not_called()


def test_power_off_wraps_errors():
    bmc, client = make_bmc(system_document(power_state="On"))
    client.post.side_effect = RedfishError("HTTP 409")

    with pytest.raises(RedfishError, match="failed to reset system to power off state: HTTP 409"):
        bmc.power_off()


def test_get_power():
    bmc, _ = make_bmc(system_document(power_state="PoweringOn"))

    assert bmc.get_power() == [{"system": SYSTEM_URI, "power_state": "PoweringOn"}]


@patch("bmc_tester.bmc.RedfishClient")
def test_connect_builds_client_from_options(mock_client_class):
    options = Options(
        endpoint="https://10.0.0.5",
        username="root",
        password="calvin",
        basic_auth=False,
        timeout=10.0,
    )

    bmc = RedfishBMC.connect(options)

    mock_client_class.assert_called_once_with(
        endpoint="https://10.0.0.5",
        username="root",
        password="calvin",
        basic_auth=False,
        verify_ssl=False,
        timeout=10.0,
        host_header=None,
    )
    mock_client_class.return_value.connect.assert_called_once()
    assert bmc.client is mock_client_class.return_value


@patch("bmc_tester.bmc.RedfishClient")
def test_connect_closes_client_on_failure(mock_client_class):
    mock_client_class.return_value.connect.side_effect = RedfishError("unreachable")
    options = Options(endpoint="https://10.0.0.5", username="root", password="calvin")

    with pytest.raises(RedfishError, match="unreachable"):
        RedfishBMC.connect(options)

    mock_client_class.return_value.close.assert_called_once()


def test_logout_closes_client():
    bmc, client = make_bmc(system_document())

    bmc.logout()

    client.logout.assert_called_once()
    client.close.assert_called_once()


SECOND_URI = "/redfish/v1/Systems/System.Embedded.2"


def test_set_boot_once_pxe_with_if_none_match_updates_every_system():
    bmc, client = make_bmc(
        system_document("UEFI"),
        system_document("Legacy", uri=SECOND_URI),
        if_none_match_header='"W/abc"',
    )

    updated = bmc.set_boot_once_pxe()

    assert updated == [SYSTEM_URI, SECOND_URI]
    assert client.patch.call_count == 2
    first, second = client.patch.call_args_list
    assert first[0][0] == SYSTEM_URI
    assert "BootSourceOverrideMode" not in first[0][1]["Boot"]
    assert second[0][0] == SECOND_URI
    assert second[0][1]["Boot"]["BootSourceOverrideMode"] == "UEFI"
    assert first[1]["headers"] == second[1]["headers"] == {"If-None-Match": "W/abc"}


def test_power_on_resets_only_systems_that_are_off():
    bmc, client = make_bmc(
        system_document(power_state="On"),
        system_document(power_state="Off", uri=SECOND_URI),
    )

    assert bmc.power_on() == [SECOND_URI]
    client.post.assert_called_once_with(
        f"{SECOND_URI}/Actions/ComputerSystem.Reset", {"ResetType": "On"}
    )


def test_get_power_reports_every_system():
    bmc, _ = make_bmc(
        system_document(power_state="On"),
        system_document(power_state="Off", uri=SECOND_URI),
    )

    assert [entry["power_state"] for entry in bmc.get_power()] == ["On", "Off"]


def test_get_systems_rejects_member_without_odata_id():
    bmc, client = make_bmc(system_document())
    client.get.side_effect = lambda path: {
        "/redfish/v1/": {"Systems": {"@odata.id": "/redfish/v1/Systems"}},
        "/redfish/v1/Systems": {"Members": [{"Name": "broken"}]},
    }[path]

    with pytest.raises(RedfishError, match="failed to get systems: Systems member without @odata.id"):
        bmc.get_systems()

    client.get_with_etag.assert_not_called()


def test_get_systems_warns_when_collection_is_empty(caplog):
    bmc, client = make_bmc()

    with caplog.at_level("WARNING", logger="bmc_tester.bmc"):
        assert bmc.get_systems() == []

    assert "No systems found in /redfish/v1/Systems" in caplog.text
    client.get_with_etag.assert_not_called()


def test_get_systems_wraps_invalid_json():
    """A non-JSON system body surfaces as a wrapped RedfishError."""
    response = requests.Response()
    response.status_code = 200
    response._content = b"<html>login</html>"

    client = RedfishClient(endpoint="https://10.0.0.5", username="root", password="calvin")
    options = Options(endpoint="https://10.0.0.5", username="root", password="calvin")
    bmc = RedfishBMC(client, options)

    with patch.object(client.session, "request", return_value=response):
        with pytest.raises(RedfishError, match="failed to get systems: GET /redfish/v1/ returned invalid JSON"):
            bmc.get_systems()
