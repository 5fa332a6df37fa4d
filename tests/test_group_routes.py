"""Tests for group, community and channel routes."""

from conftest import PHONE

from Connexa.whatsapp_session.errors import GatewayError

GROUP = "120363000000000001@g.us"


def body(**fields):
    return {"phone": PHONE, **fields}


def socket_calls(gateway, method):
    return [c.args[2:] for c in gateway.call.call_args_list if c.args[1] == method]


# ── Groups ──────────────────────────────────────────────────────────


def test_list_groups_with_pictures(client, gateway, connected):
    def call(phone, method, *args):
        if method == "groupFetchAllParticipating":
            return {
                GROUP: {"id": GROUP, "subject": "Family", "participants": [{"id": "1@s.whatsapp.net"}]},
                "2@g.us": {"id": "2@g.us", "subject": "Work", "size": 40},
            }
        if args[0] == GROUP:
            return "https://pps.whatsapp.net/family.jpg"
        raise GatewayError("item-not-found", status_code=404)

    gateway.call.side_effect = call

    data = client.get(f"/api/groups/{PHONE}").get_json()

    groups = {g["id"]: g for g in data["groups"]}
    assert groups[GROUP]["profilePicUrl"] == "https://pps.whatsapp.net/family.jpg"
    assert groups[GROUP]["size"] == 1
    assert groups["2@g.us"]["profilePicUrl"] is None
    assert groups["2@g.us"]["size"] == 40


def test_create_group(client, gateway, connected):
    gateway.call.return_value = {"id": GROUP, "subject": "Trip"}

    data = client.post("/api/groups/action", json=body(action="create", name="Trip",
                                                       participants=["254711111111"])).get_json()

    assert data == {"success": True, "group": {"id": GROUP, "subject": "Trip"}}
    assert socket_calls(gateway, "groupCreate") == [("Trip", ["254711111111@s.whatsapp.net"])]


def test_participant_actions(client, gateway, connected):
    client.post("/api/groups/action", json=body(action="promote", groupId=GROUP, participants=["254711111111"]))

    assert socket_calls(gateway, "groupParticipantsUpdate") == [
        (GROUP, ["254711111111@s.whatsapp.net"], "promote")]


def test_update_settings_validates_value(client, gateway, connected):
    response = client.post("/api/groups/action", json=body(action="updateSettings", groupId=GROUP, setting="closed"))
    assert response.status_code == 400

    client.post("/api/groups/action", json=body(action="updateSettings", groupId=GROUP, setting="announcement"))
    assert socket_calls(gateway, "groupSettingUpdate") == [(GROUP, "announcement")]


def test_invite_code(client, gateway, connected):
    gateway.call.return_value = "AbCdEf"
    assert client.post("/api/groups/action", json=body(action="getInviteCode", groupId=GROUP)).get_json() == {
        "code": "AbCdEf"}


def test_accept_invite_needs_no_group(client, gateway, connected):
    gateway.call.return_value = GROUP
    data = client.post("/api/groups/action", json=body(action="acceptInvite", inviteCode="AbCdEf")).get_json()
    assert data == {"result": GROUP}


def test_group_id_required(client, connected):
    response = client.post("/api/groups/action", json=body(action="leave"))
    assert response.get_json() == {"error": "Missing field: groupId"}


def test_invalid_group_action(client, connected):
    response = client.post("/api/groups/action", json=body(action="explode", groupId=GROUP))
    assert response.status_code == 400
    assert response.get_json() == {"error": "Invalid group action"}


def test_group_action_failure(client, gateway, connected):
    gateway.call.side_effect = GatewayError("forbidden", status_code=403)

    response = client.post("/api/groups/action", json=body(action="leave", groupId=GROUP))

    assert response.status_code == 500
    assert response.get_json() == {"error": "forbidden"}


# ── Channels and communities ────────────────────────────────────────


def test_follow_channel_appends_suffix(client, gateway, connected):
    assert client.post("/api/channels/follow", json=body(channelJid="1200")).get_json() == {"success": True}
    assert socket_calls(gateway, "newsletterFollow") == [("1200@newsletter",)]


def test_channel_metadata(client, gateway, connected):
    gateway.call.return_value = {"id": "1200@newsletter", "name": "News"}

    data = client.get(f"/api/channels/metadata/{PHONE}/1200@newsletter").get_json()

    assert data["metadata"]["name"] == "News"
    assert socket_calls(gateway, "newsletterMetadata") == [("jid", "1200@newsletter")]


def test_unmute_channel(client, gateway, connected):
    client.post("/api/channels/mute", json=body(channelJid="1200", mute=False))
    assert socket_calls(gateway, "newsletterUnmute") == [("1200@newsletter",)]


def test_communities_group_linked_chats(client, gateway, connected):
    gateway.call.return_value = {
        "10@g.us": {"id": "10@g.us", "subject": "School", "isCommunity": True},
        "11@g.us": {"id": "11@g.us", "subject": "Parents", "linkedParent": "10@g.us"},
        "12@g.us": {"id": "12@g.us", "subject": "Alone"},
    }

    data = client.get(f"/api/channels/communities/{PHONE}").get_json()

    assert len(data["communities"]) == 1
    community = data["communities"][0]
    assert community["id"] == "10@g.us"
    assert community["linkedGroups"] == [{"id": "11@g.us", "subject": "Parents"}]
