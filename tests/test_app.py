import json

import nacl.signing
import pytest
from fastapi.testclient import TestClient

import app as app_module
from app import create_app
from conftest import make_address, make_peer


class FakeResponse:
    status_code = 200
    text = ""


@pytest.fixture
def signing_key():
    return nacl.signing.SigningKey.generate()


@pytest.fixture
def client(ctx, signing_key):
    ctx.settings.discord_public_key = signing_key.verify_key.encode().hex()
    ctx.settings.admin_token = "admin-secret"
    with TestClient(create_app(ctx)) as c:
        yield c


@pytest.fixture
def followups(monkeypatch):
    sent = []

    def fake_patch(url, json=None, timeout=None):
        sent.append((url, json))
        return FakeResponse()

    monkeypatch.setattr(app_module.requests, "patch", fake_patch)
    return sent


def post_signed(client, key, payload, timestamp="1700000000"):
    body = json.dumps(payload).encode()
    signature = key.sign(timestamp.encode() + body).signature.hex()
    return client.post(
        "/interactions",
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-Signature-Ed25519": signature,
            "X-Signature-Timestamp": timestamp,
        },
    )


def command(name, **options):
    return {
        "id": "1",
        "application_id": "42",
        "type": 2,
        "token": "tok",
        "data": {"name": name, "options": [{"name": k, "type": 3, "value": v} for k, v in options.items()]},
        "member": {"user": {"id": "111", "username": "alice"}},
    }


def test_ping(client, signing_key):
    r = post_signed(client, signing_key, {"type": 1})
    assert r.status_code == 200
    assert r.json() == {"type": 1}


def test_bad_signature_is_rejected(client):
    other = nacl.signing.SigningKey.generate()
    assert post_signed(client, other, {"type": 1}).status_code == 401
    assert client.post("/interactions", json={"type": 1}).status_code == 401


def test_help_is_answered_inline(client, signing_key, followups):
    r = post_signed(client, signing_key, command("help"))
    assert r.status_code == 200
    body = r.json()
    assert body["type"] == 4
    assert "wallet address" in body["data"]["embeds"][0]["description"]
    assert followups == []


def test_faucet_command_is_deferred_then_followed_up(client, signing_key, followups, node, store):
    address = make_address("validator-1")
    node.peers = [make_peer("peer-1", [address], height=node.height)]

    r = post_signed(client, signing_key, command("faucet", address=address))

    assert r.json() == {"type": 5}
    url, payload = followups[0]
    assert url == "https://discord.com/api/v10/webhooks/42/tok/messages/@original"
    assert "Transaction: abc123" in payload["embeds"][0]["description"]
    assert store.count_claims() == 1


def test_claims_requires_admin_token(client, signing_key, node, followups):
    address = make_address("validator-1")
    node.peers = [make_peer("peer-1", [address], height=node.height)]
    post_signed(client, signing_key, command("faucet", address=address))

    assert client.get("/claims").status_code == 401
    r = client.get("/claims", headers={"X-Admin-Token": "admin-secret"})
    assert r.status_code == 200
    [claim] = r.json()
    assert claim["validator_address"] == address
    assert claim["user_id"] == "111"
    assert claim["tx_hash"] == "abc123"


def test_claims_disabled_without_admin_token(ctx, signing_key):
    ctx.settings.discord_public_key = signing_key.verify_key.encode().hex()
    with TestClient(create_app(ctx)) as c:
        assert c.get("/claims", headers={"X-Admin-Token": ""}).status_code == 403


def test_healthz(client):
    body = client.get("/healthz").json()
    assert body["ok"] is True
    assert body["claims"] == 0


def test_deferred_command_always_gets_a_followup(client, signing_key, followups, monkeypatch):
    from bot_dispatch import GENERIC_FAILURE, Dispatcher

    def boom(self, name, options, author):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(Dispatcher, "handle_command", boom)

    r = post_signed(client, signing_key, command("network"))

    assert r.json() == {"type": 5}
    [(url, payload)] = followups
    assert url.endswith("/webhooks/42/tok/messages/@original")
    assert payload["embeds"][0]["description"] == GENERIC_FAILURE


def test_network_command_with_bad_start_time_still_replies(client, signing_key, followups, node):
    node.started_at = 10**15
    post_signed(client, signing_key, command("network"))
    [(_, payload)] = followups
    assert payload["embeds"][0]["description"].startswith("Pactus is truly decentralised")
