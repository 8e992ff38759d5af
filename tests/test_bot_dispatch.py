from decimal import Decimal

from bot_dispatch import (
    COLOR_FAILURE,
    COLOR_INFO,
    COLOR_SUCCESS,
    GENERIC_FAILURE,
    HELP_TEXT,
    NETWORK_INTRO,
    Author,
    Dispatcher,
    Reply,
    ReplyKind,
    format_network_report,
    render_embed,
)
from conftest import make_address, make_peer
from faucet import MSG_NODE_UNREACHABLE

ALICE = Author(id="111", username="alice")


def test_ignores_own_and_empty_messages(ctx):
    d = Dispatcher(ctx)
    assert d.handle_message("help", Author(id="42", username="faucet-bot")) is None
    assert d.handle_message("   ", ALICE) is None


def test_help_and_address(ctx):
    d = Dispatcher(ctx)
    assert d.handle_message("help", ALICE) == Reply(ReplyKind.INFO, "Help", HELP_TEXT)
    reply = d.handle_message("address", ALICE)
    assert reply.text == "Faucet address is: tpc1zfaucetaddress"


def test_reserved_words_are_not_claims(ctx, node, store):
    d = Dispatcher(ctx)
    for word in ("help", "network", "address", "balance"):
        d.handle_message(word, ALICE)
    assert store.count_claims() == 0
    assert "get_peer_info" not in node.calls


def test_balance_reply(ctx, wallet):
    wallet.available = Decimal("1234.5")
    reply = Dispatcher(ctx).handle_message("balance", ALICE)
    assert reply.kind is ReplyKind.INFO
    assert reply.text == "Available faucet balance is 1234.500000 PAC"


def test_balance_failure_reply(ctx, wallet):
    wallet.balance_error = True
    reply = Dispatcher(ctx).handle_message("balance", ALICE)
    assert reply.kind is ReplyKind.FAILURE
    assert reply.text == MSG_NODE_UNREACHABLE


def test_network_report(node):
    report = format_network_report(node)
    assert report.startswith(NETWORK_INTRO)
    assert "Network started at : 14/11/2023, 22:13:20" in report
    assert "Total bytes sent : 1234" in report
    assert "Number of peer nodes: 0" in report
    assert "Block height: 100000" in report
    assert "Total power: 5000 PACs" in report
    assert "Total committee power: 1500 PACs" in report
    assert "Total validators: 42" in report
    assert node.opened == node.closed == 1


def test_network_report_falls_back_to_intro(node):
    node.network_error = True
    assert format_network_report(node) == NETWORK_INTRO


def test_free_text_claim_success(ctx, node):
    address = make_address("validator-1")
    node.peers = [make_peer("peer-1", [address], height=node.height)]

    reply = Dispatcher(ctx).handle_message(address, ALICE)

    assert reply.kind is ReplyKind.SUCCESS
    assert "staked on node successfully" in reply.text
    assert reply.text.endswith("Transaction: abc123")


def test_free_text_claim_rejection(ctx):
    reply = Dispatcher(ctx).handle_message("gimme coins", ALICE)
    assert reply.kind is ReplyKind.FAILURE
    assert "supply the valid address" in reply.text


def test_slash_command_faucet(ctx, node):
    address = make_address("validator-1")
    node.peers = [make_peer("peer-1", [address], height=node.height)]
    d = Dispatcher(ctx)

    assert d.handle_command("faucet", {"address": address}, ALICE).kind is ReplyKind.SUCCESS
    assert d.handle_command("faucet", {}, ALICE).text == HELP_TEXT
    assert d.handle_command("bogus", {}, ALICE).kind is ReplyKind.FAILURE


def test_unexpected_engine_error_gets_generic_reply(ctx, monkeypatch):
    def boom(*args):
        raise RuntimeError("bug")

    monkeypatch.setattr(ctx.engine, "dispense", boom)
    reply = Dispatcher(ctx).handle_message(make_address("validator-1"), ALICE)
    assert reply == Reply(ReplyKind.FAILURE, "Faucet", GENERIC_FAILURE)


def test_render_embed_colors():
    assert render_embed(Reply(ReplyKind.SUCCESS, "a", "b")) == {"title": "a", "description": "b", "color": COLOR_SUCCESS}
    assert render_embed(Reply(ReplyKind.FAILURE, "a", "b"))["color"] == COLOR_FAILURE
    assert render_embed(Reply(ReplyKind.INFO, "a", "b"))["color"] == COLOR_INFO


def test_network_report_with_out_of_range_start_time(node):
    node.started_at = 10**15
    report = format_network_report(node)
    assert report.startswith(NETWORK_INTRO)
    assert "Network started at" not in report
    assert node.opened == node.closed == 1
