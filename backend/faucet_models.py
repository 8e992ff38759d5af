# faucet_models.py
from pydantic import BaseModel, Field
from typing import Any, List, Optional


# Node JSON-RPC results (field names follow the node's protobuf names)
class PeerInfoOut(BaseModel):
    peer_id: str = ""
    moniker: str = ""
    height: int
    consensus_keys: List[str] = Field(default_factory=list)
    consensus_addresses: List[str] = Field(default_factory=list)


class NetworkInfoOut(BaseModel):
    network_name: str = ""
    started_at: int = 0
    total_sent_bytes: int = 0
    total_received_bytes: int = 0
    connected_peers_count: int = 0
    connected_peers: List[PeerInfoOut] = Field(default_factory=list)


class BlockchainInfoOut(BaseModel):
    last_block_height: int
    last_block_hash: str = ""
    total_accounts: int = 0
    total_validators: int = 0
    total_power: int = 0
    committee_power: int = 0


# Discord interactions (only the fields we read)
class DiscordUser(BaseModel):
    id: str
    username: str = ""
    bot: bool = False


class DiscordMember(BaseModel):
    user: Optional[DiscordUser] = None


class CommandOption(BaseModel):
    name: str
    type: int = 3
    value: Any = None


class InteractionData(BaseModel):
    name: str = ""
    options: List[CommandOption] = Field(default_factory=list)


class InteractionIn(BaseModel):
    id: str = ""
    application_id: str = ""
    type: int
    token: str = ""
    guild_id: Optional[str] = None
    channel_id: Optional[str] = None
    data: Optional[InteractionData] = None
    member: Optional[DiscordMember] = None
    user: Optional[DiscordUser] = None

    def author(self) -> Optional[DiscordUser]:
        # guild interactions carry member.user, DMs carry user
        if self.member and self.member.user:
            return self.member.user
        return self.user


# Admin API
class ClaimOut(BaseModel):
    peer_id: str
    validator_address: str
    username: str
    user_id: str
    amount: str
    created_at: int
    tx_hash: Optional[str] = None


class HealthOut(BaseModel):
    ok: bool
    claims: int
    server_time: int
