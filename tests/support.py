"""Shared builders for vault tests: accounts, assets, chains, transport."""

from __future__ import annotations

from fusion_vault.chain import VaultChain
from fusion_vault.config import ChainConfig
from fusion_vault.custody.assets import InMemoryAsset
from fusion_vault.schema import ComposeAcknowledgement, InboundPacket, Origin, OutboundPacket

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
CAROL = "0x" + "c0" * 20
ADMIN = "0x" + "ad" * 20
VAULT = "0x" + "f0" * 20
REMOTE_VAULT = "0x" + "e0" * 20

NOW = 1_700_000_000
BASE_RANGE = 100
GIFT_RANGE = 10
PREMIUM_START = BASE_RANGE + GIFT_RANGE

# Mint price of each supported asset, in the asset's smallest unit.
PRICES = {"usdc": 10_000, "weth": 20_000, "dai": 30_000, "wbtc": 40_000}
FUNDING = 1_000_000


class RecordingTransport:
    """Transport fake that keeps every packet handed to it."""

    def __init__(self) -> None:
        self.packets: list[OutboundPacket] = []
        self.composes: list[tuple[ComposeAcknowledgement, bytes]] = []

    def dispatch(self, packet: OutboundPacket) -> None:
        self.packets.append(packet)

    def send_compose(self, ack: ComposeAcknowledgement, message: bytes) -> None:
        self.composes.append((ack, message))


class Clock:
    def __init__(self, now: int = NOW) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def make_config(**overrides) -> ChainConfig:
    values = {
        "fee_basis_points": 25,
        "base_supply_cap": BASE_RANGE,
        "gift_supply_cap": GIFT_RANGE,
        "mint_cutoff": NOW + 86_400,
        "gift_asset": "usdc",
        "gift_price": 5_000,
        "gift_uri": "ipfs://gift.json",
        "fused_uri": "ipfs://fused.json",
    }
    values.update(overrides)
    return ChainConfig(**values)


def make_chain(
    eid: int = 1,
    vault: str = VAULT,
    clock: Clock | None = None,
    transport: RecordingTransport | None = None,
    inspector=None,
    **config_overrides,
) -> tuple[VaultChain, dict[str, InMemoryAsset]]:
    """A chain with the four PRICES assets supported and ALICE/BOB funded."""
    assets = {name: InMemoryAsset(name) for name in PRICES}
    chain = VaultChain(
        config=make_config(**config_overrides),
        eid=eid,
        vault_address=vault,
        admin_address=ADMIN,
        base_range_size=BASE_RANGE,
        gift_range_size=GIFT_RANGE,
        assets=list(assets.values()),
        clock=clock or Clock(),
        transport=transport,
        inspector=inspector,
    )
    for name, price in PRICES.items():
        chain.add_supported_asset(ADMIN, name, price, f"ipfs://{name}.json")
    for account in (ALICE, BOB):
        fund(chain, assets, account)
    return chain, assets


def fund(chain: VaultChain, assets: dict[str, InMemoryAsset], account: str, amount: int = FUNDING) -> None:
    for asset in assets.values():
        asset.mint(account, amount)
        asset.approve(account, chain.vault_address, amount)


def mint_set(chain: VaultChain, owner: str = ALICE) -> list[int]:
    """Mint one BASE token per supported asset, in PRICES order."""
    return [chain.mint_base(owner, asset) for asset in PRICES]


def deliver(packet: OutboundPacket, source: VaultChain, destination: VaultChain, guid: str | None = None):
    """Hand an outbound packet to the destination as its inbound counterpart."""
    inbound = InboundPacket(
        origin=Origin(src_eid=source.eid, sender=source.vault_address),
        guid=guid or packet.guid,
        message=packet.message,
    )
    return destination.receive(inbound)


def link_peers(first: VaultChain, second: VaultChain) -> None:
    first.set_peer(ADMIN, second.eid, second.vault_address)
    second.set_peer(ADMIN, first.eid, first.vault_address)
