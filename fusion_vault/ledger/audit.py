"""
Vault Audit Tool — independent consistency check of a persisted vault.

Anyone holding a copy of the database can run this tool to verify that the
stored state is internally consistent: every owned token has a
classification, custody records match each classification, fused
components sit in escrow, soulbound tokens carry the restricted flag, and
(when the asset capabilities are available) the vault's asset balances
cover every custody record plus accrued fees. The stored event journal's
hash chain is verified as well.

Usage:
    python -m fusion_vault.ledger.audit
    python -m fusion_vault.ledger.audit --database-url sqlite:///vault.db
    python -m fusion_vault.ledger.audit --verbose
"""

from __future__ import annotations

import argparse
import sys
import time
from dataclasses import dataclass

from rich.console import Console
from rich.table import Table

from fusion_vault.config import settings
from fusion_vault.custody.assets import FungibleAsset
from fusion_vault.ledger.service import VaultRepository
from fusion_vault.schema import TokenClass, canonical_address
from fusion_vault.state import ChainState

console = Console()

SINGLE_RECORD_CLASSES = (TokenClass.BASE, TokenClass.GIFT)
NO_RECORD_CLASSES = (TokenClass.FUSED, TokenClass.SOULBOUND)


@dataclass
class AuditFinding:
    """One inconsistency found in a vault state."""

    check: str
    message: str
    token_id: int | None = None


def audit_state(
    state: ChainState,
    vault_address: str,
    assets: list[FungibleAsset] | None = None,
) -> list[AuditFinding]:
    """
    Check a ChainState for internal consistency.

    Args:
        state: The state to audit.
        vault_address: Account that holds escrowed tokens and custody assets.
        assets: Asset capabilities; when given, conservation is checked too.

    Returns:
        Every finding, empty when the state is consistent.
    """
    findings: list[AuditFinding] = []
    vault_address = canonical_address(vault_address)
    owners = state.ownership.owners
    custody = state.custody

    for token_id in owners:
        record = state.tokens.get(token_id)
        if record is None or record.classification == TokenClass.NONEXISTENT:
            findings.append(AuditFinding(
                "classification", "owned token has no classification", token_id,
            ))

    for token_id, record in state.tokens.items():
        held = custody.token_assets.get(token_id, [])
        if record.classification in SINGLE_RECORD_CLASSES and len(held) > 1:
            findings.append(AuditFinding(
                "custody", f"{record.classification.value} token holds {len(held)} assets",
                token_id,
            ))
        if record.classification in NO_RECORD_CLASSES and held:
            findings.append(AuditFinding(
                "custody", f"{record.classification.value} token holds custody", token_id,
            ))
        is_soulbound = record.classification == TokenClass.SOULBOUND
        if is_soulbound != record.restricted:
            findings.append(AuditFinding(
                "restriction",
                f"restricted={record.restricted} on a {record.classification.value} token",
                token_id,
            ))

    for token_id in custody.token_assets:
        if token_id not in state.tokens:
            findings.append(AuditFinding(
                "custody", "custody held against an unknown token", token_id,
            ))

    for fused_id, components in state.fusion_links.items():
        for component in components:
            if owners.get(component) != vault_address:
                findings.append(AuditFinding(
                    "escrow",
                    f"component {component} of fused token is not held by the vault",
                    fused_id,
                ))

    for asset in assets or []:
        recorded = sum(
            amount for (_, asset_id), amount in custody.balances.items()
            if asset_id == asset.asset_id
        ) + custody.collected_fees.get(asset.asset_id, 0)
        held = asset.balance_of(vault_address)
        if recorded != held:
            findings.append(AuditFinding(
                "conservation",
                f"{asset.asset_id}: custody+fees={recorded} vault balance={held}",
            ))

    return findings


def run_audit(database_url: str, vault_address: str, verbose: bool = False) -> bool:
    """
    Load the stored state and audit it.

    Returns:
        True if no findings, False otherwise.
    """
    console.print("\n[bold blue]═══ Fusion Vault Consistency Audit ═══[/bold blue]\n")

    repository = VaultRepository(database_url)
    repository.initialize()
    state = repository.load()
    if state is None:
        console.print("[yellow]⚠ No saved vault state, nothing to audit[/yellow]")
        return True

    console.print(f"  Tokens known: [bold]{len(state.tokens)}[/bold]")
    console.print(f"  Tokens live:  [bold]{len(state.ownership.owners)}[/bold]")
    console.print("  Checking state...", end=" ")
    start_time = time.time()

    findings = audit_state(state, vault_address)
    journal_valid, _, journal_message = repository.load_journal().verify_chain()
    if not journal_valid:
        findings.append(AuditFinding("journal", journal_message))

    elapsed = time.time() - start_time

    if not findings:
        console.print("[bold green]✓ CONSISTENT[/bold green]")
    else:
        console.print("[bold red]✗ INCONSISTENT[/bold red]")
        table = Table(show_lines=True)
        table.add_column("Check", style="cyan", width=14)
        table.add_column("Token", style="yellow", width=10)
        table.add_column("Finding")
        for finding in findings:
            table.add_row(
                finding.check,
                "—" if finding.token_id is None else str(finding.token_id),
                finding.message,
            )
        console.print(table)
    console.print(f"  Audit time: {elapsed:.3f}s")

    if verbose:
        console.print("\n[bold]Custody by Asset:[/bold]")
        table = Table(show_lines=True)
        table.add_column("Asset", style="cyan")
        table.add_column("Custody", style="green", justify="right")
        table.add_column("Fees", style="yellow", justify="right")

        totals: dict[str, int] = {}
        for (_, asset), amount in state.custody.balances.items():
            totals[asset] = totals.get(asset, 0) + amount
        for asset in sorted(set(totals) | set(state.custody.collected_fees)):
            table.add_row(
                asset,
                str(totals.get(asset, 0)),
                str(state.custody.collected_fees.get(asset, 0)),
            )
        console.print(table)

    console.print("\n[bold blue]═══ Audit Complete ═══[/bold blue]\n")
    return not findings


def main() -> None:
    parser = argparse.ArgumentParser(description="Fusion Vault state consistency auditor")
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy connection string (defaults to .env settings)",
    )
    parser.add_argument(
        "--vault-address",
        default=None,
        help="Vault account (defaults to .env settings)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show custody totals per asset",
    )
    args = parser.parse_args()

    is_valid = run_audit(
        args.database_url or settings.database_url,
        args.vault_address or settings.vault_address,
        verbose=args.verbose,
    )
    sys.exit(0 if is_valid else 1)


if __name__ == "__main__":
    main()
