"""
Fusion Vault — process entrypoint.

Central start-up path that:
1. Configures structured logging
2. Opens the repository and loads the persisted vault state
3. Builds the VaultChain for this ledger from settings
4. Runs the consistency audit, verifies the stored event journal and
   writes the state and new journal entries back

Asset capabilities and the bridge transport are supplied by the embedding
process through `bootstrap()`; run as a module, the entrypoint performs a
start-up health check of the stored state.
"""

from __future__ import annotations

import logging
import sys

import structlog

from fusion_vault.config import VaultSettings, settings
from fusion_vault.custody.assets import FungibleAsset
from fusion_vault.ledger.service import VaultRepository

logger = logging.getLogger(__name__)


def configure_logging(vault_settings: VaultSettings = settings) -> None:
    """Configure structured logging."""
    logging.basicConfig(level=vault_settings.log_level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if vault_settings.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(vault_settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bootstrap(
    vault_settings: VaultSettings = settings,
    assets: list[FungibleAsset] | None = None,
    **chain_kwargs,
):
    """
    Open the repository and build this ledger's VaultChain.

    Returns:
        Tuple of (chain, repository).
    """
    from fusion_vault.chain import VaultChain

    log = structlog.get_logger()

    repository = VaultRepository(vault_settings.database_url)
    repository.initialize()
    state = repository.load()
    journal = repository.load_journal() if state is not None else None
    log.info(
        "fusion_vault.orchestrator.state_loaded",
        fresh=state is None,
        tokens=0 if state is None else len(state.tokens),
        events=0 if journal is None else len(journal),
    )

    chain = VaultChain.from_settings(
        vault_settings, assets=assets, state=state, journal=journal, **chain_kwargs,
    )
    log.info(
        "fusion_vault.orchestrator.chain_ready",
        eid=chain.eid,
        vault=chain.vault_address,
        supported_assets=len(chain.catalog),
    )
    return chain, repository


def main() -> None:
    """Start-up health check: load, audit, verify the stored journal, persist."""
    configure_logging()
    log = structlog.get_logger()

    log.info("fusion_vault.orchestrator.starting", eid=settings.chain_eid)

    from fusion_vault.ledger.audit import audit_state

    try:
        chain, repository = bootstrap()

        findings = audit_state(chain.state, chain.vault_address)
        for finding in findings:
            log.error(
                "fusion_vault.orchestrator.audit_finding",
                check=finding.check,
                token_id=finding.token_id,
                message=finding.message,
            )

        is_valid, entries, msg = chain.journal.verify_chain()
        log.info(
            "fusion_vault.orchestrator.journal_checked",
            valid=is_valid, entries=entries, message=msg,
        )
        if not is_valid:
            log.critical("fusion_vault.orchestrator.journal_tampered", message=msg)
            sys.exit(1)

        repository.save(chain.state, chain.journal)
    except Exception as e:
        log.exception("fusion_vault.orchestrator.fatal_error", error=str(e))
        sys.exit(1)

    if findings:
        log.critical("fusion_vault.orchestrator.inconsistent", findings=len(findings))
        sys.exit(1)
    log.info("fusion_vault.orchestrator.running", message="Vault state consistent")


if __name__ == "__main__":
    main()
