"""ChipLedger: cash-game ledger and settlement service."""
