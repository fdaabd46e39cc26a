"""
Ledger settings (``ledger_kernel.config``).

Responsibility
--------------
Loads the YAML settings file and parses it into frozen dataclasses.  Rates,
thresholds, number formats, privileged roles and the account codes used by
the ledger bridge all live here instead of in service code.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass.
* Monetary values and rates are parsed as ``Decimal`` from their string
  form, never through ``float``.
* Missing required keys raise ``KeyError``; there are no silent defaults
  for fields the defaults file declares.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG_PATH = Path(__file__).with_name("defaults.yaml")
CONFIG_ENV_VAR = "LEDGER_KERNEL_CONFIG"


@dataclass(frozen=True)
class WithholdingSettings:
    default_type: str
    rates: tuple[tuple[str, Decimal], ...]
    tax_based_types: frozenset[str]

    def rate_for(self, withholding_type: str) -> Decimal:
        """Rate for a type; unknown types use the default type's rate."""
        rates = dict(self.rates)
        if withholding_type in rates:
            return rates[withholding_type]
        return rates[self.default_type]


@dataclass(frozen=True)
class ExpenseSettings:
    rete_fuente_category: str
    rete_fuente_rate: Decimal
    rete_fuente_min_base: Decimal


@dataclass(frozen=True)
class NumberingSettings:
    width: int
    journal_entry_prefix: str
    expense_prefix: str
    sale_prefix: str
    certificate_prefix: str


@dataclass(frozen=True)
class PosSettings:
    privileged_roles: frozenset[str]
    card_methods: frozenset[str]
    payment_tolerance: Decimal


@dataclass(frozen=True)
class JournalSettings:
    balance_tolerance: Decimal


@dataclass(frozen=True)
class LedgerBridgeSettings:
    default_expense_account: str
    deductible_vat_account: str
    withholding_payable_account: str
    cash_account: str
    bank_account: str


@dataclass(frozen=True)
class LedgerSettings:
    """Complete, immutable ledger kernel configuration."""

    withholding: WithholdingSettings
    expenses: ExpenseSettings
    numbering: NumberingSettings
    pos: PosSettings
    journal: JournalSettings
    ledger_bridge: LedgerBridgeSettings


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value))


def parse_withholding(data: dict[str, Any]) -> WithholdingSettings:
    rates = tuple(
        (str(name), _decimal(rate)) for name, rate in data["rates"].items()
    )
    default_type = data["default_type"]
    if default_type not in dict(rates):
        raise ValueError(
            f"Default withholding type {default_type!r} has no configured rate"
        )
    return WithholdingSettings(
        default_type=default_type,
        rates=rates,
        tax_based_types=frozenset(data.get("tax_based_types", ())),
    )


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """
    Parse a ``LedgerSettings`` from a dict.

    Raises:
        KeyError: if a required section or key is missing.
        ValueError: if the default withholding type has no rate.
    """
    expenses = data["expenses"]
    numbering = data["numbering"]
    pos = data["pos"]
    bridge = data["ledger_bridge"]

    return LedgerSettings(
        withholding=parse_withholding(data["withholding"]),
        expenses=ExpenseSettings(
            rete_fuente_category=expenses["rete_fuente_category"],
            rete_fuente_rate=_decimal(expenses["rete_fuente_rate"]),
            rete_fuente_min_base=_decimal(expenses["rete_fuente_min_base"]),
        ),
        numbering=NumberingSettings(
            width=int(numbering["width"]),
            journal_entry_prefix=numbering["journal_entry_prefix"],
            expense_prefix=numbering["expense_prefix"],
            sale_prefix=numbering["sale_prefix"],
            certificate_prefix=numbering["certificate_prefix"],
        ),
        pos=PosSettings(
            privileged_roles=frozenset(pos["privileged_roles"]),
            card_methods=frozenset(pos["card_methods"]),
            payment_tolerance=_decimal(pos["payment_tolerance"]),
        ),
        journal=JournalSettings(
            balance_tolerance=_decimal(data["journal"]["balance_tolerance"]),
        ),
        ledger_bridge=LedgerBridgeSettings(
            default_expense_account=str(bridge["default_expense_account"]),
            deductible_vat_account=str(bridge["deductible_vat_account"]),
            withholding_payable_account=str(bridge["withholding_payable_account"]),
            cash_account=str(bridge["cash_account"]),
            bank_account=str(bridge["bank_account"]),
        ),
    )


def load_settings(path: Path | str | None = None) -> LedgerSettings:
    """
    Load ledger settings.

    Resolution order: explicit ``path``, then the ``LEDGER_KERNEL_CONFIG``
    environment variable, then the packaged ``defaults.yaml``.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    return parse_settings(load_yaml_file(Path(path)))
