"""
statebag.py - Accumulated orchestration state and user claims.

The identity engine reports two kinds of key/value state:

    statebag  orchestration state (ORCH_CS, CTP, MACHSTATE, ...), cleared at
              every step boundary
    claims    user claims (Complex-CLMS), kept across step boundaries and
              cleared only when a new session starts

Snapshots are copies, so nodes holding one never observe later mutations.

Usage:
    from journeytrace.runtime.statebag import StatebagAccumulator

    acc = StatebagAccumulator()
    acc.apply_updates({"ORCH_CS": "3"})
    acc.apply_claims_updates({"email": "a@example.com"})
    snapshot = acc.get_statebag_snapshot()
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional

from .keys import DANGEROUS_KEYS, StatebagKey, parse_orch_step


class StatebagAccumulator:
    """Two overwrite-by-key maps with copy-on-read snapshots."""

    def __init__(self) -> None:
        self._statebag: Dict[str, str] = {}
        self._claims: Dict[str, str] = {}
        self._orch_step = 0
        self._mach_state = ""

    # -------------------------------------------------------------------------
    # Updates
    # -------------------------------------------------------------------------

    def apply_update(self, key: str, value: str) -> None:
        if key in DANGEROUS_KEYS:
            return
        self._statebag[key] = value
        if key == StatebagKey.ORCH_CS.value:
            self._orch_step = parse_orch_step(value)
        elif key == StatebagKey.MACHSTATE.value:
            self._mach_state = value

    def apply_updates(self, updates: Optional[Mapping[str, str]]) -> None:
        for key, value in (updates or {}).items():
            self.apply_update(key, value)

    def apply_claims_updates(self, updates: Optional[Mapping[str, str]]) -> None:
        for key, value in (updates or {}).items():
            if key in DANGEROUS_KEYS:
                continue
            self._claims[key] = value

    def clear_statebag_keep_claims(self) -> None:
        self._statebag.clear()

    def reset(self) -> None:
        self._statebag.clear()
        self._claims.clear()
        self._orch_step = 0
        self._mach_state = ""

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_statebag_snapshot(self) -> Dict[str, str]:
        return dict(self._statebag)

    def get_claims_snapshot(self) -> Dict[str, str]:
        return dict(self._claims)

    def get(self, key: str) -> Optional[str]:
        return self._statebag.get(key)

    def get_claim(self, key: str) -> Optional[str]:
        return self._claims.get(key)

    def has(self, key: str) -> bool:
        return key in self._statebag

    def has_claim(self, key: str) -> bool:
        return key in self._claims

    @property
    def orch_step(self) -> int:
        """Last ORCH_CS value applied (0 before any)."""
        return self._orch_step

    @property
    def mach_state(self) -> str:
        return self._mach_state

    def clone(self) -> "StatebagAccumulator":
        copy = StatebagAccumulator()
        copy._statebag = dict(self._statebag)
        copy._claims = dict(self._claims)
        copy._orch_step = self._orch_step
        copy._mach_state = self._mach_state
        return copy
