# legcast/routes.py
"""Terminal pair keys, chain keys and historical route priors."""
from __future__ import annotations

from typing import Optional, Tuple

from legcast.config import get_settings

PAIR_SEPARATOR = "->"
CHAIN_PREFIX = "chain:"

# Historical mean at-dock durations by terminal pair (minutes).
MEAN_AT_DOCK_MINUTES: dict[str, float] = {
    "ANA->FRH": 26.74,
    "ANA->LOP": 26.65,
    "ANA->ORI": 26.33,
    "ANA->SHI": 23.2,
    "BBI->P52": 18.5,
    "BRE->P52": 18.55,
    "CLI->MUK": 16.38,
    "COU->POT": 17.94,
    "EDM->KIN": 23.94,
    "FAU->SOU": 15.99,
    "FAU->VAI": 15.42,
    "FRH->ANA": 26.28,
    "FRH->LOP": 27.22,
    "FRH->ORI": 23.39,
    "FRH->SHI": 20.82,
    "KIN->EDM": 24.18,
    "LOP->ANA": 12.63,
    "LOP->FRH": 10.02,
    "LOP->ORI": 12.87,
    "LOP->SHI": 10.7,
    "MUK->CLI": 15.4,
    "ORI->ANA": 19.52,
    "ORI->FRH": 12.09,
    "ORI->LOP": 20.88,
    "ORI->SHI": 21.99,
    "P52->BBI": 21.17,
    "P52->BRE": 18.93,
    "POT->COU": 21.07,
    "PTD->TAH": 17.39,
    "SHI->ANA": 6.23,
    "SHI->LOP": 6.2,
    "SHI->ORI": 6.76,
    "SOU->FAU": 10.55,
    "SOU->VAI": 14.67,
    "TAH->PTD": 13.68,
    "VAI->FAU": 14.12,
    "VAI->SOU": 10.99,
}

# Historical mean at-sea durations by terminal pair (minutes).
MEAN_AT_SEA_MINUTES: dict[str, float] = {
    "ANA->FRH": 68.9,
    "ANA->LOP": 42.8,
    "ANA->ORI": 54.8,
    "ANA->SHI": 50.0,
    "BBI->P52": 31.8,
    "BRE->P52": 55.8,
    "CLI->MUK": 14.6,
    "COU->POT": 27.4,
    "EDM->KIN": 21.8,
    "FAU->SOU": 21.6,
    "FAU->VAI": 14.5,
    "FRH->ANA": 71.9,
    "FRH->LOP": 35.7,
    "FRH->ORI": 40.8,
    "FRH->SHI": 43.4,
    "KIN->EDM": 21.9,
    "LOP->ANA": 45.1,
    "LOP->FRH": 36.8,
    "LOP->ORI": 18.1,
    "LOP->SHI": 18.5,
    "MUK->CLI": 14.6,
    "ORI->ANA": 53.9,
    "ORI->FRH": 44.1,
    "ORI->LOP": 19.9,
    "ORI->SHI": 9.3,
    "P52->BBI": 32.8,
    "P52->BRE": 57.0,
    "POT->COU": 27.1,
    "PTD->TAH": 13.6,
    "SHI->ANA": 53.5,
    "SHI->LOP": 19.1,
    "SHI->ORI": 9.2,
    "SOU->FAU": 21.9,
    "SOU->VAI": 12.1,
    "TAH->PTD": 12.0,
    "VAI->FAU": 14.8,
    "VAI->SOU": 11.4,
}


def pair_key(departing: str, arriving: str) -> str:
    return f"{departing}{PAIR_SEPARATOR}{arriving}"


def parse_pair_key(key: str) -> Tuple[str, str]:
    parts = key.split(PAIR_SEPARATOR)
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Invalid terminal pair key: {key!r}")
    return parts[0], parts[1]


def mean_at_dock(key: str) -> float:
    return MEAN_AT_DOCK_MINUTES.get(key, 0.0)


def mean_at_sea(key: str) -> float:
    return MEAN_AT_SEA_MINUTES.get(key, 0.0)


def leg_class(key: str) -> Optional[str]:
    """Classify a pair by its mean crossing time; None when the route has no prior."""
    minutes = mean_at_sea(key)
    if minutes <= 0:
        return None
    settings = get_settings()
    if minutes < settings.CHAIN_SHORT_MAX_MINUTES:
        return "short"
    if minutes <= settings.CHAIN_MEDIUM_MAX_MINUTES:
        return "medium"
    return "long"


def chain_key_for_pair(key: str) -> Optional[str]:
    cls = leg_class(key)
    return f"{CHAIN_PREFIX}{cls}" if cls else None


__all__ = [
    "MEAN_AT_DOCK_MINUTES",
    "MEAN_AT_SEA_MINUTES",
    "pair_key",
    "parse_pair_key",
    "mean_at_dock",
    "mean_at_sea",
    "leg_class",
    "chain_key_for_pair",
]
