from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from .utils import normalize_identifier

EXACT = "exact"
SUFFIX = "suffix"
SUBSTRING = "substring"

# короче этого частичное совпадение слишком шумное
MIN_SUBSTRING_LEN = 3


@dataclass(frozen=True)
class Match:
    key: str
    percentage: float
    tier: str


class MatchResolver:
    """
    Поиск % посещаемости по номеру из записи участия.
    Порядок: точное совпадение -> ключ ведомости оканчивается на номер ->
    ключ содержит номер (только для номеров от 3 символов).
    При нескольких кандидатах берётся первый по порядку строк ведомости.
    """

    def __init__(self, index: Optional[Mapping[str, float]]):
        self.index = index

    def lookup(self, raw_id: Any) -> Optional[Match]:
        if not self.index:
            return None
        n = normalize_identifier(raw_id)
        if not n:
            return None

        if n in self.index:
            return Match(n, self.index[n], EXACT)

        # номер в ведомости с лишним префиксом (например ...c33)
        for k in self.index:
            if k.endswith(n):
                return Match(k, self.index[k], SUFFIX)

        if len(n) >= MIN_SUBSTRING_LEN:
            for k in self.index:
                if n in k:
                    return Match(k, self.index[k], SUBSTRING)

        return None

    def resolve(self, raw_id: Any) -> Optional[float]:
        m = self.lookup(raw_id)
        return None if m is None else m.percentage
