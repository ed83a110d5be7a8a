"""Running total of service spend."""

from __future__ import annotations

import math

from ..models import CostEntry, TokenRates


def token_cost(input_tokens: int, output_tokens: int, rates: TokenRates) -> float:
    return input_tokens * rates.input + output_tokens * rates.output


class CostLedger:
    """Append-only record of every request's cost.

    Contributions are kept individually and summed with ``math.fsum``, so the
    total does not depend on the order requests completed in.
    """

    def __init__(self) -> None:
        self._entries: list[CostEntry] = []

    def add(
        self,
        stage: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        rates: TokenRates,
    ) -> CostEntry:
        entry = CostEntry(
            stage=stage,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=token_cost(input_tokens, output_tokens, rates),
        )
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> tuple[CostEntry, ...]:
        return tuple(self._entries)

    @property
    def total(self) -> float:
        return math.fsum(e.cost for e in self._entries)

    def stage_total(self, stage: str) -> float:
        return math.fsum(e.cost for e in self._entries if e.stage == stage)
