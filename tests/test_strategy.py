"""
Tests for `domain/strategy.py`.

Covers contract rules:
- Request payloads map onto exactly one strategy variant.
- Required parameters are validated before planning.
"""

from __future__ import annotations

import pytest

from domain.errors import ValidationError
from domain.strategy import AllAvailable, ByService, SingleTarget, SpecificList, strategy_from_dict


def test_strategy_from_dict_variants() -> None:
    """Verify each `type` builds its variant with parameters."""

    assert strategy_from_dict({"type": "single", "vendor_id": "v-1"}) == SingleTarget("v-1")
    assert strategy_from_dict({"type": "specific", "vendor_ids": ["v-1", "v-2"]}) == SpecificList(("v-1", "v-2"))
    assert strategy_from_dict({"type": "all_available"}) == AllAvailable()
    assert strategy_from_dict({"type": "by_service", "city": "Pune"}) == ByService(city="Pune")
    assert strategy_from_dict({"type": "by_service", "city": ""}).city is None


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "single"},
        {"type": "specific", "vendor_ids": []},
        {"type": "specific", "vendor_ids": "v-1"},
        {"type": "everyone"},
        {},
    ],
)
def test_strategy_from_dict_rejects_invalid_payloads(payload) -> None:
    """Verify missing parameters and unknown types are validation errors."""

    with pytest.raises(ValidationError):
        strategy_from_dict(payload)


def test_strategy_kind_tags() -> None:
    assert SingleTarget("v").kind == "single"
    assert SpecificList(("v",)).kind == "specific"
    assert AllAvailable().kind == "all_available"
    assert ByService().kind == "by_service"
