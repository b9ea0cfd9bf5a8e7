"""Unit tests for Spanish limit messages and usage display helpers."""

from __future__ import annotations

from datetime import date

import pytest

from gymgo.billing import messages
from gymgo.billing.plans import UNLIMITED


@pytest.mark.unit
class TestLimitMessages:
    def test_count_limit_reached_names_limit_and_noun(self) -> None:
        msg = messages.count_limit_reached(10, "miembros")
        assert "límite de 10 miembros" in msg
        assert msg.endswith("Actualiza tu plan para agregar más.")

    def test_monthly_limit_reached(self) -> None:
        assert messages.monthly_limit_reached(50, "emails") == (
            "Has alcanzado el límite de 50 emails/mes de tu plan."
        )

    def test_ai_limit_reached_includes_reset(self) -> None:
        msg = messages.ai_limit_reached(100, "1 de noviembre")
        assert "100 consultas AI/mes" in msg
        assert "Se reinicia el 1 de noviembre." in msg

    def test_file_too_large(self) -> None:
        assert "50 MB" in messages.file_too_large(50)

    def test_feature_unavailable_quotes_feature(self) -> None:
        assert '"white_label"' in messages.feature_unavailable("white_label")


@pytest.mark.unit
class TestResetDate:
    def test_first_of_next_month(self) -> None:
        assert messages.first_of_next_month(date(2024, 10, 17)) == date(2024, 11, 1)

    def test_december_rolls_year(self) -> None:
        assert messages.first_of_next_month(date(2024, 12, 31)) == date(2025, 1, 1)

    def test_format_reset_date(self) -> None:
        assert messages.format_reset_date(date(2024, 11, 1)) == "1 de noviembre"
        assert messages.format_reset_date(date(2025, 1, 1)) == "1 de enero"


@pytest.mark.unit
class TestDisplayHelpers:
    def test_format_limit_message(self) -> None:
        assert messages.format_limit_message("Miembros", 3, 10) == "Miembros: 3/10"
        assert messages.format_limit_message("Miembros", 3, UNLIMITED) == "Miembros: Ilimitado"

    def test_format_usage(self) -> None:
        assert messages.format_usage(3, 10) == "3 / 10"
        assert messages.format_usage(3, UNLIMITED) == "3 / Ilimitado"

    def test_usage_percentage(self) -> None:
        assert messages.usage_percentage(5, 10) == 50
        assert messages.usage_percentage(20, 10) == 100
        assert messages.usage_percentage(5, UNLIMITED) == 0
        assert messages.usage_percentage(0, 0) == 100
