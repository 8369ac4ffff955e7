from __future__ import annotations

from datetime import datetime, timedelta, timezone

from opd_token_engine.domain.constraints import EngineConfig
from opd_token_engine.domain.models import BASE_PRIORITY_BY_SOURCE, Token, TokenSource
from opd_token_engine.domain.priority import PriorityCalculator, waiting_minutes


T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _token(source: TokenSource = TokenSource.ONLINE, created_at: datetime = T0) -> Token:
    return Token.create(requester_id="P001", source=source, created_at=created_at)


def test_base_priority_table() -> None:
    assert BASE_PRIORITY_BY_SOURCE == {
        TokenSource.EMERGENCY: 100,
        TokenSource.PAID: 85,
        TokenSource.FOLLOW_UP: 65,
        TokenSource.ONLINE: 50,
        TokenSource.WALK_IN: 40,
    }
    assert _token(TokenSource.PAID).base_priority == 85


def test_token_starts_unadmitted_with_unique_id() -> None:
    first = _token()
    second = _token()
    assert first.token_id != second.token_id
    assert first.preemption_count == 0
    assert first.is_admitted is False


def test_priority_without_waiting_equals_base() -> None:
    calculator = PriorityCalculator()
    assert calculator.calculate(_token(TokenSource.WALK_IN), T0) == 40


def test_aging_adds_floor_of_factor_times_minutes() -> None:
    calculator = PriorityCalculator()
    token = _token(TokenSource.ONLINE)
    assert calculator.calculate(token, T0 + timedelta(minutes=3)) == 50
    assert calculator.calculate(token, T0 + timedelta(minutes=4)) == 51
    assert calculator.calculate(token, T0 + timedelta(minutes=10)) == 53
    assert calculator.calculate(token, T0 + timedelta(minutes=100)) == 80


def test_partial_minutes_are_truncated() -> None:
    assert waiting_minutes(T0, T0 + timedelta(seconds=119)) == 1


def test_future_creation_time_is_clamped_to_zero_wait() -> None:
    calculator = PriorityCalculator()
    token = _token(TokenSource.PAID, created_at=T0 + timedelta(minutes=30))
    assert calculator.calculate(token, T0) == 85


def test_aging_is_monotonic() -> None:
    calculator = PriorityCalculator()
    token = _token(TokenSource.FOLLOW_UP)
    previous = calculator.calculate(token, T0)
    for minute in range(1, 240, 7):
        current = calculator.calculate(token, T0 + timedelta(minutes=minute))
        assert current >= previous
        previous = current


def test_one_preemption_costs_exactly_the_penalty() -> None:
    calculator = PriorityCalculator()
    now = T0 + timedelta(minutes=37)
    untouched = _token(TokenSource.WALK_IN)
    preempted = _token(TokenSource.WALK_IN)
    preempted.preemption_count = 1
    assert calculator.calculate(untouched, now) - calculator.calculate(preempted, now) == 10


def test_calculation_does_not_mutate_token() -> None:
    calculator = PriorityCalculator()
    token = _token()
    before = (token.snapshot_priority, token.preemption_count, token.is_admitted)
    calculator.calculate(token, T0 + timedelta(minutes=15))
    assert (token.snapshot_priority, token.preemption_count, token.is_admitted) == before


def test_custom_config_is_honoured() -> None:
    calculator = PriorityCalculator(EngineConfig(aging_factor=1.0, reallocation_penalty=25))
    token = _token(TokenSource.ONLINE)
    token.preemption_count = 2
    assert calculator.calculate(token, T0 + timedelta(minutes=5)) == 50 + 5 - 50
