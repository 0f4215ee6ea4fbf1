"""Tests for the expression engine. No network access is needed."""

import pytest
import requests

from cli_calc.engine import (
    CalculatorInterface,
    CurrencyCalculator,
    Engine,
    MathCalculator,
    UnitCalculator,
    normalize_number,
)
from cli_calc.errors import EvaluationError


@pytest.fixture(scope="module")
def engine():
    return Engine([MathCalculator(), CurrencyCalculator(api_key=None), UnitCalculator()])


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("2 + 3", 5),
        ("2^10", 1024),
        ("7 % 3", 1),
        ("50% * 8", 4),
        ("(2 + 3) * 4", 20),
        ("1 000 + 1", 1001),
        ("10 / 4", 2.5),
        ("square root of 16", 4),
        ("cube root of -27", -3),
        ("2% of 100", 2),
        ("15 percent of 200", 30),
        ("3 power of 2", 9),
        ("10 divided by 4", 2.5),
        ("factorial of 5", 120),
        ("3 root of 8", 2),
    ],
)
def test_arithmetic(engine, expression, expected):
    assert engine.evaluate(expression) == (expected, None)


def test_decimal_literal_is_returned_as_is(engine):
    assert engine.evaluate(" 3.50 ") == ("3.50", None)
    assert engine.evaluate("42") == ("42", None)


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("5 km to m", "5000 m"),
        ("12 in to cm", "30.48 cm"),
        ("3 in", "3 in"),
        ("2 m + 50 cm in cm", "250 cm"),
        ("5 kilobytes to bytes", "5000 B"),
        ("1 GB to MB", "1000 MB"),
        ("180 degrees to radians", "3.1415926536 rad"),
        ("1 turn to degrees", "360 deg"),
        ("2 m / 50 cm", 4),
        ("10 kilobytes", "10 kB"),
    ],
)
def test_units(engine, expression, expected):
    assert engine.evaluate(expression) == (expected, None)


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("10 USD to EUR", "8.50 EUR"),
        ("$480 in pounds", "360.00 GBP"),
        ("€10 to $", "11.76 USD"),
        ("10$ to yen", "1080.00 JPY"),
        ("100 eur in eur", "100.00 EUR"),
    ],
)
def test_currency_demo_rates(engine, expression, expected):
    assert engine.evaluate(expression) == (expected, None)


@pytest.mark.parametrize(
    "expression",
    ["1/0", "5 km to kg", "hello there", "$x + 1", "5 km to furlongz", "square root of -4"],
)
def test_errors(engine, expression):
    result, error = engine.evaluate(expression)
    assert result is None
    assert isinstance(error, EvaluationError)
    assert str(error)


def test_blank_expression(engine):
    result, error = engine.evaluate("   ")
    assert result is None
    assert isinstance(error, EvaluationError)


def test_currency_ignores_units():
    """Unit conversions are left to the unit calculator."""
    calculator = CurrencyCalculator(api_key=None)
    assert calculator.parse("5 km to miles") == (None, None)
    assert calculator.parse("12 pounds in kg") == (None, None)
    assert calculator.parse("2 + 2") == (None, None)


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self.payload = payload
        self.text = str(payload)

    def json(self):
        return self.payload


def test_currency_live_rates(monkeypatch):
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append(params)
        return FakeResponse(200, {"rates": {"EUR": 0.9}})

    monkeypatch.setattr("cli_calc.engine.requests.get", fake_get)
    calculator = CurrencyCalculator(api_key="secret")

    assert calculator.parse("10 USD to EUR") == ("9.00 EUR", None)
    # Second lookup is served from the cache
    assert calculator.parse("20 USD to EUR") == ("18.00 EUR", None)
    assert calls == [{"access_key": "secret", "base": "USD", "symbols": "EUR"}]


def test_currency_falls_back_to_demo_rates(monkeypatch):
    def failing_get(url, params=None, timeout=None):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr("cli_calc.engine.requests.get", failing_get)
    calculator = CurrencyCalculator(api_key="secret")
    assert calculator.parse("10 USD to EUR") == ("8.50 EUR", None)


def test_calculator_crash_is_reported():
    class Broken(CalculatorInterface):
        def parse(self, query):
            raise RuntimeError("boom")

    result, error = Engine([Broken()]).evaluate("1 + 1")
    assert result is None
    assert isinstance(error, EvaluationError)


def test_nothing_understands_expression():
    class Never(CalculatorInterface):
        def parse(self, query):
            return None, None

    result, error = Engine([Never()]).evaluate("1 + 1")
    assert result is None
    assert str(error) == "Could not understand expression '1 + 1'"


def test_normalize_number():
    assert normalize_number(4.0) == 4
    assert isinstance(normalize_number(4.0), int)
    assert normalize_number(1 / 3) == 0.3333333333
    assert normalize_number("3 m") == "3 m"


@pytest.mark.parametrize("word", ["pi", "1 fortnights", "1 megabytes", "1 mph", "1 light_year"])
def test_completion_words_evaluate(engine, word):
    result, error = engine.evaluate(word)
    assert error is None
    assert result is not None
