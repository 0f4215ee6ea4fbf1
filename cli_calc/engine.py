import datetime
import logging
import math
import re
from abc import ABC, abstractmethod
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

import requests
from pint import DimensionalityError, UndefinedUnitError, UnitRegistry

from cli_calc.config import (
    EXCHANGE_RATE_API_KEY,
    EXCHANGE_RATE_API_URL,
    EXCHANGE_RATE_CACHE_TTL,
    EXCHANGE_RATE_TIMEOUT,
)
from cli_calc.errors import EvaluationError

logger = logging.getLogger(__name__)

# A plain decimal number needs no evaluation at all
DECIMAL_PATTERN = re.compile(r"^ *([0-9]*\.?[0-9]+|[0-9]+\.?[0-9]*) *$")
# "1 000" means 1000
DIGIT_GROUP_PATTERN = re.compile(r"(?<=\d) (?=\d)")


def normalize_number(value: Any) -> Any:
    """Rounds floats to 10 places and turns whole ones into ints."""
    if isinstance(value, float):
        value = round(value, 10)
        if value.is_integer():
            return int(value)
    return value


# --- Calculator Interface and Implementations ---
class CalculatorInterface(ABC):
    @abstractmethod
    def parse(self, query: str) -> Tuple[Optional[Any], Optional[str]]:
        """Returns (result, None), (None, error) or (None, None) if the
        query is not in a format this calculator handles."""


class MathCalculator(CalculatorInterface):
    """Arithmetic written out in words, plus percentages."""

    number = r"(-?[\d\.]+)"

    # "50% + 10", "7 % 3": simple binary operations where % may mean percent
    traditional_math_pattern = re.compile(
        rf"^\s*{number}\s*(%?)\s*([\+\-\*\/\%\^])\s*{number}\s*(%?)\s*$"
    )

    # "X% of Y", "X % of Y", "X percent of Y"
    percent_of_pattern = re.compile(
        rf"^\s*{number}\s*(?:%|percent)\s+of\s+{number}\s*$", re.IGNORECASE
    )

    binary_patterns = [
        (re.compile(rf"^\s*{number}\s+(?:to\s+the\s+)?power\s+of\s+{number}\s*$", re.IGNORECASE), "^"),
        (re.compile(rf"^\s*{number}\s+raised\s+to\s+(?:the\s+)?(?:power\s+of\s+)?{number}\s*$", re.IGNORECASE), "^"),
        (re.compile(rf"^\s*{number}\s+divided\s+by\s+{number}\s*$", re.IGNORECASE), "/"),
        (re.compile(rf"^\s*{number}\s+(?:times|multiplied\s+by)\s+{number}\s*$", re.IGNORECASE), "*"),
        (re.compile(rf"^\s*{number}\s+plus\s+{number}\s*$", re.IGNORECASE), "+"),
        (re.compile(rf"^\s*sum\s+of\s+{number}\s+and\s+{number}\s*$", re.IGNORECASE), "+"),
        (re.compile(rf"^\s*{number}\s+minus\s+{number}\s*$", re.IGNORECASE), "-"),
        (re.compile(rf"^\s*difference\s+(?:between|of)\s+{number}\s+and\s+{number}\s*$", re.IGNORECASE), "-"),
        # "Y root of X", "Yth root of X"
        (re.compile(rf"^\s*{number}\s*(?:st|nd|rd|th)?\s+root\s+of\s+{number}\s*$", re.IGNORECASE), "root"),
    ]

    unary_patterns = [
        (re.compile(rf"^\s*square\s+root\s+of\s+{number}\s*$", re.IGNORECASE), "sqrt"),
        (re.compile(rf"^\s*cube\s+root\s+of\s+{number}\s*$", re.IGNORECASE), "cbrt"),
        (re.compile(rf"^\s*square\s+of\s+{number}\s*$", re.IGNORECASE), "square"),
        (re.compile(rf"^\s*cube\s+of\s+{number}\s*$", re.IGNORECASE), "cube"),
        (re.compile(rf"^\s*factorial\s+of\s+{number}\s*$", re.IGNORECASE), "factorial"),
    ]

    def parse(self, query: str) -> Tuple[Optional[Any], Optional[str]]:
        query = re.sub(r"\s+", " ", query).strip()

        match = self.percent_of_pattern.match(query)
        if match:
            try:
                percent, base = float(match.group(1)), float(match.group(2))
            except ValueError:
                return None, "Invalid number in percentage calculation"
            return normalize_number(percent / 100 * base), None

        match = self.traditional_math_pattern.match(query)
        if match:
            left, left_percent, op, right, right_percent = match.groups()
            try:
                num1, num2 = float(left), float(right)
            except ValueError:
                return None, f"Invalid number ('{left}' or '{right}')"
            if left_percent:
                num1 /= 100
            if right_percent:
                num2 /= 100
            return self._calculate(num1, op, num2)

        for pattern, op in self.binary_patterns:
            match = pattern.match(query)
            if not match:
                continue
            try:
                num1, num2 = float(match.group(1)), float(match.group(2))
            except ValueError:
                return None, f"Invalid number in expression: {match.groups()}"
            if op == "root":
                if num1 == 0:
                    return None, "Zeroth root is undefined"
                # "Y root of X" is X^(1/Y)
                return self._calculate(num2, "^", 1 / num1)
            return self._calculate(num1, op, num2)

        for pattern, operation in self.unary_patterns:
            match = pattern.match(query)
            if match:
                try:
                    num = float(match.group(1))
                except ValueError:
                    return None, f"Invalid number '{match.group(1)}'"
                return self._apply(operation, num)

        return None, None

    def _apply(self, operation: str, num: float) -> Tuple[Optional[Any], Optional[str]]:
        if operation == "sqrt":
            if num < 0:
                return None, "Cannot take square root of negative number"
            result = math.sqrt(num)
        elif operation == "cbrt":
            result = math.copysign(abs(num) ** (1 / 3), num)
        elif operation == "square":
            result = num ** 2
        elif operation == "cube":
            result = num ** 3
        else:
            if num < 0 or num != int(num):
                return None, "Factorial is only defined for non-negative integers"
            result = math.factorial(int(num))
        return normalize_number(result), None

    def _calculate(self, num1: float, op: str, num2: float) -> Tuple[Optional[Any], Optional[str]]:
        """Performs the actual calculation based on the operator."""
        if op in "/%" and num2 == 0:
            return None, "Division by zero" if op == "/" else "Modulo by zero"

        try:
            if op == "+":
                result = num1 + num2
            elif op == "-":
                result = num1 - num2
            elif op == "*":
                result = num1 * num2
            elif op == "/":
                result = num1 / num2
            elif op == "%":
                result = num1 % num2
            else:
                result = num1 ** num2
        except OverflowError:
            return None, "Calculation resulted in overflow"

        if isinstance(result, complex):
            return None, "Result is not a real number"
        return normalize_number(result), None


class CurrencyCalculator(CalculatorInterface):
    """Currency conversion such as "10 USD to EUR" or "$480 in pounds".

    Live rates are fetched when an API key is configured, otherwise the demo
    rates below are used.
    """

    currency_pattern = re.compile(
        r"^\s*(?P<prefix>(?:[A-Z]{1,2})?\$|[€£¥₹₽₩฿₫₴₺₦₱₲₡₣])?\s*(?P<amount>-?[\d\.]+)"
        r"\s*(?P<suffix>\S+?)?\s+(?:to|in)\s+(?P<target>.+?)\s*$"
    )

    currency_symbols = {
        "$": "USD",
        "€": "EUR",
        "£": "GBP",
        "¥": "JPY",
        "₹": "INR",
        "₽": "RUB",
        "₩": "KRW",
        "฿": "THB",
        "₫": "VND",
        "₴": "UAH",
        "₺": "TRY",
        "₦": "NGN",
        "₱": "PHP",
        "₲": "PYG",
        "₡": "CRC",
        "₣": "CHF",
        "C$": "CAD",
        "A$": "AUD",
        "HK$": "HKD",
        "NZ$": "NZD",
        "S$": "SGD",
    }

    currency_names = {
        "dollar": "USD",
        "dollars": "USD",
        "us dollars": "USD",
        "euro": "EUR",
        "euros": "EUR",
        "pound": "GBP",
        "pounds": "GBP",
        "british pounds": "GBP",
        "uk pounds": "GBP",
        "australian dollars": "AUD",
        "yen": "JPY",
        "baht": "THB",
        "rupee": "INR",
        "rupees": "INR",
        "franc": "CHF",
        "francs": "CHF",
        "yuan": "CNY",
        "won": "KRW",
    }

    # Static exchange rates for demonstration (relative to USD)
    demo_rates = {
        "USD": 1.0,
        "EUR": 0.85,
        "GBP": 0.75,
        "JPY": 108.0,
        "CAD": 1.25,
        "AUD": 1.35,
        "CHF": 0.92,
        "CNY": 6.45,
        "INR": 75.0,
        "HKD": 7.78,
        "NZD": 1.42,
        "SGD": 1.35,
        "RUB": 75.0,
        "KRW": 1150.0,
        "THB": 33.5,
        "VND": 23000.0,
        "UAH": 28.0,
        "TRY": 8.5,
        "NGN": 410.0,
        "PHP": 48.0,
        "PYG": 6800.0,
        "CRC": 620.0,
    }

    def __init__(self, api_key: Optional[str] = EXCHANGE_RATE_API_KEY, api_url: str = EXCHANGE_RATE_API_URL):
        self.api_key = api_key
        self.api_url = api_url
        self._rate_cache: Dict[str, Dict[str, float]] = {}

    def resolve_currency(self, token: Optional[str]) -> Optional[str]:
        """Maps a symbol, name or code to a currency code."""
        if not token:
            return None
        token = token.strip()
        if token in self.currency_symbols:
            return self.currency_symbols[token]
        if token.lower() in self.currency_names:
            return self.currency_names[token.lower()]
        if token.upper() in self.demo_rates:
            return token.upper()
        return None

    def parse(self, query: str) -> Tuple[Optional[Any], Optional[str]]:
        match = self.currency_pattern.match(query)
        if not match:
            return None, None

        if match.group("prefix") and match.group("suffix"):
            return None, None
        from_currency = self.resolve_currency(match.group("prefix") or match.group("suffix"))
        to_currency = self.resolve_currency(match.group("target"))
        if from_currency is None or to_currency is None:
            # Not money, probably a unit conversion
            return None, None

        amount_str = match.group("amount")
        try:
            amount = float(amount_str)
        except ValueError:
            return None, f"Invalid number '{amount_str}' in currency conversion"

        converted_amount = self._convert_currency(amount, from_currency, to_currency)
        if converted_amount is None:
            return None, f"Unable to get exchange rate for {from_currency} to {to_currency}"

        decimal_amount = Decimal(str(converted_amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        return f"{decimal_amount:.2f} {to_currency}", None

    def _convert_currency(self, amount: float, from_currency: str, to_currency: str) -> Optional[float]:
        if from_currency == to_currency:
            return amount

        current_time = datetime.datetime.now().timestamp()
        cache_key = f"{from_currency}_{to_currency}"

        cached_rate = self._rate_cache.get(cache_key)
        if cached_rate and current_time - cached_rate["timestamp"] < EXCHANGE_RATE_CACHE_TTL:
            return amount * cached_rate["rate"]

        rate = None
        if self.api_key:
            rate = self._fetch_rate(from_currency, to_currency)
        if rate is None:
            rate = self._demo_rate(from_currency, to_currency)
        if rate is None:
            return None

        self._rate_cache[cache_key] = {"rate": rate, "timestamp": current_time}
        return amount * rate

    def _fetch_rate(self, from_currency: str, to_currency: str) -> Optional[float]:
        params = {"access_key": self.api_key, "base": from_currency, "symbols": to_currency}
        try:
            response = requests.get(self.api_url, params=params, timeout=EXCHANGE_RATE_TIMEOUT)
        except requests.RequestException as e:
            logger.error(f"Error fetching exchange rates: {e}")
            return None

        if response.status_code == 200:
            data = response.json()
            if to_currency in data.get("rates", {}):
                return float(data["rates"][to_currency])

        logger.warning(f"API call failed, using demo rates: {response.text}")
        return None

    def _demo_rate(self, from_currency: str, to_currency: str) -> Optional[float]:
        if from_currency not in self.demo_rates or to_currency not in self.demo_rates:
            return None
        return self.demo_rates[to_currency] / self.demo_rates[from_currency]


class UnitCalculator(CalculatorInterface):
    """Anything pint can read: arithmetic, quantities with units, and
    conversions such as "5 km to miles" or "3 m + 20 cm in inches"."""

    # Split at the last "to"/"in"/"as" so "12 in to cm" converts inches
    conversion_pattern = re.compile(r"^\s*(.+)\s+(?:to|in|as)\s+(.+?)\s*$")

    def __init__(self, ureg: Optional[UnitRegistry] = None):
        self.ureg = ureg or UnitRegistry()
        self.Q_ = self.ureg.Quantity

    def parse(self, query: str) -> Tuple[Optional[Any], Optional[str]]:
        source, target = query, None
        match = self.conversion_pattern.match(query)
        if match:
            source, target = match.group(1), match.group(2)

        try:
            value = self.ureg.parse_expression(source)
            if target is not None:
                value = self.Q_(value).to(target)
            return self._format(value, target), None
        except UndefinedUnitError as e:
            if target is not None:
                # "in" may have been the unit itself, e.g. "3 in"
                return self._parse_whole(query, e)
            return None, str(e)
        except DimensionalityError as e:
            return None, str(e)
        except ZeroDivisionError:
            return None, "Division by zero"
        except OverflowError:
            return None, "Calculation resulted in overflow"
        except Exception as e:
            logger.debug(f"pint could not parse '{query}': {e}")
            return None, f"Could not understand expression '{query}'"

    def _parse_whole(self, query: str, original_error: Exception) -> Tuple[Optional[Any], Optional[str]]:
        try:
            return self._format(self.ureg.parse_expression(query)), None
        except Exception:
            return None, str(original_error)

    def _format(self, value: Any, target: Optional[str] = None) -> Any:
        """Plain number for unit-less results, "<magnitude> <unit>" otherwise.

        Bytes, angles and percent are dimensionless in pint but still keep
        their unit, as does any result converted to an explicit target.
        """
        if not isinstance(value, self.Q_):
            return normalize_number(value)
        if target is None:
            # "2 m / 50 cm" cancels to 4
            value = value.to_reduced_units()
        if value.unitless:
            return normalize_number(value.magnitude)
        return f"{normalize_number(value.magnitude)} {value.units:~P}"


# --- Engine ---


class Engine:
    """Evaluates expressions by trying each calculator in turn.

    The calculators are ordered by specificity: most specific first, the
    general unit/arithmetic parser last.
    """

    def __init__(self, calculators: Optional[List[CalculatorInterface]] = None):
        if calculators is None:
            calculators = [
                MathCalculator(),  # "3 power of 2", "square root of 9", "2% of 100"
                CurrencyCalculator(),  # "10 USD to EUR", "$480 in pounds"
                UnitCalculator(),  # "5 km to miles", "(2 + 3) * 4"
            ]
        self.calculators = calculators

    def evaluate(self, expression: str) -> Tuple[Optional[Any], Optional[EvaluationError]]:
        expression = expression.strip()
        if not expression:
            return None, EvaluationError("Nothing to evaluate")

        if DECIMAL_PATTERN.match(expression):
            return expression, None

        expression = DIGIT_GROUP_PATTERN.sub("", expression)

        for calculator in self.calculators:
            name = type(calculator).__name__
            try:
                result, error = calculator.parse(expression)
            except Exception as e:
                logger.error(f"Internal error in {name} for expr '{expression}': {e}", exc_info=True)
                return None, EvaluationError(f"Internal error while evaluating '{expression}'")

            if error:
                # The calculator recognized the format but failed
                logger.warning(f"Calculator {name} failed for expression '{expression}': {error}")
                return None, EvaluationError(error)
            if result is not None:
                logger.info(f"Calculator {name} succeeded for expression '{expression}'. Result: {result}")
                return result, None

        logger.warning(f"No calculator could parse expression: '{expression}'")
        return None, EvaluationError(f"Could not understand expression '{expression}'")
