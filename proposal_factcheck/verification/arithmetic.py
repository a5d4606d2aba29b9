"""Arithmetic Verifier: independent re-derivation of numeric claims.

Informal financial notation is normalized through a fixed rewrite chain, then the
expression is tokenized, converted to postfix (shunting-yard) and evaluated with
exact rationals. The rewrite order matters: APR conversion and word scales run
before the generic suffix expansion so "12% compounded monthly" and "1.2 million"
are not mangled by it.

Rewrite chain:
1. Unicode math symbols -> ASCII (minus, times, divide, fullwidth parens, odd spaces)
2. "APR X% compounded <freq>" -> APY, (1 + X/100/n)^n - 1
3. "1.2 million" / "3 billion" / "5 thousand" -> plain numbers
4. "50 bps" -> (50/10000)
5. "5% of 200" -> (5/100*200)
6. k/M/B/mm/bn suffixes, currency symbols and thousands separators

Usage:
    from proposal_factcheck.verification.arithmetic import evaluate, nearly_equal

    evaluate("3 * 1.5M")          # 4500000.0
    evaluate("APR 12% compounded monthly")  # 0.12682503013196977
"""

import math
import re
from decimal import Decimal
from fractions import Fraction
from typing import Optional

import structlog

from proposal_factcheck.config.prompts.verification_prompts import (
    ARITHMETIC_ORACLE_SYSTEM_PROMPT,
    ARITHMETIC_ORACLE_USER_PROMPT,
)
from proposal_factcheck.exceptions import (
    ArithmeticParseError,
    GenerationError,
    SchemaValidationError,
)
from proposal_factcheck.llm.gemini_client import ReasoningClient
from proposal_factcheck.llm.structured import NumberSchema, ObjectSchema, StringSchema
from proposal_factcheck.verification.schemas import (
    ArithmeticCheck,
    ArithmeticResult,
    ClaimStatus,
)

DEFAULT_REL_TOL = 1e-6
DEFAULT_ABS_TOL = 1e-6

# Confidence levels for arithmetic results
CORROBORATED_CONFIDENCE = 0.95
LOCAL_ONLY_CONFIDENCE = 0.9
DISAGREEMENT_CONFIDENCE = 0.6
PARSE_FAILURE_CONFIDENCE = 0.3

_UNICODE_MAP = str.maketrans({
    **dict.fromkeys("\u2212\u2012\u2013\u2014\u2015", "-"),
    **dict.fromkeys("\u00d7\u2715\u2716\u22c5\u2219\u00b7", "*"),
    **dict.fromkeys("\u00f7\u2044\u2215", "/"),
    "\uff08": "(",
    "\uff09": ")",
    **dict.fromkeys("\u2009\u202f\u200a\u200b\u2005\u00a0", " "),
})

COMPOUNDING_PERIODS = {
    "daily": 365,
    "weekly": 52,
    "monthly": 12,
    "quarterly": 4,
    "annually": 1,
    "annual": 1,
    "yearly": 1,
}

WORD_SCALES = {
    "thousand": Decimal(1_000),
    "million": Decimal(1_000_000),
    "billion": Decimal(1_000_000_000),
}

SUFFIX_SCALES = {
    "k": Decimal(1_000),
    "m": Decimal(1_000_000),
    "mm": Decimal(1_000_000),
    "b": Decimal(1_000_000_000),
    "bn": Decimal(1_000_000_000),
}

_FREQ = "|".join(COMPOUNDING_PERIODS)
_APR = re.compile(
    rf"(?:apy\s+from\s+)?apr\s*(?:of\s*)?([0-9]+(?:\.[0-9]+)?)\s*%\s*(?:compounded\s*)?({_FREQ})\b",
    re.IGNORECASE,
)
_WORD_SCALE = re.compile(r"([0-9][0-9,]*(?:\.[0-9]+)?)\s*(thousand|million|billion)\b", re.IGNORECASE)
_BPS = re.compile(r"([0-9]+(?:\.[0-9]+)?)\s*bps?\b", re.IGNORECASE)
_AMOUNT = r"(?:[$€£¥]\s*)?[0-9][0-9,_]*(?:\.[0-9]+)?(?:[ \t]*(?:mm|bn|[kmb])(?![a-z]))?(?![a-z])"
_PERCENT_OF = re.compile(rf"([0-9]+(?:\.[0-9]+)?)\s*%\s*of\s*({_AMOUNT})", re.IGNORECASE)
_SUFFIXED = re.compile(_AMOUNT, re.IGNORECASE)
_NUMBER_WITH_SUFFIX = re.compile(r"^([0-9]*\.?[0-9]+)(mm|bn|[kmb])?$", re.IGNORECASE)
_TOKEN = re.compile(r"\s*(?:([0-9]+(?:\.[0-9]*)?|\.[0-9]+)|([-+*/()]))")

_PRECEDENCE = {"+": 1, "-": 1, "*": 2, "/": 2, "neg": 3}


def _fmt(value: Decimal) -> str:
    """Render a Decimal in plain positional notation (no exponent)."""
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def to_number_with_suffix(text: str) -> Optional[Decimal]:
    """Parse "1.2M", "$1,200", "3bn" into a Decimal; None if not a number."""
    cleaned = re.sub(r"[,$€£¥_\s]", "", text)
    match = _NUMBER_WITH_SUFFIX.match(cleaned)
    if not match:
        return None
    number = Decimal(match.group(1))
    suffix = (match.group(2) or "").lower()
    return number * SUFFIX_SCALES[suffix] if suffix else number


def normalize_ascii_math(expression: str) -> str:
    return expression.translate(_UNICODE_MAP)


def rewrite_apr_to_apy(expression: str) -> str:
    def _replace(match: re.Match) -> str:
        apr = float(match.group(1)) / 100
        periods = COMPOUNDING_PERIODS[match.group(2).lower()]
        apy = (1 + apr / periods) ** periods - 1
        return _fmt(Decimal(repr(apy)))

    return _APR.sub(_replace, expression)


def rewrite_word_scales(expression: str) -> str:
    def _replace(match: re.Match) -> str:
        number = Decimal(match.group(1).replace(",", ""))
        return _fmt(number * WORD_SCALES[match.group(2).lower()])

    return _WORD_SCALE.sub(_replace, expression)


def rewrite_bps(expression: str) -> str:
    return _BPS.sub(lambda m: f"({m.group(1)}/10000)", expression)


def rewrite_percent_of(expression: str) -> str:
    def _replace(match: re.Match) -> str:
        base = to_number_with_suffix(match.group(2))
        if base is None:
            return match.group(0)
        return f"({match.group(1)}/100*{_fmt(base)})"

    return _PERCENT_OF.sub(_replace, expression)


def rewrite_suffixes(expression: str) -> str:
    def _replace(match: re.Match) -> str:
        value = to_number_with_suffix(match.group(0))
        return match.group(0) if value is None else _fmt(value)

    return _SUFFIXED.sub(_replace, expression)


def normalize_expression(expression: str) -> str:
    """Apply the full rewrite chain, in order."""
    text = normalize_ascii_math(expression)
    text = rewrite_apr_to_apy(text)
    text = rewrite_word_scales(text)
    text = rewrite_bps(text)
    text = rewrite_percent_of(text)
    return rewrite_suffixes(text)


def tokenize(expression: str) -> list[str]:
    """Split a normalized expression into numbers and operators.

    Raises:
        ArithmeticParseError: On any character that is not a number, operator,
            parenthesis or whitespace.
    """
    tokens: list[str] = []
    position = 0
    stripped = expression.rstrip()
    while position < len(stripped):
        match = _TOKEN.match(stripped, position)
        if not match:
            raise ArithmeticParseError(
                f"Unrecognized token at position {position}: {stripped[position:position + 12]!r}"
            )
        tokens.append(match.group(1) or match.group(2))
        position = match.end()
    return tokens


def to_postfix(tokens: list[str]) -> list[str]:
    """Shunting-yard conversion. Unary minus/plus are resolved here."""
    output: list[str] = []
    operators: list[str] = []
    previous: Optional[str] = None

    for token in tokens:
        if token[0].isdigit() or token[0] == ".":
            output.append(token)
        elif token == "(":
            operators.append(token)
        elif token == ")":
            while operators and operators[-1] != "(":
                output.append(operators.pop())
            if not operators:
                raise ArithmeticParseError("Mismatched parentheses")
            operators.pop()
        else:
            unary = previous is None or previous in _PRECEDENCE or previous == "("
            if unary:
                if token == "+":
                    previous = token
                    continue
                if token != "-":
                    raise ArithmeticParseError(f"Operator {token!r} is missing a left operand")
                operators.append("neg")
                previous = "neg"
                continue
            while (
                operators
                and operators[-1] != "("
                and _PRECEDENCE[operators[-1]] >= _PRECEDENCE[token]
            ):
                output.append(operators.pop())
            operators.append(token)
        previous = token

    while operators:
        op = operators.pop()
        if op == "(":
            raise ArithmeticParseError("Mismatched parentheses")
        output.append(op)
    return output


def evaluate_postfix(postfix: list[str]) -> Fraction:
    stack: list[Fraction] = []
    for token in postfix:
        if token == "neg":
            if not stack:
                raise ArithmeticParseError("Unary minus without operand")
            stack.append(-stack.pop())
        elif token in _PRECEDENCE:
            if len(stack) < 2:
                raise ArithmeticParseError(f"Operator {token!r} is missing an operand")
            right = stack.pop()
            left = stack.pop()
            if token == "+":
                stack.append(left + right)
            elif token == "-":
                stack.append(left - right)
            elif token == "*":
                stack.append(left * right)
            else:
                if right == 0:
                    raise ArithmeticParseError("Division by zero")
                stack.append(left / right)
        else:
            stack.append(Fraction(token))

    if len(stack) != 1:
        raise ArithmeticParseError(f"Expression did not reduce to a single value ({len(stack)} left)")
    return stack[0]


def evaluate(expression: str) -> float:
    """Normalize and evaluate an informal arithmetic expression.

    Raises:
        ArithmeticParseError: If the expression is empty, contains unrecognized
            tokens, has mismatched parentheses or does not reduce to one value.
    """
    normalized = normalize_expression(expression)
    tokens = tokenize(normalized)
    if not tokens:
        raise ArithmeticParseError("Empty expression")
    return float(evaluate_postfix(to_postfix(tokens)))


def nearly_equal(
    a: float,
    b: float,
    rel_tol: float = DEFAULT_REL_TOL,
    abs_tol: float = DEFAULT_ABS_TOL,
) -> bool:
    """|a - b| <= max(rel_tol * max(|a|, |b|), abs_tol)."""
    return math.isclose(a, b, rel_tol=rel_tol, abs_tol=abs_tol)


# ── Cross-checking verifier ─────────────────────────────────────────

ORACLE_SCHEMA = ObjectSchema(
    properties={"value": NumberSchema(), "working": StringSchema()},
    required=("value",),
)


class ArithmeticVerifier:
    """Verify arithmetic checks locally, cross-checked against the reasoning collaborator.

    The local evaluation is the independent method; the collaborator is asked
    separately for the same value. Agreement raises confidence, disagreement lowers
    it. Status only flips to CONTESTED when a claimed value is present and the
    local value misses it beyond tolerance; the oracle value is reported as
    ``final_value`` but never decides the status on its own.
    """

    def __init__(self, llm: Optional[ReasoningClient] = None, use_oracle: bool = True) -> None:
        self._llm = llm
        self._use_oracle = use_oracle and llm is not None
        self._logger = structlog.get_logger().bind(component="ArithmeticVerifier")

    async def verify(self, check: ArithmeticCheck) -> ArithmeticResult:
        abs_tol = check.tolerance if check.tolerance is not None else DEFAULT_ABS_TOL

        local: Optional[float] = None
        parse_error: Optional[str] = None
        try:
            local = evaluate(check.expression)
        except ArithmeticParseError as e:
            parse_error = str(e)
            self._logger.warning("arithmetic_parse_failed", title=check.title, error=parse_error)

        oracle = await self._ask_oracle(check) if self._use_oracle else None
        final = oracle if oracle is not None and math.isfinite(oracle) else local

        if parse_error is not None:
            return ArithmeticResult(
                check=check,
                oracle_value=oracle,
                final_value=final,
                status=ClaimStatus.UNKNOWN,
                confidence=PARSE_FAILURE_CONFIDENCE,
                error=parse_error,
            )

        corroborated: Optional[bool] = None
        confidence = LOCAL_ONLY_CONFIDENCE
        if oracle is not None and local is not None:
            corroborated = nearly_equal(local, oracle, abs_tol=abs_tol)
            confidence = CORROBORATED_CONFIDENCE if corroborated else DISAGREEMENT_CONFIDENCE

        status = ClaimStatus.SUPPORTED
        if check.claimed_value is not None and not nearly_equal(
            local, check.claimed_value, abs_tol=abs_tol
        ):
            status = ClaimStatus.CONTESTED

        self._logger.info(
            "arithmetic_verified",
            title=check.title,
            local=local,
            oracle=oracle,
            status=status.value,
            corroborated=corroborated,
        )
        return ArithmeticResult(
            check=check,
            local_value=local,
            oracle_value=oracle,
            final_value=final,
            corroborated=corroborated,
            status=status,
            confidence=confidence,
        )

    async def _ask_oracle(self, check: ArithmeticCheck) -> Optional[float]:
        try:
            raw = await self._llm.extract_structured(
                ARITHMETIC_ORACLE_SYSTEM_PROMPT,
                ARITHMETIC_ORACLE_USER_PROMPT.format(
                    title=check.title,
                    expression=check.expression,
                    description=check.description or "",
                ),
                ORACLE_SCHEMA,
                schema_name="arithmetic_value",
                max_output_tokens=400,
                difficulty="easy",
            )
        except (SchemaValidationError, GenerationError) as e:
            self._logger.warning("arithmetic_oracle_failed", title=check.title, error=str(e))
            return None
        value = float(raw["value"])
        return value if math.isfinite(value) else None
