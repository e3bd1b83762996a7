"""Evaluator.

A left to right integer expression evaluator. There is no operator
precedence, brackets are resolved first and everything else is applied in
the order it is read.

1) Start in the AWAITING_TERM state with a result of 0 and a pending '+'.
The first number of every level is therefore added to 0.

2) Iterate the characters in the expression, plus an end of input marker.
    - AWAITING_TERM: a digit or '-' starts a numeral, a '(' pushes the
    current (result, operator) frame and starts a fresh level.
    - ACCUMULATING_DIGITS: digits are appended to the numeral. Anything
    else finalizes the numeral, and operators, ')' and the end of input
    are handed to AWAITING_OPERATOR without advancing.
    - AWAITING_OPERATOR: an operator becomes the pending operator, a ')'
    pops a frame and combines the closed level into it, the end of input
    succeeds if no frames remain.
    - Whitespace is skipped in every state.
    - Anything else is invalid.

3) Any invalid input stops the scan. evaluate returns None,
evaluate_detailed reports why and where.
"""

import dataclasses
import enum
import logging
import typing as t

logger = logging.getLogger(__name__)

# Define Operator as a Literal for strict type checking on keys.
Operator = t.Literal["+", "-", "/", "*"]


def _truncating_division(a: int, b: int) -> int | None:
    if b == 0:
        return None

    # Python's // floors, the evaluator truncates toward zero. e.g: -7/2 = -3
    quotient: t.Final = abs(a) // abs(b)
    return quotient if (a < 0) == (b < 0) else -quotient


# Every operation returns an integer, or None if the operation is invalid.
operator_map: t.Final[dict[Operator, t.Callable[[int, int], int | None]]] = {
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
    "/": _truncating_division,
    "*": lambda a, b: a * b,
}

WHITESPACE: t.Final = frozenset(" \t\r\n")

# Marks the end of input. It cannot collide with a real character because
# every character of a str has a length of 1.
_END: t.Final = ""


def is_operator(test_char: str, /) -> t.TypeGuard[Operator]:
    """Type-safe helper to check if a character is a valid Operator.

    Args:
        test_char: The character that should be checked as an operator.

    Returns:
        bool: True, if the test_char is an operator.

    """
    return test_char in operator_map


def is_digit(test_char: str, /) -> bool:
    """Return True for ASCII digits only."""
    # isdigit() would accept superscripts and other scripts. e.g: ², 五
    return len(test_char) == 1 and "0" <= test_char <= "9"


def combine(a: int, b: int, operator: Operator, /) -> int | None:
    """Apply a single operator.

    Args:
        a: The left hand side, the accumulated result.
        b: The right hand side, the newly completed term.
        operator: The pending operator.

    Returns:
        int | None: The result, or None if the operation is invalid. e.g:
        division by 0.

    """
    return operator_map[operator](a, b)


class State(enum.Enum):
    """Scanner states."""

    AWAITING_TERM = "awaiting_term"
    AWAITING_OPERATOR = "awaiting_operator"
    ACCUMULATING_DIGITS = "accumulating_digits"


class ErrorKind(enum.Enum):
    """Why an expression was rejected."""

    UNEXPECTED_CHARACTER = "unexpected_character"
    UNEXPECTED_END = "unexpected_end"
    MALFORMED_NUMERAL = "malformed_numeral"
    NUMERAL_OUT_OF_RANGE = "numeral_out_of_range"
    UNBALANCED_GROUPING = "unbalanced_grouping"
    DIVISION_BY_ZERO = "division_by_zero"
    NESTING_TOO_DEEP = "nesting_too_deep"


class EvaluationError(Exception):
    """Raised by the scanner when the expression is invalid.

    This never escapes evaluate or evaluate_detailed.

    Args:
        kind: The category of the failure.
        position: Offset of the offending character, the length of the
            expression if the failure was at the end of input.

    """

    def __init__(self, kind: ErrorKind, position: int) -> None:
        super().__init__(f"{kind.value} at position {position}")
        self.kind: t.Final = kind
        self.position: t.Final = position


@dataclasses.dataclass(frozen=True, slots=True)
class Frame:
    """The enclosing level, saved when a '(' is opened.

    Args:
        saved_result: The accumulated result of the enclosing level.
        saved_operator: The operator that combines the enclosing result with
            the value of the bracket once it closes.

    """

    saved_result: int
    saved_operator: Operator


@dataclasses.dataclass(frozen=True, slots=True)
class Evaluation:
    """The outcome of evaluate_detailed.

    Args:
        value: The result if the expression is valid.
        error: Why the expression was rejected, None if it is valid.
        position: Where the expression was rejected, None if it is valid.

    """

    value: int | None = None
    error: ErrorKind | None = None
    position: int | None = None

    def __post_init__(self) -> None:
        """Ensure the record is either a result or a failure, not both."""
        if (self.value is None) == (self.error is None):
            msg = "Evaluation needs exactly one of value or error"
            raise ValueError(msg)

        if (self.error is None) != (self.position is None):
            msg = "position is required with, and only with, an error"
            raise ValueError(msg)

    @property
    def ok(self) -> bool:
        """True if the expression is valid."""
        return self.error is None


T = t.TypeVar("T")


# Very basic stack wrapper, used to make intention clearer by encapsulating
# list operations, and removing the [-1] magic number from the scanner.
class Stack(t.Generic[T]):
    """Basic stack implementation to encapsulate list operations."""

    __slots__ = ("_array",)

    def __init__(self) -> None:
        """Initialize the backing array."""
        self._array: t.Final[list[T]] = []

    def push(self, item: T, /) -> None:
        """Push to the stack."""
        self._array.append(item)

    def pop(self) -> T:
        """Pop from the stack."""
        return self._array.pop()

    def empty(self) -> bool:
        """Return True if the stack is empty."""
        return not len(self)

    def __len__(self) -> int:
        """Return the size of the stack."""
        return len(self._array)


class _Scanner:
    """Single use state machine for one expression.

    Attributes:
        state: The current scanner state.
        result: The accumulated result of the current level.
        operator: The pending operator of the current level.

    """

    __slots__ = (
        "_frames",
        "_max_depth",
        "_numeral",
        "_numeral_start",
        "operator",
        "result",
        "state",
    )

    def __init__(self, max_depth: int | None) -> None:
        self._frames: t.Final[Stack[Frame]] = Stack()
        self._max_depth: t.Final = max_depth
        self._numeral: list[str] = []
        self._numeral_start = 0
        self.state = State.AWAITING_TERM
        self.result = 0
        self.operator: Operator = "+"

    def step(self, test_char: str, position: int, /) -> bool:
        """Process one character in the current state.

        Args:
            test_char: The character, or _END at the end of input.
            position: Offset of the character in the expression.

        Returns:
            bool: True if the character was consumed, False if it should be
            processed again in the new state.

        Raises:
            EvaluationError: The expression is invalid.

        """
        if self.state is State.AWAITING_TERM:
            self._await_term(test_char, position)
            return True

        if self.state is State.ACCUMULATING_DIGITS:
            return self._accumulate(test_char, position)

        self._await_operator(test_char, position)
        return True

    def _await_term(self, test_char: str, position: int) -> None:
        if is_digit(test_char) or test_char == "-":
            self._numeral.append(test_char)
            self._numeral_start = position
            self.state = State.ACCUMULATING_DIGITS
            return

        if test_char == "(":
            self._open(position)
            return

        if test_char in WHITESPACE:
            return

        if test_char == _END:
            # Nothing to evaluate, or a dangling operator. e.g: 1+
            raise EvaluationError(ErrorKind.UNEXPECTED_END, position)

        # An operator or ')' where a term is expected. e.g: +1, ()
        raise EvaluationError(ErrorKind.UNEXPECTED_CHARACTER, position)

    def _accumulate(self, test_char: str, position: int) -> bool:
        if is_digit(test_char):
            self._numeral.append(test_char)
            return True

        if test_char in WHITESPACE:
            self._flush_numeral(position)
            return True

        if is_operator(test_char) or test_char in (")", _END):
            # Let the AWAITING_OPERATOR arm process this character.
            self._flush_numeral(position)
            return False

        # A '(' after a number is not implicit multiplication, and a sign
        # cannot negate a bracket. e.g: 1(2), -(12)
        raise EvaluationError(ErrorKind.UNEXPECTED_CHARACTER, position)

    def _await_operator(self, test_char: str, position: int) -> None:
        if is_operator(test_char):
            self.operator = test_char
            self.state = State.AWAITING_TERM
            return

        if test_char == ")":
            self._close(position)
            return

        if test_char in WHITESPACE:
            return

        if test_char == _END:
            if not self._frames.empty():
                # Mismatched parenthesis. e.g: ((1+2)
                raise EvaluationError(ErrorKind.UNBALANCED_GROUPING, position)
            return

        # A term where an operator is expected. e.g: 1 1, (2*3)4
        raise EvaluationError(ErrorKind.UNEXPECTED_CHARACTER, position)

    def _flush_numeral(self, position: int) -> None:
        """Apply the pending operator to the numeral being parsed."""
        if self._numeral == ["-"]:
            # A sign with no digits. e.g: --1, - 1
            raise EvaluationError(
                ErrorKind.MALFORMED_NUMERAL,
                self._numeral_start,
            )

        try:
            number: t.Final = int("".join(self._numeral))
        except ValueError as exc:
            # More digits than sys.get_int_max_str_digits() allows.
            raise EvaluationError(
                ErrorKind.NUMERAL_OUT_OF_RANGE,
                self._numeral_start,
            ) from exc

        self._numeral.clear()
        self._apply(number, self.operator, position)
        self.state = State.AWAITING_OPERATOR

    def _open(self, position: int) -> None:
        if self._max_depth is not None and len(self._frames) >= self._max_depth:
            raise EvaluationError(ErrorKind.NESTING_TOO_DEEP, position)

        self._frames.push(Frame(self.result, self.operator))
        self.result = 0
        self.operator = "+"

    def _close(self, position: int) -> None:
        if self._frames.empty():
            # No parent to merge with, too many closing parentheses. e.g: 4)
            raise EvaluationError(ErrorKind.UNBALANCED_GROUPING, position)

        frame: t.Final = self._frames.pop()
        inner: t.Final = self.result
        self.result = frame.saved_result
        self._apply(inner, frame.saved_operator, position)

    def _apply(self, number: int, operator: Operator, position: int) -> None:
        if (result := combine(self.result, number, operator)) is None:
            # Only division can fail. e.g: 1/0, 1/(2-2)
            raise EvaluationError(ErrorKind.DIVISION_BY_ZERO, position)

        self.result = result


def evaluate_detailed(
    expression: str,
    /,
    *,
    max_depth: int | None = None,
) -> Evaluation:
    """Evaluate a mathematical expression and report why it failed.

    Args:
        expression: The expression to evaluate.
        max_depth: The maximum number of open brackets, None for no limit.

    Returns:
        Evaluation: The result, or the kind and position of the failure.

    Raises:
        ValueError: max_depth is negative.

    """
    if max_depth is not None and max_depth < 0:
        msg = f"max_depth must be non-negative, got {max_depth}"
        raise ValueError(msg)

    scanner: t.Final = _Scanner(max_depth)
    position = 0

    try:
        while True:
            test_char = (
                expression[position] if position < len(expression) else _END
            )
            if not scanner.step(test_char, position):
                # Process the same character again in the new state.
                continue

            if test_char == _END:
                break

            position += 1
    except EvaluationError as exc:
        logger.debug(
            "Rejected expression %r: %s at position %d",
            expression,
            exc.kind.value,
            exc.position,
        )
        return Evaluation(error=exc.kind, position=exc.position)

    return Evaluation(value=scanner.result)


def evaluate(expression: str, /, *, max_depth: int | None = None) -> int | None:
    """Evaluate a mathematical expression.

    Args:
        expression: The expression to evaluate.
        max_depth: The maximum number of open brackets, None for no limit.

    Returns:
        int | None: The result if the expression is valid.

    """
    return evaluate_detailed(expression, max_depth=max_depth).value
