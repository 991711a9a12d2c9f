"""
MatchResult - verdict returned by every matcher.
"""

from typing import Any, Optional

from pydantic import BaseModel


class MatchResult(BaseModel):
    """
    Structured pass/fail verdict.

    Truthy iff the assertion passed, so a test can simply
    ``assert have_key(bucket, key)``; the ``repr`` then shows the message
    and diff in pytest's failure output.
    """
    passed: bool
    message: str
    actual: Optional[Any] = None
    expected: Optional[Any] = None
    diff: Optional[str] = None

    def __bool__(self) -> bool:
        return self.passed

    def explain(self) -> str:
        lines = [self.message]
        if self.diff:
            lines.append(self.diff)
        elif self.actual is not None or self.expected is not None:
            lines.append(f"expected: {self.expected!r}")
            lines.append(f"actual:   {self.actual!r}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        verdict = "passed" if self.passed else "failed"
        return f"MatchResult({verdict}: {self.explain()})"

    __str__ = explain

    def negate(self, message: str) -> "MatchResult":
        """Inverse verdict, e.g. for "key should NOT exist"."""
        return MatchResult(
            passed=not self.passed,
            message=message,
            actual=self.actual,
            expected=self.expected,
            diff=self.diff,
        )
