"""
Structured SELECT branches and UNION assembly.

Search queries are unions of independently built branches. Each branch is
kept as structure (columns, joins, conditions with their own arguments) and
only rendered to text with the neutral "?" marker. The union is assembled
from those renderings, and the caller rebinds placeholders on the final
text exactly once.

Invariants:
    - Rendering never produces dialect placeholders, only "?"
    - Argument order follows marker order across the whole union
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

# LIKE escape character. Not a backslash, which MySQL also reads as a string
# literal escape.
LIKE_ESCAPE = "!"


@dataclass(frozen=True)
class Condition:
    """A WHERE fragment and the arguments for its markers."""

    sql: str
    args: tuple[Any, ...] = ()


def eq(column: str, value: Any) -> Condition:
    return Condition(f"{column} = ?", (value,))


def escape_like(text: str) -> str:
    """Make %, _ and the escape character match literally in a LIKE pattern."""
    for char in (LIKE_ESCAPE, "%", "_"):
        text = text.replace(char, LIKE_ESCAPE + char)
    return text


def in_(column: str, values: Sequence[Any]) -> Condition:
    if not values:
        return Condition("(1=0)")
    markers = ", ".join("?" for _ in values)
    return Condition(f"{column} IN ({markers})", tuple(values))


def title_contains_all(column: str, term: str) -> Condition:
    """Every whitespace separated word of term must appear in column.

    Matching is a case-insensitive substring test; wildcard characters in
    term match literally.
    """
    words = term.split()
    if not words:
        return Condition("(1=1)")
    sql = " AND ".join(f"lower({column}) LIKE ? ESCAPE '{LIKE_ESCAPE}'" for _ in words)
    return Condition(f"({sql})", tuple(f"%{escape_like(word.lower())}%" for word in words))


@dataclass
class Select:
    """One SELECT statement built from parts.

    Attributes:
        columns: Select list
        table: FROM clause, alias included
        joins: JOIN clauses in order
        conditions: ANDed WHERE conditions
    """

    columns: Sequence[str]
    table: str
    joins: list[str] = field(default_factory=list)
    conditions: list[Condition] = field(default_factory=list)

    def join(self, clause: str) -> Select:
        self.joins.append(clause)
        return self

    def where(self, condition: Condition) -> Select:
        self.conditions.append(condition)
        return self

    def to_sql(self) -> tuple[str, list[Any]]:
        """Render with neutral markers.

        Returns:
            (statement, arguments in marker order)
        """
        parts = [f"SELECT {', '.join(self.columns)}", f"FROM {self.table}"]
        parts.extend(self.joins)
        args: list[Any] = []
        if self.conditions:
            parts.append("WHERE " + " AND ".join(c.sql for c in self.conditions))
            for condition in self.conditions:
                args.extend(condition.args)
        return " ".join(parts), args


def union(branches: Sequence[Select], parenthesize: bool = True) -> tuple[str, list[Any]]:
    """Join branches with UNION.

    Args:
        branches: Branches in argument order
        parenthesize: Wrap every branch in parentheses

    Returns:
        (statement with neutral markers, concatenated arguments)

    Raises:
        ValueError: If no branch is given
    """
    if not branches:
        raise ValueError("union needs at least one branch")

    rendered = [branch.to_sql() for branch in branches]
    if len(rendered) == 1:
        return rendered[0]

    if parenthesize:
        sql = "(" + ") UNION (".join(text for text, _ in rendered) + ")"
    else:
        sql = " UNION ".join(text for text, _ in rendered)
    args: list[Any] = []
    for _, branch_args in rendered:
        args.extend(branch_args)
    return sql, args
