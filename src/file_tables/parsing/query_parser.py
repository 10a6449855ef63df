"""Parser for the SQL-like instruction strings sent to file tables.

Only the narrow dialect the bot actually issues is accepted: single-table
selects, counts, inserts, updates and deletes with ``AND``-joined conditions.
Anything else (joins, ``OR``, grouping, pragmas) is a ``SyntaxError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

import ply.yacc as yacc

from file_tables.parsing.query_lexer import QueryLexer


@dataclass(frozen=True)
class Placeholder:
    """A ``?`` positional parameter, numbered in textual order."""

    index: int


@dataclass
class Condition:
    """A WHERE condition."""

    field: str
    operator: str  # =, !=, <, <=, >, >=, is null, is not null
    value: Any = None


@dataclass
class OrderItem:
    """One ORDER BY key."""

    field: str
    descending: bool = False


@dataclass
class SelectStatement:
    """A SELECT statement."""

    table: str
    columns: list[str] | None = None  # None means *
    where: list[Condition] = field(default_factory=list)
    order_by: list[OrderItem] = field(default_factory=list)
    limit: int | Placeholder | None = None


@dataclass
class CountStatement:
    """A SELECT COUNT(*) statement."""

    table: str
    alias: str = "count"
    where: list[Condition] = field(default_factory=list)


@dataclass
class InsertStatement:
    """An INSERT [OR REPLACE] statement."""

    table: str
    columns: list[str] | None = None
    values: list[Any] = field(default_factory=list)
    replace: bool = False


@dataclass
class UpdateStatement:
    """An UPDATE statement."""

    table: str
    assignments: list[tuple[str, Any]] = field(default_factory=list)
    where: list[Condition] = field(default_factory=list)


@dataclass
class DeleteStatement:
    """A DELETE statement."""

    table: str
    where: list[Condition] = field(default_factory=list)


Statement = Union[SelectStatement, CountStatement, InsertStatement, UpdateStatement, DeleteStatement]


class QueryParser:
    """Parser for table instructions."""

    tokens = QueryLexer.tokens

    def __init__(self) -> None:
        self.lexer = QueryLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore

    def p_statement(self, p: yacc.YaccProduction) -> None:
        """statement : query SEMICOLON
                     | query"""
        p[0] = p[1]

    def p_query(self, p: yacc.YaccProduction) -> None:
        """query : select_query
                 | count_query
                 | insert_query
                 | update_query
                 | delete_query"""
        p[0] = p[1]

    # --- SELECT ---

    def p_select_query(self, p: yacc.YaccProduction) -> None:
        """select_query : SELECT select_list FROM IDENTIFIER where_clause order_clause limit_clause"""
        p[0] = SelectStatement(
            table=p[4], columns=p[2], where=p[5], order_by=p[6], limit=p[7],
        )

    def p_select_list_star(self, p: yacc.YaccProduction) -> None:
        """select_list : STAR"""
        p[0] = None

    def p_select_list_columns(self, p: yacc.YaccProduction) -> None:
        """select_list : column_list"""
        p[0] = p[1]

    def p_count_query(self, p: yacc.YaccProduction) -> None:
        """count_query : SELECT COUNT LPAREN STAR RPAREN count_alias FROM IDENTIFIER where_clause"""
        p[0] = CountStatement(table=p[8], alias=p[6], where=p[9])

    def p_count_alias(self, p: yacc.YaccProduction) -> None:
        """count_alias : AS column
                       | AS COUNT"""
        p[0] = p[2]

    def p_count_alias_empty(self, p: yacc.YaccProduction) -> None:
        """count_alias : """
        p[0] = "count"

    def p_order_clause(self, p: yacc.YaccProduction) -> None:
        """order_clause : ORDER BY order_list"""
        p[0] = p[3]

    def p_order_clause_empty(self, p: yacc.YaccProduction) -> None:
        """order_clause : """
        p[0] = []

    def p_order_list_single(self, p: yacc.YaccProduction) -> None:
        """order_list : order_item"""
        p[0] = [p[1]]

    def p_order_list_multiple(self, p: yacc.YaccProduction) -> None:
        """order_list : order_list COMMA order_item"""
        p[0] = p[1] + [p[3]]

    def p_order_item(self, p: yacc.YaccProduction) -> None:
        """order_item : column direction"""
        p[0] = OrderItem(field=p[1], descending=p[2])

    def p_direction(self, p: yacc.YaccProduction) -> None:
        """direction : ASC
                     | DESC"""
        p[0] = p[1].lower() == "desc"

    def p_direction_empty(self, p: yacc.YaccProduction) -> None:
        """direction : """
        p[0] = False

    def p_limit_clause(self, p: yacc.YaccProduction) -> None:
        """limit_clause : LIMIT placeholder
                        | LIMIT INTEGER"""
        p[0] = p[2]

    def p_limit_clause_empty(self, p: yacc.YaccProduction) -> None:
        """limit_clause : """
        p[0] = None

    # --- INSERT ---

    def p_insert_query(self, p: yacc.YaccProduction) -> None:
        """insert_query : INSERT insert_mode INTO IDENTIFIER insert_columns VALUES LPAREN operand_list RPAREN"""
        p[0] = InsertStatement(table=p[4], columns=p[5], values=p[8], replace=p[2])

    def p_insert_mode_replace(self, p: yacc.YaccProduction) -> None:
        """insert_mode : OR REPLACE"""
        p[0] = True

    def p_insert_mode_empty(self, p: yacc.YaccProduction) -> None:
        """insert_mode : """
        p[0] = False

    def p_insert_columns(self, p: yacc.YaccProduction) -> None:
        """insert_columns : LPAREN column_list RPAREN"""
        p[0] = p[2]

    def p_insert_columns_empty(self, p: yacc.YaccProduction) -> None:
        """insert_columns : """
        p[0] = None

    def p_operand_list_single(self, p: yacc.YaccProduction) -> None:
        """operand_list : operand"""
        p[0] = [p[1]]

    def p_operand_list_multiple(self, p: yacc.YaccProduction) -> None:
        """operand_list : operand_list COMMA operand"""
        p[0] = p[1] + [p[3]]

    # --- UPDATE / DELETE ---

    def p_update_query(self, p: yacc.YaccProduction) -> None:
        """update_query : UPDATE IDENTIFIER SET assignment_list where_clause"""
        p[0] = UpdateStatement(table=p[2], assignments=p[4], where=p[5])

    def p_assignment_list_single(self, p: yacc.YaccProduction) -> None:
        """assignment_list : assignment"""
        p[0] = [p[1]]

    def p_assignment_list_multiple(self, p: yacc.YaccProduction) -> None:
        """assignment_list : assignment_list COMMA assignment"""
        p[0] = p[1] + [p[3]]

    def p_assignment(self, p: yacc.YaccProduction) -> None:
        """assignment : column EQ operand"""
        p[0] = (p[1], p[3])

    def p_delete_query(self, p: yacc.YaccProduction) -> None:
        """delete_query : DELETE FROM IDENTIFIER where_clause"""
        p[0] = DeleteStatement(table=p[3], where=p[4])

    # --- WHERE ---

    def p_where_clause(self, p: yacc.YaccProduction) -> None:
        """where_clause : WHERE condition_list"""
        p[0] = p[2]

    def p_where_clause_empty(self, p: yacc.YaccProduction) -> None:
        """where_clause : """
        p[0] = []

    def p_condition_list_single(self, p: yacc.YaccProduction) -> None:
        """condition_list : condition"""
        p[0] = [p[1]]

    def p_condition_list_and(self, p: yacc.YaccProduction) -> None:
        """condition_list : condition_list AND condition"""
        p[0] = p[1] + [p[3]]

    def p_condition_comparison(self, p: yacc.YaccProduction) -> None:
        """condition : column EQ operand
                     | column NEQ operand
                     | column LT operand
                     | column LTE operand
                     | column GT operand
                     | column GTE operand"""
        operator = "!=" if p[2] == "<>" else p[2]
        p[0] = Condition(field=p[1], operator=operator, value=p[3])

    def p_condition_is_null(self, p: yacc.YaccProduction) -> None:
        """condition : column IS NULL"""
        p[0] = Condition(field=p[1], operator="is null")

    def p_condition_is_not_null(self, p: yacc.YaccProduction) -> None:
        """condition : column IS NOT NULL"""
        p[0] = Condition(field=p[1], operator="is not null")

    # --- Terminals ---

    def p_column_list_single(self, p: yacc.YaccProduction) -> None:
        """column_list : column"""
        p[0] = [p[1]]

    def p_column_list_multiple(self, p: yacc.YaccProduction) -> None:
        """column_list : column_list COMMA column"""
        p[0] = p[1] + [p[3]]

    def p_column(self, p: yacc.YaccProduction) -> None:
        """column : IDENTIFIER
                  | ASC
                  | DESC"""
        # "desc" is both a keyword and the stage description column
        p[0] = p[1]

    def p_operand_placeholder(self, p: yacc.YaccProduction) -> None:
        """operand : placeholder"""
        p[0] = p[1]

    def p_placeholder(self, p: yacc.YaccProduction) -> None:
        """placeholder : PLACEHOLDER"""
        p[0] = Placeholder(index=p[1])

    def p_operand_literal(self, p: yacc.YaccProduction) -> None:
        """operand : INTEGER
                   | FLOAT
                   | STRING"""
        p[0] = p[1]

    def p_operand_null(self, p: yacc.YaccProduction) -> None:
        """operand : NULL"""
        p[0] = None

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise SyntaxError(f"Syntax error at '{p.value}' (position {p.lexpos})")
        else:
            raise SyntaxError("Syntax error at end of input")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, start="statement", **kwargs)

    def parse(self, data: str) -> Statement:
        """Parse an instruction string."""
        if self.parser is None:
            self.build(debug=False, write_tables=False)

        self.lexer.input(data)
        return self.parser.parse(lexer=self.lexer.lexer)
