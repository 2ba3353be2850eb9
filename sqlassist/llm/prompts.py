"""Query templates for each function mode.

The generation service receives one free-text ``query``. The template wraps
the user's text with the target SQL dialect; optional schema context is
appended verbatim as a JSON block.
"""

from __future__ import annotations

import json
from typing import Any

from sqlassist.models.enums import FunctionMode

DEFAULT_SOURCE_DIALECT = "mysql"

CREATE_TEMPLATE = """Convert the following natural-language request into a {dialect} SQL query.

Request: {text}

Response format:
SQL: [generated SQL query]
Explanation: [short explanation of the query]
Confidence: [number between 0 and 1]"""

EXPLAIN_TEMPLATE = """Explain the following {dialect} SQL query in detail:

{text}"""

GRAMMAR_TEMPLATE = """Validate the grammar of the following {dialect} SQL query and correct it if needed. \
Reply with the corrected SQL only:

{text}"""

COMMENT_TEMPLATE = """Add explanatory comments to the following {dialect} SQL query:

{text}"""

TRANSFORM_TEMPLATE = """Convert the following {source_dialect} SQL into {dialect}:

{text}"""

MODE_TEMPLATES: dict[FunctionMode, str] = {
    FunctionMode.CREATE: CREATE_TEMPLATE,
    FunctionMode.EXPLAIN: EXPLAIN_TEMPLATE,
    FunctionMode.GRAMMAR: GRAMMAR_TEMPLATE,
    FunctionMode.COMMENT: COMMENT_TEMPLATE,
    FunctionMode.TRANSFORM: TRANSFORM_TEMPLATE,
}


def build_query(
    mode: FunctionMode,
    text: str,
    dialect: str,
    schema_data: Any = None,
    source_dialect: str | None = None,
) -> str:
    """Render the query body sent to the generation service."""
    query = MODE_TEMPLATES[mode].format(
        text=text,
        dialect=dialect,
        source_dialect=source_dialect or DEFAULT_SOURCE_DIALECT,
    )
    if schema_data is not None:
        query += "\n\nDatabase schema:\n" + json.dumps(schema_data, indent=2, ensure_ascii=False, default=str)
    return query
