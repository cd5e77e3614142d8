"""
LLM Tool Definitions

This module defines the authoritative tool/function schemas exposed to the
LLM. These definitions must remain synchronized with the registry in
`tools/base.py`: only tools declared here can ever be invoked by the model.
"""

from __future__ import annotations

from typing import Dict, List, Any, Final


# ---------------------------------------------------------------------
# Tool Name Constants (Single Source of Truth)
# ---------------------------------------------------------------------

TOOL_FIND_FILES_BY_NAME: Final[str] = "find_files_by_name"


# ---------------------------------------------------------------------
# Tool Definitions
# ---------------------------------------------------------------------

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": TOOL_FIND_FILES_BY_NAME,
            "description": (
                "Lookup files in the current namespace by full or partial file name. "
                "Use this when the user asks for a specific document."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "name": {
                        "type": "string",
                        "description": "Full or partial file name to search for.",
                    },
                },
                "required": ["name"],
            },
        },
    },
]
