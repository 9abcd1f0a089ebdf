"""MCP tool definitions for the SilverBullet bridge.

This module contains the tool schema definitions. The handlers live in
server.py.
"""

from typing import Any

_FILENAME = {"type": "string", "description": "The filename of the note (should end with .md)"}

TOOL_SCHEMAS: dict[str, dict[str, Any]] = {
    "list-notes": {
        "description": "List notes in the SilverBullet space, optionally filtered by name, permission or content",
        "inputSchema": {
            "type": "object",
            "properties": {
                "namePattern": {
                    "type": "string",
                    "description": (
                        "Regex pattern to filter note names (e.g., 'project.*' for notes "
                        "starting with 'project'). Case-insensitive."
                    ),
                },
                "permission": {
                    "type": "string",
                    "enum": ["rw", "ro"],
                    "description": "Filter by permission: 'rw' for read-write, 'ro' for read-only",
                },
                "contentSearch": {
                    "type": "string",
                    "description": "Only list notes whose content contains this text (case-insensitive)",
                },
            },
        },
    },
    "search-notes": {
        "description": "Full-text search across note titles and contents, ranked by number of matches",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query (supports regex patterns)"},
                "searchType": {
                    "type": "string",
                    "enum": ["content", "title", "both"],
                    "default": "both",
                    "description": "Where to search: content, title (filename), or both",
                },
                "caseSensitive": {
                    "type": "boolean",
                    "default": False,
                    "description": "Whether search should be case-sensitive",
                },
                "maxResults": {
                    "type": "integer",
                    "default": 10,
                    "minimum": 1,
                    "description": "Maximum number of results to return per page",
                },
                "page": {
                    "type": "integer",
                    "default": 1,
                    "minimum": 1,
                    "description": "Page number for pagination (1-based)",
                },
                "contextLines": {
                    "type": "integer",
                    "default": 1,
                    "minimum": 0,
                    "description": "Number of lines of context to show around each match",
                },
                "concise": {
                    "type": "boolean",
                    "default": True,
                    "description": "Return concise output optimized for LLM consumption",
                },
                "enableCaching": {
                    "type": "boolean",
                    "default": True,
                    "description": "Enable content caching with modification time validation",
                },
            },
            "required": ["query"],
        },
    },
    "read-note": {
        "description": "Read the content of a note",
        "inputSchema": {
            "type": "object",
            "properties": {"filename": _FILENAME},
            "required": ["filename"],
        },
    },
    "read-multiple-notes": {
        "description": "Read several notes at once, by explicit filenames and/or a name pattern",
        "inputSchema": {
            "type": "object",
            "properties": {
                "filenames": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Filenames to read (.md is added when missing)",
                },
                "namePattern": {
                    "type": "string",
                    "description": "Regex pattern selecting additional notes by name",
                },
                "includeContent": {
                    "type": "boolean",
                    "default": True,
                    "description": "Whether to include note contents",
                },
                "maxResults": {
                    "type": "integer",
                    "default": 20,
                    "minimum": 1,
                    "description": "Maximum number of notes to read",
                },
                "enableCaching": {
                    "type": "boolean",
                    "default": True,
                    "description": "Enable content caching with modification time validation",
                },
                "format": {
                    "type": "string",
                    "enum": ["structured", "concatenated", "summary"],
                    "default": "structured",
                    "description": "Output format",
                },
            },
        },
    },
    "create-note": {
        "description": "Create a new note",
        "inputSchema": {
            "type": "object",
            "properties": {
                "filename": _FILENAME,
                "content": {"type": "string", "description": "The content for the new note"},
                "overwrite": {
                    "type": "boolean",
                    "default": False,
                    "description": "Whether to overwrite an existing note",
                },
            },
            "required": ["filename", "content"],
        },
    },
    "update-note": {
        "description": "Replace the content of a note",
        "inputSchema": {
            "type": "object",
            "properties": {
                "filename": _FILENAME,
                "content": {"type": "string", "description": "The new content for the note"},
            },
            "required": ["filename", "content"],
        },
    },
    "delete-note": {
        "description": "Delete a note",
        "inputSchema": {
            "type": "object",
            "properties": {"filename": _FILENAME},
            "required": ["filename"],
        },
    },
    "search-replace-note": {
        "description": "Search for text or a regex in a note and replace the matches",
        "inputSchema": {
            "type": "object",
            "properties": {
                "filename": _FILENAME,
                "searchPattern": {
                    "type": "string",
                    "description": "The text or regex pattern to search for",
                },
                "replaceText": {"type": "string", "description": "The text to replace matches with"},
                "useRegex": {
                    "type": "boolean",
                    "default": False,
                    "description": "Whether to treat searchPattern as a regex",
                },
                "caseSensitive": {
                    "type": "boolean",
                    "default": False,
                    "description": "Whether search should be case-sensitive",
                },
                "replaceAll": {
                    "type": "boolean",
                    "default": True,
                    "description": "Whether to replace all matches or just the first one",
                },
            },
            "required": ["filename", "searchPattern", "replaceText"],
        },
    },
}
