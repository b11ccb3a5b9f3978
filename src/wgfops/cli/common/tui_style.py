"""Questionary / prompt_toolkit styles for the WGF-OPS console.

Questionary renders its prompts with prompt_toolkit. Menus share one style;
mutation confirmations use a red style so they never look like a menu.
"""

from __future__ import annotations

from prompt_toolkit.styles import Style

QUESTIONARY_STYLE_SELECT = Style.from_dict(
    {
        "qmark": "bold ansicyan",
        "question": "bold",
        "answer": "bold ansibrightcyan",
        "pointer": "bold ansibrightcyan",
        "highlighted": "bold ansibrightcyan",
        "selected": "bold ansibrightgreen",
        "checkbox": "ansibrightblack",
        "checkbox-selected": "bold ansibrightgreen",
        "separator": "ansibrightblack",
        "instruction": "ansibrightblack",
        "error": "bold ansired",
        "disabled": "ansibrightblack",
    }
)

QUESTIONARY_STYLE_TEXT = Style.from_dict(
    {
        "qmark": "bold ansicyan",
        "question": "bold",
        "answer": "bold ansibrightyellow",
        "instruction": "ansibrightblack",
        "error": "bold ansired",
    }
)

QUESTIONARY_STYLE_CONFIRM = Style.from_dict(
    {
        "qmark": "bold ansired",
        "question": "bold ansibrightred",
        "answer": "bold ansibrightred",
        "instruction": "ansibrightblack",
        "error": "bold ansired",
    }
)
