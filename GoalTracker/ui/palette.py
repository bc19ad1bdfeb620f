"""Colour helpers for goal types, programming languages, and workout types."""
import re

from PySide6 import QtGui

GOAL_TYPE_COLORS = {
    'book_reading': '#007AFF',
    'fitness': '#FF9500',
    'programming': '#AF52DE',
}

WORKOUT_TYPE_COLORS = {
    'swim': '#007AFF',
    'bike': '#FF9500',
    'run': '#34C759',
    'strength': '#AF52DE',
    'recovery': '#FF2D55',
}

LANGUAGE_COLORS = {
    'swift': '#FF9500',
    'python': '#007AFF',
    'javascript': '#FFCC00',
    'typescript': '#FFCC00',
    'java': '#FF3B30',
    'go': '#32ADE6',
    'rust': '#A2845E',
    'ruby': '#FF3B30',
    'c': '#AF52DE',
    'c++': '#AF52DE',
    'c#': '#AF52DE',
    'kotlin': '#AF52DE',
    'php': '#5856D6',
}

FALLBACK_COLOR = '#8E8E93'


def is_valid_hex_color(value: str) -> bool:
    """Check if a string is a valid hexadecimal color in #RRGGBB format."""
    return bool(re.fullmatch(r'#[0-9A-Fa-f]{6}', value))


def color_from_hex(value: str) -> QtGui.QColor:
    """Build a colour from a 3, 6 or 8 digit hex string.

    Non-hex characters such as a leading '#' are ignored. Eight digits are read as
    AARRGGBB. Any other length yields opaque black.

    Args:
        value (str): Hex string, e.g. '#F80', 'FF8800' or '80FF8800'.

    Returns:
        QtGui.QColor: The parsed colour.
    """
    digits = re.sub(r'[^0-9A-Fa-f]', '', value or '')

    if len(digits) == 3:
        r, g, b = (int(c, 16) * 17 for c in digits)
        return QtGui.QColor(r, g, b, 255)
    if len(digits) == 6:
        n = int(digits, 16)
        return QtGui.QColor(n >> 16, n >> 8 & 0xFF, n & 0xFF, 255)
    if len(digits) == 8:
        n = int(digits, 16)
        return QtGui.QColor(n >> 16 & 0xFF, n >> 8 & 0xFF, n & 0xFF, n >> 24)

    return QtGui.QColor(0, 0, 0, 255)


def color_for_goal_type(goal_type: str) -> QtGui.QColor:
    return color_from_hex(GOAL_TYPE_COLORS.get(str(goal_type), FALLBACK_COLOR))


def color_for_workout_type(workout_type: str) -> QtGui.QColor:
    return color_from_hex(WORKOUT_TYPE_COLORS.get(str(workout_type), FALLBACK_COLOR))


def color_for_language(language: str = None) -> QtGui.QColor:
    """Accent colour for a repository's primary language; grey when unknown."""
    if not language:
        return color_from_hex(FALLBACK_COLOR)
    return color_from_hex(LANGUAGE_COLORS.get(language.lower(), FALLBACK_COLOR))
