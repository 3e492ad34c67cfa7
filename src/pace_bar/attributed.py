"""NSAttributedString helpers for colored menu text.

Uses AppKit via PyObjC (bundled with rumps).
"""

from AppKit import (
    NSAttributedString,
    NSColor,
    NSFont,
    NSFontAttributeName,
    NSForegroundColorAttributeName,
    NSMutableAttributedString,
)

MENU_FONT = "Menlo"
MENU_FONT_SIZE = 13.0
TITLE_FONT_SIZE = 12.0
DETAIL_FONT_SIZE = 11.0


def hex_to_nscolor(hex_str):
    """'#d97757' -> NSColor."""
    h = hex_str.lstrip("#")
    red, green, blue = (int(h[i:i + 2], 16) / 255.0 for i in (0, 2, 4))
    return NSColor.colorWithCalibratedRed_green_blue_alpha_(red, green, blue, 1.0)


def styled_string(text, color=None, font_size=MENU_FONT_SIZE):
    attrs = {}
    font = NSFont.fontWithName_size_(MENU_FONT, font_size)
    if font:
        attrs[NSFontAttributeName] = font
    if color:
        attrs[NSForegroundColorAttributeName] = hex_to_nscolor(color)
    return NSAttributedString.alloc().initWithString_attributes_(text, attrs)


def styled_segments(segments, font_size=MENU_FONT_SIZE):
    """Concatenate ``(text, color_hex_or_None)`` runs into one string."""
    result = NSMutableAttributedString.alloc().init()
    for text, color in segments:
        result.appendAttributedString_(styled_string(text, color, font_size))
    return result


def set_styled_title(menu_item, attributed):
    """Replace a rumps MenuItem's title with an attributed string.

    _menuitem is a private rumps API (no public alternative for
    setAttributedTitle_); pinned to rumps <0.5.
    """
    menu_item._menuitem.setAttributedTitle_(attributed)


def set_hidden(menu_item, hidden):
    menu_item._menuitem.setHidden_(hidden)
