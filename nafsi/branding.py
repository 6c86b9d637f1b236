"""
Branding helpers
Derive the widget colour palette from configured brand colours.
"""
import logging
import re

logger = logging.getLogger(__name__)

DEFAULT_PRIMARY = '#00b8ff'
DEFAULT_SECONDARY = '#0d153b'
DEFAULT_ACCENT = '#fa764a'

_HEX_RE = re.compile(r'^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$')


def _parse_hex(color):
    """(r, g, b) for '#rgb' or '#rrggbb', None for anything else."""
    match = _HEX_RE.match(color.strip()) if isinstance(color, str) else None
    if not match:
        return None
    digits = match.group(1)
    if len(digits) == 3:
        digits = ''.join(c * 2 for c in digits)
    value = int(digits, 16)
    return (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF


def _to_hex(r, g, b):
    return f"#{(r << 16) | (g << 8) | b:06x}"


def lighten_color(color, amount):
    """
    Lighten a hex color towards white

    Args:
        color: Hex color, e.g. '#00b8ff' or '#fff'
        amount: Amount to lighten (0-1)

    Returns:
        str: Lightened hex color, or the input unchanged if it is not hex
    """
    rgb = _parse_hex(color)
    if rgb is None:
        return color
    r, g, b = (min(255, int(c + (255 - c) * amount)) for c in rgb)
    return _to_hex(r, g, b)


def darken_color(color, amount):
    """
    Darken a hex color towards black

    Args:
        color: Hex color
        amount: Amount to darken (0-1)

    Returns:
        str: Darkened hex color, or the input unchanged if it is not hex
    """
    rgb = _parse_hex(color)
    if rgb is None:
        return color
    r, g, b = (max(0, int(c * (1 - amount))) for c in rgb)
    return _to_hex(r, g, b)


def _brand_color(config, key, default):
    color = config.get(key)
    if not color:
        return default
    if _parse_hex(color) is None:
        logger.warning(f"Ignoring {key} {color!r}: not a hex colour, using {default}")
        return default
    return color


def build_palette(config):
    """Palette used by renderers: brand colours plus hover/background variants."""
    primary = _brand_color(config, 'primary_color', DEFAULT_PRIMARY)
    secondary = _brand_color(config, 'secondary_color', DEFAULT_SECONDARY)
    accent = _brand_color(config, 'accent_color', DEFAULT_ACCENT)
    return {
        'primary': primary,
        'primary_hover': darken_color(primary, 0.1),
        'primary_light': lighten_color(primary, 0.9),
        'secondary': secondary,
        'accent': accent,
        'accent_hover': darken_color(accent, 0.1),
    }
