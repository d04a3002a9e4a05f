"""
Display helpers shared by the CLI and the HTTP API.
"""


def format_size(size_bytes: int) -> str:
    """
    Format a byte count using binary units, e.g. 1536 -> '1.5 KB'.
    """
    unit = 1024
    if size_bytes < unit:
        return f"{size_bytes} B"

    div, exp = unit, 0
    n = size_bytes // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit

    return f"{size_bytes / div:.1f} {'KMGTPE'[exp]}B"
