"""Console output utilities with color support."""

import os

# ANSI color codes
RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
GREEN = "\033[32m"
RED = "\033[31m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
CYAN = "\033[36m"
BRIGHT_GREEN = "\033[92m"
BRIGHT_RED = "\033[91m"
BRIGHT_YELLOW = "\033[93m"
BRIGHT_CYAN = "\033[96m"

# Colors per logging level name, used by the console log formatter
LEVEL_COLORS = {
    "DEBUG": (BLUE,),
    "INFO": (GREEN,),
    "WARNING": (YELLOW,),
    "ERROR": (BOLD, RED),
    "CRITICAL": (BOLD, BRIGHT_RED),
}

# Module-level color state
_force_color = None


def use_color(fd: int = 1) -> bool:
    """Check if colors should be used for the given file descriptor."""
    if _force_color is not None:
        return _force_color
    try:
        return os.isatty(fd)
    except OSError:
        return False


def force_color(enabled: bool):
    """Force colors on or off."""
    global _force_color
    _force_color = enabled


def style(text: str, *codes: str, fd: int = 1) -> str:
    """Apply style codes to text."""
    if not codes or not use_color(fd):
        return text
    return f"{''.join(codes)}{text}{RESET}"


def success(text: str) -> str:
    return style(text, BOLD, BRIGHT_GREEN)


def error(text: str) -> str:
    return style(text, BOLD, BRIGHT_RED)


def info(text: str) -> str:
    return style(text, BRIGHT_CYAN)


def label(text: str) -> str:
    return style(text, BOLD, CYAN)


def dim(text: str) -> str:
    return style(text, DIM)


def warn(text: str) -> str:
    return style(text, BOLD, BRIGHT_YELLOW)


def box(lines: list[str], width: int = 56) -> str:
    """Frame lines in a double-line box, for prompts the operator must not miss."""
    inner = max([width] + [len(line) + 2 for line in lines])
    out = ["╔" + "═" * inner + "╗"]
    for line in lines:
        if line == "-":
            out.append("╠" + "═" * inner + "╣")
        else:
            out.append("║ " + line.ljust(inner - 1) + "║")
    out.append("╚" + "═" * inner + "╝")
    return "\n".join(out)


# Output functions
def writeln(text: str = ""):
    """Write line to stdout, bypassing any capture."""
    os.write(1, f"{text}\n".encode())


def log(text: str, flush: bool = True):
    """Print text to stdout."""
    print(text, flush=flush)
