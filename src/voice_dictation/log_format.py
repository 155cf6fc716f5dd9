import logging

RESET = "\033[0m"
DIM = "\033[2m"
BOLD = "\033[1m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
CYAN = "\033[36m"
MAGENTA = "\033[35m"

LEVEL_COLORS = {
    logging.DEBUG: DIM,
    logging.INFO: GREEN,
    logging.WARNING: YELLOW,
    logging.ERROR: RED,
    logging.CRITICAL: RED + BOLD,
}

# First match wins.
HIGHLIGHTS = [
    ("State:", BOLD + CYAN),
    ("Session accepted", BOLD + MAGENTA),
    ("Transcript:", CYAN),
    ("Limit reached", BOLD + YELLOW),
]


class ColoredFormatter(logging.Formatter):
    """Terminal formatter: time, level, short logger name, highlighted session events.

    With ``use_color=False`` the same layout is produced without escape codes,
    for output that is piped or redirected.
    """

    def __init__(self, fmt: str | None = None, datefmt: str | None = None, use_color: bool = True) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        time = self.formatTime(record, self.datefmt)
        name = record.name.split(".")[-1]
        msg = record.getMessage()
        if record.exc_info:
            msg = f"{msg}\n{self.formatException(record.exc_info)}"

        if not self.use_color:
            return f"{time} {level:<7} {name:<20} {msg}"

        color = LEVEL_COLORS.get(record.levelno, "")
        highlight = self._highlight(msg)
        if highlight:
            msg = f"{highlight}{msg}{RESET}"
        elif record.levelno == logging.DEBUG:
            msg = f"{DIM}{msg}{RESET}"
        elif record.levelno >= logging.WARNING:
            msg = f"{color}{msg}{RESET}"

        return f"{DIM}{time}{RESET} {color}{level:<7}{RESET} {DIM}{name:<20}{RESET} {msg}"

    def _highlight(self, msg: str) -> str:
        for marker, style in HIGHLIGHTS:
            if msg.startswith(marker):
                return style
        return ""
