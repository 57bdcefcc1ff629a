from colorama import init as colorama_init, Fore, Style
from datetime import datetime
colorama_init(autoreset=True)

SEVERITY_COLORS = {
    "CRITICAL": Fore.RED,
    "IMPORTANT": Fore.YELLOW,
    "RECOMMENDED": Fore.BLUE,
    "OPTIONAL": Fore.WHITE,
}


class Log:
    def __init__(self, verbose: int = 1):
        self.verbose = verbose

    def _time(self):
        return datetime.now().strftime("[%H:%M:%S]")

    def _fmt(self, level: str, color: str):
        return f"{self._time()} {color}[{level}]{Style.RESET_ALL}"

    def info(self, msg: str):
        if self.verbose >= 1:
            print(f"{self._fmt('INFO', Fore.CYAN)} {msg}")

    def warn(self, msg: str):
        if self.verbose >= 0:
            print(f"{self._fmt('WARNING', Fore.YELLOW)} {msg}")

    def ok(self, msg: str):
        print(f"{self._fmt('SUCCESS', Fore.GREEN)} {msg}")

    def fail(self, msg: str):
        print(f"{self._fmt('FAIL', Fore.RED)} {msg}")

    def debug(self, msg: str):
        if self.verbose >= 2:
            print(f"{self._fmt('DEBUG', Fore.MAGENTA)} {msg}")

    def recommendation(self, rec):
        col = SEVERITY_COLORS.get(rec.severity, Fore.WHITE)
        where = rec.page_url or "site-wide"
        print(f"  {col}{rec.severity:<11}{Style.RESET_ALL} {rec.id}  {rec.name} "
              f"{Style.DIM}({rec.tracking_type}, {rec.status}){Style.RESET_ALL} "
              f"{Fore.MAGENTA}{where}{Style.RESET_ALL}")
