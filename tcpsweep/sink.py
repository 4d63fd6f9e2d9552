from typing import Optional

from rich.console import Console

from .targets import Target


class ResultSink:
    """
    Receives open targets from the scheduler.

    Appends "address:port" lines to the log file (flushed per result so an
    interrupted scan keeps what it found) and prints "Open address:port"
    when verbose or when there is no log file.
    """

    def __init__(self, output_file: Optional[str] = None, verbose: bool = False, console: Optional[Console] = None):
        self.output_file = output_file
        self.verbose = verbose
        self.console = console or Console(highlight=False)
        self.count = 0
        self._fh = None

    def open(self):
        if self.output_file and self._fh is None:
            self._fh = open(self.output_file, "a", encoding="utf-8")
        return self

    def close(self):
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc):
        self.close()

    def record(self, target: Target):
        self.count += 1
        if self._fh is not None:
            self._fh.write(f"{target}\n")
            self._fh.flush()
        if self.verbose or self._fh is None:
            self.console.print(f"Open {target}", markup=False, highlight=False)
