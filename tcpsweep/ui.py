from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, BarColumn, TextColumn, TimeElapsedColumn, TimeRemainingColumn

from .utils import format_address, format_duration, estimate_duration

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)


class ScannerUI:
    def __init__(self, console=console, err_console=err_console):
        self.console = console
        self.err_console = err_console

    def display_start(self, config):
        """
        Verbose header: what is about to be scanned and the worst-case duration.
        """
        eta = estimate_duration(config.total_targets, config.pool_size, config.timeout)
        lines = [
            f"Total hosts to scan {config.total_hosts} "
            f"({format_address(config.start_host)} - {format_address(config.end_host)})",
            f"Total ports to scan {config.total_targets} "
            f"(range {config.start_port} - {config.end_port})",
            f"Parallel sockets {config.pool_size}, timeout {config.timeout:g}s, "
            f"internal sleep {config.interval_ms}ms",
            f"Estimated time {format_duration(eta)}.",
        ]
        self.console.print(Panel.fit("\n".join(lines), title="tcpsweep", border_style="blue"))

    def create_progress(self):
        # Progress goes to stderr so stdout carries nothing but results.
        return Progress(
            TextColumn("Open {task.fields[found]}"),
            TextColumn("[{task.percentage:>6.2f}%]", markup=False),
            BarColumn(),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
            console=self.err_console,
            redirect_stdout=False,
            redirect_stderr=False,
        )

    def live_console(self, progress):
        """
        Console to print on while the progress bar is live. When stdout and
        stderr are the same terminal, printing around the live display
        garbles both, so output is routed through it instead.
        """
        if self.console.is_terminal and progress.console.is_terminal:
            return progress.console
        return self.console

    def display_waiting(self, in_flight, console=None):
        (console or self.console).print(f"[dim]Waiting remaining sockets ({in_flight})...[/dim]")

    def display_cleanup(self):
        self.err_console.print("\n[yellow]Ok, cleaning up, please wait...[/yellow]")

    def display_summary(self, session, verbose=False):
        if session.cancelled:
            self.console.print(f"Open {session.open_count} [Interrupted]", style="bold", markup=False)
            self.err_console.print("[yellow]Done.[/yellow]")
        else:
            self.console.print(f"Open {session.open_count} [Done]", markup=False)

        if verbose:
            self.console.print(
                f"[dim]Issued {session.issued}/{session.total}: "
                f"{session.closed_count} closed, {session.timed_out_count} timed out[/dim]"
            )
            self.console.print(f"[bold]Scan completed in {format_duration(session.elapsed)}.[/bold]")

    def show_message(self, msg, style="bold red"):
        self.err_console.print(msg, style=style, markup=False)
