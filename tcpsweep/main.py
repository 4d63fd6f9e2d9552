import argparse
import asyncio
import logging
import signal

from pydantic import ValidationError
from rich.logging import RichHandler

from .config import ScanConfig, describe_errors
from .pool import ProbePool
from .scanner import ScanScheduler
from .sink import ResultSink
from .targets import TargetEnumerator
from .ui import ScannerUI
from .utils import parse_hosts, parse_port_range


def build_parser() -> argparse.ArgumentParser:
    # -h is the host flag, so help moves to --help
    parser = argparse.ArgumentParser(
        description="tcpsweep - TCP connect scanner using non-blocking sockets",
        epilog="Examples:\n"
               "  tcpsweep -p 1-1000 -v -s 512 -t 2 -h 192.168.0.2\n"
               "  tcpsweep -p 22 -o ip.log -m 250 -h 192.168.0.0/16",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
    )
    parser.add_argument("--help", action="help", help="Show this help message and exit")
    parser.add_argument("-h", "--hosts", required=True, help="Host/s [e.g. 192.168.1.0/24]")
    parser.add_argument("-p", "--ports", required=True, help="Port/s to scan [e.g. 80 or 1-1024]")
    parser.add_argument("-t", "--timeout", type=float, default=5.0, help="Timeout seconds (Default: 5)")
    parser.add_argument("-s", "--sockets", type=int, default=256, help="Parallel sockets (Default: 256)")
    parser.add_argument("-m", "--interval", type=int, default=500, help="Internal sleep time in ms (Default: 500)")
    parser.add_argument("-o", "--output", help="Output file, results are appended")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose")
    return parser


def setup_logging(verbose: bool, ui: ScannerUI):
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=ui.err_console, show_path=False)],
        force=True,
    )


def _install_interrupt_handler(loop, scheduler: ScanScheduler, ui: ScannerUI):
    def on_interrupt():
        if not scheduler.cancelled:
            ui.display_cleanup()
        scheduler.cancel()

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
        return lambda: loop.remove_signal_handler(signal.SIGINT)
    except (NotImplementedError, RuntimeError):
        # No loop signal support (Windows); hop back onto the loop from the handler.
        previous = signal.signal(signal.SIGINT, lambda signum, frame: loop.call_soon_threadsafe(on_interrupt))
        return lambda: signal.signal(signal.SIGINT, previous)


async def run_scan(config: ScanConfig, sink: ResultSink, ui: ScannerUI):
    enumerator = TargetEnumerator(config.start_host, config.end_host, config.start_port, config.end_port)
    pool = ProbePool(config.pool_size)

    with ui.create_progress() as progress:
        task_id = progress.add_task("scan", total=config.total_targets, found=0)
        out = ui.live_console(progress)
        stdout_console, sink.console = sink.console, out

        def on_progress(found, fraction):
            progress.update(task_id, completed=round(fraction * config.total_targets), found=found)

        def on_open(target):
            sink.record(target)
            progress.update(task_id, found=sink.count)

        scheduler = ScanScheduler(
            enumerator,
            pool,
            timeout=config.timeout,
            interval=config.interval,
            on_open=on_open,
            on_progress=on_progress,
            on_drain=(lambda in_flight: ui.display_waiting(in_flight, out)) if config.verbose else None,
        )
        restore = _install_interrupt_handler(asyncio.get_running_loop(), scheduler, ui)
        try:
            return await scheduler.run()
        finally:
            restore()
            sink.console = stdout_console


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    ui = ScannerUI()
    setup_logging(args.verbose, ui)

    try:
        start_host, end_host = parse_hosts(args.hosts)
        start_port, end_port = parse_port_range(args.ports)
        config = ScanConfig(
            start_host=start_host,
            end_host=end_host,
            start_port=start_port,
            end_port=end_port,
            timeout=args.timeout,
            concurrency=args.sockets,
            interval_ms=args.interval,
            output_file=args.output,
            verbose=args.verbose,
        )
    except ValidationError as e:
        ui.show_message(describe_errors(e))
        return 1
    except ValueError as e:
        ui.show_message(str(e))
        return 1

    sink = ResultSink(config.output_file, config.verbose, ui.console)
    try:
        sink.open()
    except OSError as e:
        ui.show_message(f"Cannot open/create log file: {e}")
        return 1

    if config.verbose:
        ui.display_start(config)

    with sink:
        try:
            session = asyncio.run(run_scan(config, sink, ui))
        except KeyboardInterrupt:
            # Interrupt landed before the loop's own handler was installed.
            ui.show_message("Scan interrupted by user.", style="yellow")
            return 0

    ui.display_summary(session, verbose=config.verbose)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
