import asyncio
import argparse
import contextlib
import logging
import os
import signal
import sys
from pathlib import Path

from lantunnel import __version__
from lantunnel.config import TransferConfig, load_config, DEFAULT_PORT
from lantunnel.errors import TransferError
from lantunnel.server.server import TunnelServer
from lantunnel.client.client import TunnelClient
from lantunnel.transfer.cancel import CancelToken

logger = logging.getLogger("lantunnel")

EXIT_USAGE = 2


def setup_logging(debug: bool = False, quiet: bool = False, log_file: str = 'lantunnel.log'):
    """Configure root logging once for the process"""
    level = logging.INFO
    if debug:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file)
        ]
    )


def build_config(args) -> TransferConfig:
    """Merge YAML config, environment and command-line options"""
    data = load_config(Path(args.config) if args.config else None)

    key = args.key or os.environ.get('LANTUNNEL_KEY')
    passphrase = args.passphrase or os.environ.get('LANTUNNEL_PASSPHRASE')
    if key:
        data['key'] = key
        data.pop('passphrase', None)
    elif passphrase:
        data['passphrase'] = passphrase
        data.pop('key', None)

    return TransferConfig.from_dict(
        data,
        host=args.host,
        port=args.port,
        ack_timeout=args.ack_timeout,
        verbose=True if args.verbose else None
    )


def install_signal_handlers(token: CancelToken):
    """SIGINT/SIGTERM fire the process-wide cancellation token"""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is unavailable on Windows event loops
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, token.cancel, f"received {sig.name}")


async def run_send(args, config: TransferConfig, token: CancelToken):
    """Send mode: listen, advertise and serve one file"""
    logger.info(f"=== lantunnel v{__version__}: sending {args.file} ===")

    server = TunnelServer(
        path=Path(args.file),
        config=config,
        token=token,
        advertise=not args.no_discovery
    )
    result = await server.run()
    logger.info(f"✓ Sent {result.file_name} ({result.size} bytes) in {result.elapsed:.2f}s")
    return result


async def run_receive(args, config: TransferConfig, token: CancelToken):
    """Receive mode: discover (or dial) the sender and receive one file"""
    logger.info(f"=== lantunnel v{__version__}: receiving ===")

    dest_dir = Path(args.dest)
    dest_dir.mkdir(parents=True, exist_ok=True)

    client = TunnelClient(config=config, dest_dir=dest_dir, token=token)

    host = None if args.host in (None, '0.0.0.0') else args.host
    if host is None and args.no_discovery:
        raise ValueError("--no-discovery requires --host")

    result = await client.run(host=host, port=args.port)
    logger.info(f"✓ Received {result.path} ({result.size} bytes) in {result.elapsed:.2f}s")
    return result


def create_parser():
    """Create argument parser"""
    parser = argparse.ArgumentParser(
        description=f'lantunnel v{__version__} - Encrypted LAN file transfer',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Share a file (advertised on the local network)
  lantunnel send report.pdf --passphrase "correct horse"

  # Receive it on another machine
  lantunnel receive --passphrase "correct horse" --dest ./downloads

  # Without mDNS
  lantunnel receive --host 192.168.1.20 --port 8080 --key <hex>
        """
    )

    parser.add_argument(
        'mode',
        choices=['send', 'receive'],
        help='Execution mode'
    )
    parser.add_argument(
        'file',
        nargs='?',
        help='File to send (send mode only)'
    )

    # Connection
    parser.add_argument(
        '--host',
        default=None,
        help='send: address to listen on (default: 0.0.0.0); receive: sender address'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=None,
        help=f'TCP port (default: {DEFAULT_PORT})'
    )
    parser.add_argument(
        '--no-discovery',
        action='store_true',
        help='Do not advertise/discover via mDNS'
    )
    parser.add_argument(
        '--dest',
        default='.',
        help='Directory to store received files (default: current directory)'
    )

    # Keys and settings
    parser.add_argument(
        '--config',
        default=None,
        help='YAML configuration file'
    )
    parser.add_argument(
        '--key',
        default=None,
        help='Shared key as hex (or LANTUNNEL_KEY)'
    )
    parser.add_argument(
        '--passphrase',
        default=None,
        help='Shared passphrase to derive the key from (or LANTUNNEL_PASSPHRASE)'
    )
    parser.add_argument(
        '--ack-timeout',
        type=float,
        default=None,
        help='Seconds the sender waits for the receiver to confirm (default: 60)'
    )

    # Logging
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Log every chunk sent/received (implies --debug)'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    parser.add_argument(
        '--quiet',
        action='store_true',
        help='Minimal output'
    )

    return parser


async def main(argv=None) -> int:
    """Main entry point; returns the process exit code"""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(debug=args.debug or args.verbose, quiet=args.quiet)

    if args.mode == 'send' and not args.file:
        parser.error("send mode requires a file")

    try:
        config = build_config(args)
    except (OSError, ValueError) as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_USAGE

    token = CancelToken()
    install_signal_handlers(token)

    try:
        if args.mode == 'send':
            await run_send(args, config, token)
        else:
            await run_receive(args, config, token)
    except TransferError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return e.exit_code
    except ValueError as e:
        logger.error(str(e))
        return EXIT_USAGE
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1

    return 0


def cli():
    """Console script entry point"""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == '__main__':
    cli()
