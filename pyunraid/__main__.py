# pyUnraid Module - Command Line
# -*- coding: utf-8 -*-
"""
 Python module to poll an Unraid server through its GraphQL API

 Command Line:
    python -m pyunraid <discover|test|query|poll|version>

 Connection settings default to the UNRAID_* environment variables (or a .env
 file), see pyunraid.settings.
"""

import argparse
import asyncio
import json
import sys

# Modules
from pyunraid import version, set_debug
from pyunraid.settings import Settings

# Global Variables
settings = Settings()

# Setup parser and groups
p = argparse.ArgumentParser(prog="PyUnraid", description=f"PyUnraid Module v{version}")
subparsers = p.add_subparsers(dest="command", title='commands (run <command> -h to see usage information)',
                              required=True)


def add_connection_args(parser):
    parser.add_argument("-host", type=str, default=settings.host or "",
                        help="Hostname or IP address of Unraid server [Default=$UNRAID_HOST]")
    parser.add_argument("-httpport", type=int, default=settings.http_port,
                        help=f"Port for plain http [Default={settings.http_port}]")
    parser.add_argument("-httpsport", type=int, default=settings.https_port,
                        help=f"Port for https [Default={settings.https_port}]")
    parser.add_argument("-timeout", type=float, default=settings.timeout,
                        help=f"Seconds to wait per request [Default={settings.timeout:.1f}]")


discover_args = subparsers.add_parser("discover", help='Discover SSL mode and GraphQL URL of an Unraid server')
add_connection_args(discover_args)
discover_args.add_argument("-format", type=str, default="text", help="Output format: text, json")

test_args = subparsers.add_parser("test", help='Test API key and connection to an Unraid server')
add_connection_args(test_args)
test_args.add_argument("-key", type=str, default=settings.api_key or "",
                       help="Unraid API key [Default=$UNRAID_API_KEY]")

query_args = subparsers.add_parser("query", help='Run a GraphQL query and print the JSON result')
add_connection_args(query_args)
query_args.add_argument("-key", type=str, default=settings.api_key or "",
                        help="Unraid API key [Default=$UNRAID_API_KEY]")
query_args.add_argument("-query", type=str, default="query { online }", help="GraphQL document to run")
query_args.add_argument("-variables", type=str, default="{}", help="Query variables as JSON")

poll_args = subparsers.add_parser("poll", help='Poll system and storage metrics with backoff')
add_connection_args(poll_args)
poll_args.add_argument("-key", type=str, default=settings.api_key or "",
                       help="Unraid API key [Default=$UNRAID_API_KEY]")
poll_args.add_argument("-duration", type=float, default=60.0,
                       help="Seconds to keep polling [Default=60]")

version_args = subparsers.add_parser("version", help='Print version information')

# Add a global debug flag
p.add_argument("-debug", action="store_true", default=settings.debug, help="Enable debug output")

if len(sys.argv) == 1:
    p.print_help(sys.stderr)
    sys.exit(1)

# parse args
args = p.parse_args()
command = args.command

# Set Debug Mode
if args.debug:
    set_debug(True)


def connection_config():
    from pyunraid import ConnectionConfig

    if not args.host:
        print("ERROR: No host given. Set -host or UNRAID_HOST.")
        sys.exit(1)
    return ConnectionConfig(host=args.host, api_key=getattr(args, 'key', ""), timeout=args.timeout,
                            http_port=args.httpport, https_port=args.httpsport)


async def run_polls(client, duration):
    from pyunraid import PollManager

    def show_system():
        info = client.system_info()
        print(f"  system   cpu {info.cpu_usage:5.1f}%  memory {info.memory_percent:5.1f}%")

    def show_storage():
        array = client.storage_info().array
        print(f"  storage  array {array.state}  used {array.usage_percent:5.1f}%  "
              f"parity {array.parity_check_status.status}")

    manager = PollManager(max_workers=2)
    manager.register('system', show_system, settings.system_poll_config())
    manager.register('storage', show_storage, settings.storage_poll_config())
    manager.start('system')
    manager.start('storage')
    try:
        await asyncio.sleep(duration)
    finally:
        manager.shutdown()
    for state in manager.get_all_states().values():
        print("  {:<10}errors={} interval={}s last_error={}".format(
            state.id, state.consecutive_errors, state.current_interval, state.last_error_message or "-"))


# Discover SSL Mode
if command == 'discover':
    from pyunraid import SslDiscovery, PyUnraidInvalidConfigurationParameter

    if args.format == 'text':
        print("pyUnraid [%s] - SSL Discovery\n" % version)
    try:
        result = SslDiscovery(timeout=args.timeout).discover(args.host, args.httpport, args.httpsport)
    except PyUnraidInvalidConfigurationParameter as exc:
        print(f"ERROR: {exc}")
        sys.exit(1)
    if args.format == 'json':
        print(result.model_dump_json(indent=2))
    else:
        for item, value in result.model_dump(mode='json').items():
            name = item.replace("_", " ").title()
            print("  {:<18}{}".format(name, value))
        print("")

# Test Connection
elif command == 'test':
    from pyunraid import UnraidClient

    print("pyUnraid [%s] - Connection Test\n" % version)
    with UnraidClient(connection_config()) as client:
        status = client.test_connection_detailed()
        if status['success']:
            print(f"Connected to {client.config.resolved_url} (ssl mode: {client.config.ssl_mode.value})")
        else:
            print(f"ERROR: {status['code'] or 'OFFLINE'} - {status['error']}")
            sys.exit(1)

# Run Query
elif command == 'query':
    from pyunraid import UnraidClient, UnraidApiError

    try:
        variables = json.loads(args.variables)
    except ValueError as exc:
        print(f"ERROR: -variables is not valid JSON: {exc}")
        sys.exit(1)
    with UnraidClient(connection_config()) as client:
        try:
            data = client.execute(args.query, variables)
        except UnraidApiError as exc:
            print(json.dumps(exc.to_dict(), indent=2, default=str))
            sys.exit(1)
        print(json.dumps(data, indent=2))

# Poll Metrics
elif command == 'poll':
    from pyunraid import UnraidClient

    print("pyUnraid [%s] - Polling for %ds (Ctrl-C to stop)\n" % (version, args.duration))
    with UnraidClient(connection_config()) as client:
        try:
            asyncio.run(run_polls(client, args.duration))
        except KeyboardInterrupt:
            print("Stopped")

# Print Version
elif command == 'version':
    print("pyUnraid [%s]" % version)
# Print Usage
else:
    p.print_help()
