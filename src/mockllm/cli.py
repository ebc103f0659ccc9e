"""
Mock LLM CLI

Command-line interface for the mock LLM server.

Commands:
    serve       - Start the mock server in the foreground
    validate    - Check a configuration file and list its mocks

Examples:
    # Serve on a fixed port
    mockllm serve mocks.json --listen 127.0.0.1:8080

    # Check a YAML configuration
    mockllm validate mocks.yaml
"""

import argparse
import sys
from typing import List, Optional

from .config import load_config_from_file, parse_listen_addr
from .exceptions import ConfigError
from .server import MockLLMServer


def cmd_serve(args):
    """
    Start the mock server and block until interrupted.

    Args:
        args: Parsed command-line arguments
    """
    print(f"🎭 Mock LLM Server")
    print(f"   Config: {args.config_file}")

    try:
        config = load_config_from_file(args.config_file)
        if args.listen is not None:
            parse_listen_addr(args.listen)
            config.listen_addr = args.listen
    except (ConfigError, FileNotFoundError) as e:
        print(f"❌ Failed to load config: {e}")
        sys.exit(1)

    config.log_level = args.log_level
    config.access_log = args.access_log

    print(f"   Mocks loaded: {len(config.openai)} OpenAI, {len(config.anthropic)} Anthropic")
    print()

    server = MockLLMServer(config)
    try:
        server.run()
    except KeyboardInterrupt:
        print("\n\n👋 Mock server stopped")


def cmd_validate(args):
    """
    Load a configuration file and print its mocks.

    Args:
        args: Parsed command-line arguments
    """
    try:
        config = load_config_from_file(args.config_file)
    except (ConfigError, FileNotFoundError) as e:
        print(f"❌ Invalid config: {e}")
        sys.exit(1)

    print(f"✅ {args.config_file} is valid")
    for family, mocks in (('OpenAI', config.openai), ('Anthropic', config.anthropic)):
        print(f"   {family}: {len(mocks)} mock(s)")
        for mock in mocks:
            print(f"     - {mock.name or '(unnamed)'} [{mock.match.match_type}]")


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Mock LLM - mock OpenAI and Anthropic APIs for integration tests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve on an ephemeral port
  %(prog)s serve mocks.json

  # Serve on a fixed address with debug logging
  %(prog)s serve mocks.yaml --listen 127.0.0.1:8080 --log-level debug

  # Validate a configuration file
  %(prog)s validate mocks.json
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # --- SERVE command ---
    serve_parser = subparsers.add_parser('serve', help='Start mock LLM server')
    serve_parser.add_argument('config_file', help='JSON or YAML mock configuration')
    serve_parser.add_argument('-l', '--listen', help='Listen address HOST:PORT (default: from config, else 0.0.0.0:0)')
    serve_parser.add_argument('--log-level', default='info', choices=['debug', 'info', 'warning', 'error'],
                              help='Log level (default: info)')
    serve_parser.add_argument('--access-log', action='store_true', help='Enable uvicorn access log')

    # --- VALIDATE command ---
    validate_parser = subparsers.add_parser('validate', help='Validate a mock configuration')
    validate_parser.add_argument('config_file', help='JSON or YAML mock configuration')

    args = parser.parse_args(argv)

    if args.command == 'serve':
        cmd_serve(args)
    elif args.command == 'validate':
        cmd_validate(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == '__main__':
    main()
