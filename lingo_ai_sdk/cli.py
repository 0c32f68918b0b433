"""CLI entry point for the Lingo AI SDK."""

import argparse
import json

from .config.rate_limits import load_rate_limits
from .config.settings import ReliabilitySettings
from .reliability.rate_limiter import RateLimiter
from .reliability.types import ServiceKey


def show_limits():
    """Print the effective rate-limit table."""
    table = load_rate_limits()

    print("Rate Limits:")
    print("-" * 50)
    for key in sorted(table, key=str):
        config = table[key]
        max_cost = config.max_cost if config.max_cost is not None else "-"
        print(f"{str(key):<25} {config.max_requests:>5} req  cost {max_cost:>6}  / {config.window:g}s")


def estimate(provider: str, endpoint: str, text: str):
    """Print the estimated cost units of one call."""
    limiter = RateLimiter(load_rate_limits())
    key = ServiceKey(provider, endpoint)
    params = {
        "text": text,
        "prompt": text,
        "messages": [{"role": "user", "content": text}],
    }
    print(f"{key}: {limiter.estimate_cost(key, params)} cost units")


def show_config():
    """Print the reliability settings resolved from the environment."""
    settings = ReliabilitySettings.from_env()
    print(json.dumps(settings.model_dump(), indent=2))


def main(argv=None):
    """Main CLI function."""
    parser = argparse.ArgumentParser(description="Lingo AI SDK CLI")
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('limits', help='Show the rate-limit table')

    estimate_parser = subparsers.add_parser('estimate', help='Estimate the cost of a call')
    estimate_parser.add_argument('endpoint', help='Endpoint (e.g., "conversation", "tts")')
    estimate_parser.add_argument('text', help='Request text')
    estimate_parser.add_argument('--provider', default='openai', help='Provider name (default: openai)')

    subparsers.add_parser('config', help='Show reliability settings')

    args = parser.parse_args(argv)

    if args.command == 'limits':
        show_limits()
    elif args.command == 'estimate':
        estimate(args.provider, args.endpoint, args.text)
    elif args.command == 'config':
        show_config()
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
