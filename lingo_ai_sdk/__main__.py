"""Run the Lingo AI SDK CLI with ``python -m lingo_ai_sdk``."""

from dotenv import load_dotenv

# LINGO_* settings may live in a local .env file
load_dotenv()

from .cli import main

if __name__ == "__main__":
    main()
