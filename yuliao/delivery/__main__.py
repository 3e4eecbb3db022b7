"""
Entry point for running the drill as a module.

Usage:
    python -m yuliao.delivery learn
    python -m yuliao.delivery stats
    python -m yuliao.delivery --help
"""
from .cli import main

if __name__ == "__main__":
    main()
