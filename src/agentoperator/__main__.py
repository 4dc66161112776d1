"""
Main entry point for the agent operator CLI

This allows running the CLI with: python -m agentoperator
"""
from .cli import main

if __name__ == "__main__":
    main()
