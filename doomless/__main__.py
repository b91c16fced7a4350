"""Allow running as: python -m doomless"""
from doomless.cli import run

run()
