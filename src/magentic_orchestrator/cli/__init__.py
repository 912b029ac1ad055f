"""
Magentic Orchestrator CLI Module

Contains the command-line interface:
- main: CLI entry point with typer
- Commands: run, plan, chat, history, show, config, serve
- output: Rich terminal rendering
"""

from .main import app, main

__all__ = ["app", "main"]
