"""
U-Ask Tests - Playwright automation for the U-Ask public services chatbot.

This package provides:
- A page object driving the chat widget, including anti-bot challenge handling
- Response evaluation: similarity, quality heuristics, LLM fact-checking
- UI, language, AI validation and security scenarios

Usage:
    CLI: uask-tests run --headed
"""

__version__ = "1.0.0"
